"""
Per-page parsing functions that pull the data we're interested in out of the ONT's ASP pages.
    Only tested against HG8145V5 firmware but the stOpticInfo / stDeviceInfo / USERDevice
    records are shared by most Huawei EchoLife ONTs.

Only the optical parser is allowed to raise. The others return whatever they could find; anything
    they couldn't is simply left out of the returned dict (or set to None).
"""

import ipaddress
import re

import structlog
from bs4 import BeautifulSoup
from err.exceptions import ExtractionFailure

from huawei_ont import literal

log = structlog.get_logger(__name__)

OPTIC_CONSTRUCT = "stOpticInfo"
DEVICE_CONSTRUCT = "stDeviceInfo"
# Newer firmware renders USERDeviceNew, older USERDevice; a page only ever has one kind
CLIENT_CONSTRUCTS = ("USERDeviceNew", "USERDevice")

# Body markers for the login handshake
LOGIN_PAGE_MARKER = "login.asp"
REDIRECT_SCRIPT_MARKER = "top.location.replace"

# Generic "this is not the page you wanted" bodies. Compared lower-case.
NOT_FOUND_MARKERS = ("404 not found", "page not found", "file not found")

# Uptime shows up either as a labelled field somewhere in the page ...
_UPTIME_LABELLED = re.compile(r"""\bUpTime\s*[:=]\s*["']?(\d+)""")
# ... or as a long bare number trailing the stDeviceInfo identity fields.
_UPTIME_LITERAL = re.compile(r"\d{5,}")

# Port label of a connected client
_LAN_PORT = re.compile(r"LAN\d*", re.IGNORECASE)
_WIFI_PORT = re.compile(r"SSID\d*", re.IGNORECASE)


def _quoted_value(key: str) -> re.Pattern:
    # key = "value" / key: 'value' / key="value"
    return re.compile(r"\b" + re.escape(key) + r"""\s*[:=]\s*["']([^"']*)["']""")


def _numeric_value(key: str) -> re.Pattern:
    return re.compile(r"\b" + re.escape(key) + r"""\s*[:=]\s*["']?(\d+)""")


# Keys are tried in order; first structural match wins
_WAN_STATUS_KEYS = [_quoted_value(k) for k in ("ConnectionStatus", "Status")]
_WAN_IP_KEYS = [_quoted_value(k) for k in ("ExternalIPAddress", "IPAddress")]
_WAN_RX_KEYS = [_numeric_value(k) for k in ("BytesReceived", "RxBytes")]
_WAN_TX_KEYS = [_numeric_value(k) for k in ("BytesSent", "TxBytes")]


def is_login_failure(body: str) -> bool:
    """login.cgi answers 200 either way; a bounce back to the login form without the JS redirect means rejected."""
    return LOGIN_PAGE_MARKER in body and REDIRECT_SCRIPT_MARKER not in body


def is_not_found_page(body: str) -> bool:
    """Check if the firmware served its generic error page instead of the one we asked for"""
    _lower = body.lower()
    return any(marker in _lower for marker in NOT_FOUND_MARKERS)


def page_title(body: str) -> str | None:
    """Title of the page, if any. Only used to make log lines about unexpected pages useful."""
    if (title := BeautifulSoup(body, "html.parser").find("title")) is not None:
        return title.text.strip()
    return None


def parse_optical(body: str) -> dict[str, float]:
    """Pulls the five transceiver readings out of the opticinfo page.

    function stOpticInfo(domain, LinkStatus, transOpticPower, revOpticPower, voltage, temperature, bias, ...)

    Firmware varies in how many trailing args follow `bias`; we only care about the first 7.

    Raises:
        ExtractionFailure: construct missing, too few args or a reading that isn't a number.
            Nothing partial is ever returned.
    """
    args = literal.extract_call_args(body, OPTIC_CONSTRUCT)
    if len(args) < 7:
        raise ExtractionFailure(
            f"Not enough arguments in {OPTIC_CONSTRUCT} call", payload=args
        )

    optical = {
        "tx_power": literal.to_float(args[2], "tx_power"),
        "rx_power": literal.to_float(args[3], "rx_power"),
        "voltage": literal.to_float(args[4], "voltage"),
        "temperature": literal.to_float(args[5], "temperature"),
        "bias_current": literal.to_float(args[6], "bias_current"),
    }
    log.debug("Optical info", **optical)
    return optical


def _arg(args: list[str], idx: int) -> str | None:
    # Identity strings are space padded by the firmware; blank means we didn't really get one
    if len(args) > idx and (_v := args[idx].strip()) != "":
        return _v
    return None


def parse_device_info(body: str) -> dict[str, str | int | None]:
    """Attempts to extract device identity + uptime from the deviceinfo page.

    function stDeviceInfo(domain, SerialNumber, HardwareVersion, SoftwareVersion, ModelName,
                          VendorID, ReleaseTime, Mac, ...)
    """
    device_info = {
        "serial_number": None,
        "hardware_version": None,
        "software_version": None,
        "device_model": None,
        "mac_address": None,
        "uptime_seconds": None,
    }

    try:
        args = literal.extract_call_args(body, DEVICE_CONSTRUCT)
    except ExtractionFailure as e:
        log.warning("No device info record on page", error=e, title=page_title(body))
        args = []

    device_info["serial_number"] = _arg(args, 1)
    device_info["hardware_version"] = _arg(args, 2)
    device_info["software_version"] = _arg(args, 3)
    device_info["device_model"] = _arg(args, 4)
    if len(args) >= 8:
        device_info["mac_address"] = _arg(args, 7)

    # Uptime is independent of whether the identity record parsed
    if (m := _UPTIME_LABELLED.search(body)) is not None:
        device_info["uptime_seconds"] = literal.optional_uint(m.group(1), "uptime_seconds")
    else:
        for trailing in args[8:]:
            if _UPTIME_LITERAL.fullmatch(trailing.strip()):
                device_info["uptime_seconds"] = literal.optional_uint(
                    trailing, "uptime_seconds"
                )
                break

    log.debug("Device info", **device_info)
    return device_info


def _first_match(patterns: list[re.Pattern], body: str) -> str | None:
    for pattern in patterns:
        for m in pattern.finditer(body):
            if (_v := literal.decode_hex_escapes(m.group(1)).strip()) != "":
                return _v
    return None


def _first_ipv4(patterns: list[re.Pattern], body: str) -> str | None:
    for pattern in patterns:
        for m in pattern.finditer(body):
            _candidate = literal.decode_hex_escapes(m.group(1)).strip()
            try:
                return str(ipaddress.IPv4Address(_candidate))
            except ValueError:
                continue
    return None


def parse_wan(body: str) -> dict[str, str | int | None]:
    """Each WAN field is searched for on its own; one missing doesn't affect the rest."""
    wan = {
        "wan_status": _first_match(_WAN_STATUS_KEYS, body),
        "wan_ip": _first_ipv4(_WAN_IP_KEYS, body),
        "wan_rx_bytes": literal.optional_uint(
            _first_match(_WAN_RX_KEYS, body), "wan_rx_bytes"
        ),
        "wan_tx_bytes": literal.optional_uint(
            _first_match(_WAN_TX_KEYS, body), "wan_tx_bytes"
        ),
    }
    log.debug("WAN info", **wan)
    return wan


def parse_lan_clients(body: str) -> dict[str, int]:
    """Counts attached clients and splits them by the port they're attached to.

    function USERDevice(domain, IpAddr, MacAddr, Port, IpType, DevType, DevStatus, PortType, time, HostName, ...)

    Port is `LAN1`..`LAN4` for wired clients and `SSID1`..`SSIDn` for wireless ones.
    A count is only reported when it is nonzero.
    """
    clients = [
        args for name in CLIENT_CONSTRUCTS for args in literal.iter_call_args(body, name)
    ]
    counts = {}
    if len(clients) == 0:
        log.debug("No client records on page")
        return counts

    _ports = [args[3].strip() if len(args) > 3 else "" for args in clients]
    _lan = sum(1 for p in _ports if _LAN_PORT.match(p))
    _wifi = sum(1 for p in _ports if _WIFI_PORT.match(p))

    counts["total_clients_count"] = len(clients)
    if _lan > 0:
        counts["lan_clients_count"] = _lan
    if _wifi > 0:
        counts["wifi_clients_count"] = _wifi

    log.debug("Client counts", **counts)
    return counts
