"""
The aggregate produced by one scrape cycle and the per-page results it is assembled from.
"""

from dataclasses import dataclass, field, fields
from enum import Enum


@dataclass(frozen=True)
class TelemetryRecord:
    """Everything a single scrape of the ONT turned up.

    The five optical readings are always present; a record is never built without them.
    Every other field is None when the page / pattern it comes from could not be found or parsed.
    """

    # Optical transceiver; dBm, dBm, mV, mA, Celsius
    tx_power: float
    rx_power: float
    voltage: float
    bias_current: float
    temperature: float

    # Device identity
    device_model: str | None = None
    serial_number: str | None = None
    software_version: str | None = None
    hardware_version: str | None = None
    mac_address: str | None = None
    uptime_seconds: int | None = None

    # WAN
    wan_status: str | None = None
    wan_ip: str | None = None
    wan_rx_bytes: int | None = None
    wan_tx_bytes: int | None = None

    # Attached clients
    lan_clients_count: int | None = None
    wifi_clients_count: int | None = None
    total_clients_count: int | None = None


MANDATORY_FIELDS = ("tx_power", "rx_power", "voltage", "bias_current", "temperature")
OPTIONAL_FIELDS = tuple(f.name for f in fields(TelemetryRecord) if f.name not in MANDATORY_FIELDS)


class CategoryStatus(Enum):
    """Outcome of fetching + parsing one optional page category"""

    # Page found and at least one field extracted
    OK = "ok"
    # Page found and parsed, but none of the patterns matched
    ABSENT = "absent"
    # Fetch or parse blew up; already logged
    FAILED = "failed"


@dataclass(frozen=True)
class CategoryResult:
    category: str
    status: CategoryStatus
    fields: dict = field(default_factory=dict)
    error: Exception | None = None

    @classmethod
    def from_fields(cls, category: str, parsed: dict) -> "CategoryResult":
        """Drops None values; an empty result is ABSENT rather than OK."""
        present = {k: v for k, v in parsed.items() if v is not None}
        if len(present) == 0:
            return cls(category, CategoryStatus.ABSENT)
        return cls(category, CategoryStatus.OK, present)

    @classmethod
    def failed(cls, category: str, error: Exception) -> "CategoryResult":
        return cls(category, CategoryStatus.FAILED, error=error)
