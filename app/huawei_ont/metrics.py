"""All the boiler plate / init code for defining metrics.

Unlike a typical exporter, nothing here lives in prometheus_client's global REGISTRY.
PrometheusSink owns its own CollectorRegistry; the scrape code is handed the sink and never reaches
    for a module level metric.

Telemetry series are produced by a custom collector from the last published TelemetryRecord.
    The record is swapped in one go so the exposition thread can never see half of one scrape and half
    of another. Optional fields that are None simply don't produce a series.
"""

import threading
import time
from contextlib import AbstractContextManager

import structlog
from prometheus_client import (CollectorRegistry, Counter, Histogram, Summary,
                               disable_created_metrics)
from prometheus_client.core import GaugeMetricFamily, InfoMetricFamily
from prometheus_client.registry import Collector

from huawei_ont.record import TelemetryRecord

log = structlog.get_logger(__name__)

# By default, client will automatically create a "_created" meta metric for
#   each metric defined below.
# Having the unix epoch time of when the metric was created isn't that useful for us
#   so we'll disable it.
disable_created_metrics()

METRICS_NS = "huawei_ont"
META_NS = "meta"

# Whole scrape (login -> logout) is usually a second or two; a slow ONT can take most of the timeout
SCRAPE_DURATION_BUCKETS = (0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0)

# WAN status strings the firmware uses for a link that is passing traffic
WAN_UP_STATES = ("up", "connected", "online")

# (record attribute, metric suffix, help text) for the plain one-value gauges
_GAUGES = (
    ("tx_power", "optical_tx_power_dbm", "Transmit optical power in dBm"),
    ("rx_power", "optical_rx_power_dbm", "Receive optical power in dBm"),
    ("voltage", "working_voltage_mv", "Working voltage in mV"),
    ("bias_current", "bias_current_ma", "Bias current in mA"),
    ("temperature", "working_temperature_celsius", "Working temperature in Celsius"),
    ("uptime_seconds", "uptime_seconds", "Device uptime in seconds"),
    ("wan_rx_bytes", "wan_rx_bytes", "Total WAN bytes received"),
    ("wan_tx_bytes", "wan_tx_bytes", "Total WAN bytes transmitted"),
    ("lan_clients_count", "lan_clients", "Number of connected LAN clients"),
    ("wifi_clients_count", "wifi_clients", "Number of connected WiFi clients"),
    ("total_clients_count", "total_clients", "Number of connected clients"),
)

# record attribute -> label on the device info metric
_DEVICE_INFO_LABELS = {
    "device_model": "model",
    "serial_number": "serial",
    "software_version": "software_version",
    "hardware_version": "hardware_version",
    "mac_address": "mac",
}


def wan_status_value(status: str) -> float:
    """1 for a WAN link that is up, 0 for anything else the firmware might say"""
    return 1.0 if status.strip().lower() in WAN_UP_STATES else 0.0


class TelemetryCollector(Collector):
    """Renders the last published TelemetryRecord. Emits nothing until the first publish."""

    def __init__(self):
        self._lock = threading.Lock()
        self._record: TelemetryRecord | None = None
        self._published_at: float | None = None

    def update(self, record: TelemetryRecord, published_at: float) -> None:
        with self._lock:
            self._record = record
            self._published_at = published_at

    def snapshot(self) -> tuple[TelemetryRecord | None, float | None]:
        with self._lock:
            return self._record, self._published_at

    def collect(self):
        record, published_at = self.snapshot()
        if record is None:
            return

        for attr, suffix, doc in _GAUGES:
            if (value := getattr(record, attr)) is None:
                continue
            yield GaugeMetricFamily(f"{METRICS_NS}_{suffix}", doc, value=float(value))

        # Info() is perfect for key/value pairs that are not expected to change often.
        # Absent identity fields are left out of the label set rather than set to ""
        device_labels = {
            label: getattr(record, attr)
            for attr, label in _DEVICE_INFO_LABELS.items()
            if getattr(record, attr) is not None
        }
        if len(device_labels) > 0:
            yield InfoMetricFamily(
                f"{METRICS_NS}_device", "Device information", value=device_labels
            )

        if record.wan_status is not None:
            g = GaugeMetricFamily(
                f"{METRICS_NS}_wan_status",
                "WAN connection status (1=up, 0=down)",
                labels=["ip", "status"],
            )
            g.add_metric(
                [record.wan_ip or "unknown", record.wan_status],
                wan_status_value(record.wan_status),
            )
            yield g

        yield GaugeMetricFamily(
            f"{METRICS_NS}_last_scrape_timestamp_seconds",
            "Unix time of the last successful scrape",
            value=published_at,
        )


class PrometheusSink:
    """Destination for scrape results plus the meta metrics about how scraping is going."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry if registry is not None else CollectorRegistry()

        self._telemetry = TelemetryCollector()
        self.registry.register(self._telemetry)

        ##
        # Meta Metrics
        ##
        # summary comes with both a count and a sum so we don't need to count the number of requests ourselves
        self.s_meta_request_time = Summary(
            f"{META_NS}_request_duration_seconds",
            "Time spent waiting for the ONT to respond",
            # We only request a handful of pages so we can index by the page
            labelnames=["scrape_target"],
            registry=self.registry,
        )

        # Bounded: a handful of targets and the few HTTP codes the ONT actually sends
        self.c_meta_request_result = Counter(
            f"{META_NS}_scrape_result",
            "Count of requests to the ONT by HTTP status",
            labelnames=["http_code", "scrape_target"],
            registry=self.registry,
        )

        self.c_meta_parse_result = Counter(
            f"{META_NS}_parse_result",
            "Count of successful vs failed parse attempts",
            labelnames=["parse_target", "parse_result"],
            registry=self.registry,
        )

        self.c_scrapes = Counter(
            f"{METRICS_NS}_scrapes",
            "Total number of scrapes attempted",
            registry=self.registry,
        )

        self.c_scrape_errors = Counter(
            f"{METRICS_NS}_scrape_errors",
            "Total number of failed scrapes",
            labelnames=["error"],
            registry=self.registry,
        )

        self.h_scrape_duration = Histogram(
            f"{METRICS_NS}_scrape_duration_seconds",
            "Duration of a full ONT scrape in seconds",
            buckets=SCRAPE_DURATION_BUCKETS,
            registry=self.registry,
        )

    def publish(self, record: TelemetryRecord) -> None:
        """Make record the one the exposition endpoint serves. Called once per successful scrape."""
        self._telemetry.update(record, time.time())
        log.debug("Published telemetry record", record=record)

    @property
    def last_record(self) -> TelemetryRecord | None:
        return self._telemetry.snapshot()[0]

    def request_timer(self, target: str) -> AbstractContextManager:
        return self.s_meta_request_time.labels(target).time()

    def record_request(self, target: str, http_code: int | str) -> None:
        self.c_meta_request_result.labels(http_code, target).inc()

    def record_parse(self, target: str, ok: bool) -> None:
        self.c_meta_parse_result.labels(target, ok).inc()

    def record_scrape(self, duration: float, error: Exception | None = None) -> None:
        """Account for one finished scrape cycle; error is None on success."""
        self.c_scrapes.inc()
        if error is None:
            self.h_scrape_duration.observe(duration)
        else:
            self.c_scrape_errors.labels(type(error).__name__).inc()
