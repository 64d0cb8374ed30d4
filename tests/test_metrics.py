"""
Tests for PrometheusSink: what ends up on /metrics after a publish.
"""

import pytest
from err.exceptions import AuthenticationFailure

from huawei_ont.metrics import wan_status_value
from huawei_ont.record import TelemetryRecord

OPTICAL = dict(tx_power=2.33, rx_power=-24.09, voltage=3364.0, bias_current=10.0, temperature=47.0)


def test_nothing_exposed_before_first_publish(sink):
    assert sink.registry.get_sample_value("huawei_ont_optical_rx_power_dbm") is None
    assert sink.last_record is None


def test_mandatory_only_record(sink):
    sink.publish(TelemetryRecord(**OPTICAL))

    assert sink.registry.get_sample_value("huawei_ont_optical_tx_power_dbm") == 2.33
    assert sink.registry.get_sample_value("huawei_ont_optical_rx_power_dbm") == -24.09
    assert sink.registry.get_sample_value("huawei_ont_working_voltage_mv") == 3364.0
    assert sink.registry.get_sample_value("huawei_ont_bias_current_ma") == 10.0
    assert sink.registry.get_sample_value("huawei_ont_working_temperature_celsius") == 47.0
    assert sink.registry.get_sample_value("huawei_ont_last_scrape_timestamp_seconds") > 0

    # Absent optional fields are absent series, not zeros
    assert sink.registry.get_sample_value("huawei_ont_uptime_seconds") is None
    assert sink.registry.get_sample_value("huawei_ont_lan_clients") is None
    assert sink.registry.get_sample_value("huawei_ont_wan_rx_bytes") is None
    families = {m.name for m in sink.registry.collect()}
    assert "huawei_ont_device" not in families
    assert "huawei_ont_wan_status" not in families


def test_optional_fields(sink):
    sink.publish(
        TelemetryRecord(
            **OPTICAL,
            device_model="HG8145V5",
            serial_number="4857544312AB34CD",
            software_version="V5R020C10S115",
            uptime_seconds=3600,
            wan_status="Connected",
            wan_ip="100.64.12.7",
            wan_rx_bytes=0,
            lan_clients_count=2,
            total_clients_count=2,
        )
    )

    assert sink.registry.get_sample_value("huawei_ont_uptime_seconds") == 3600
    # a real zero is still published
    assert sink.registry.get_sample_value("huawei_ont_wan_rx_bytes") == 0
    assert sink.registry.get_sample_value("huawei_ont_wan_tx_bytes") is None
    assert sink.registry.get_sample_value("huawei_ont_lan_clients") == 2
    assert sink.registry.get_sample_value("huawei_ont_wifi_clients") is None
    assert sink.registry.get_sample_value("huawei_ont_total_clients") == 2
    assert (
        sink.registry.get_sample_value(
            "huawei_ont_wan_status", {"ip": "100.64.12.7", "status": "Connected"}
        )
        == 1.0
    )
    assert (
        sink.registry.get_sample_value(
            "huawei_ont_device_info",
            {
                "model": "HG8145V5",
                "serial": "4857544312AB34CD",
                "software_version": "V5R020C10S115",
            },
        )
        == 1.0
    )


def test_wan_status_without_ip(sink):
    sink.publish(TelemetryRecord(**OPTICAL, wan_status="Disconnected"))
    assert (
        sink.registry.get_sample_value(
            "huawei_ont_wan_status", {"ip": "unknown", "status": "Disconnected"}
        )
        == 0.0
    )


def test_publish_replaces_whole_record(sink):
    sink.publish(TelemetryRecord(**OPTICAL, uptime_seconds=10, lan_clients_count=1))
    sink.publish(TelemetryRecord(**{**OPTICAL, "rx_power": -20.0}))

    assert sink.registry.get_sample_value("huawei_ont_optical_rx_power_dbm") == -20.0
    # Nothing from the previous record lingers
    assert sink.registry.get_sample_value("huawei_ont_uptime_seconds") is None
    assert sink.registry.get_sample_value("huawei_ont_lan_clients") is None


@pytest.mark.parametrize(
    "status,expected",
    [("Connected", 1.0), ("up", 1.0), (" Online ", 1.0), ("Disconnected", 0.0), ("Connecting", 0.0)],
)
def test_wan_status_value(status, expected):
    assert wan_status_value(status) == expected


def test_scrape_bookkeeping(sink):
    sink.record_scrape(1.5)
    sink.record_scrape(0.2, AuthenticationFailure("nope"))

    assert sink.registry.get_sample_value("huawei_ont_scrapes_total") == 2
    assert (
        sink.registry.get_sample_value(
            "huawei_ont_scrape_errors_total", {"error": "AuthenticationFailure"}
        )
        == 1
    )
    assert sink.registry.get_sample_value("huawei_ont_scrape_duration_seconds_count") == 1
    assert sink.registry.get_sample_value("huawei_ont_scrape_duration_seconds_sum") == 1.5


def test_request_and_parse_bookkeeping(sink):
    with sink.request_timer("optical"):
        pass
    sink.record_request("optical", 200)
    sink.record_parse("optical", True)

    assert (
        sink.registry.get_sample_value(
            "meta_request_duration_seconds_count", {"scrape_target": "optical"}
        )
        == 1
    )
    assert (
        sink.registry.get_sample_value(
            "meta_scrape_result_total", {"http_code": "200", "scrape_target": "optical"}
        )
        == 1
    )
    assert (
        sink.registry.get_sample_value(
            "meta_parse_result_total", {"parse_target": "optical", "parse_result": "True"}
        )
        == 1
    )
