"""
Unit tests for the time-series store.

Points are checked through their line protocol; writes go to an in-memory
fake write API, so no InfluxDB server is needed.
"""

import pytest

from traffic_flows_pipeline.geoip import GeoResult, RecordGeo
from traffic_flows_pipeline.ingestion import normalize_record
from traffic_flows_pipeline.storage import StorageConfigurationError, StorageRouter
from traffic_flows_pipeline.storage.timeseries_store import (
    TimeSeriesStore,
    build_flow_point,
    build_point,
    build_threat_point,
)

TS_MS = 1709633700000  # 2024-03-05T10:15:00Z


class FakeWriteAPI:
    """Records write calls; optionally fails every call."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    def write(self, bucket, org, record):
        self.calls.append({"bucket": bucket, "org": org, "points": list(record)})
        if self.fail:
            raise ConnectionError("influxdb unreachable")

    def close(self):
        pass

    @property
    def points(self):
        return [point for call in self.calls for point in call["points"]]


def flow(**overrides):
    row = {
        "Timestamp": "2024-03-05T10:15:00Z",
        "SourceIP": "192.168.1.10",
        "DestinationIP": "8.8.8.8",
        "Protocol": "TCP",
        "Bytes": "100",
    }
    row.update(overrides)
    return normalize_record(row, "flows")


def threat(**overrides):
    row = {
        "Timestamp": "2024-03-05T10:15:00Z",
        "Source Address": "8.8.8.8",
        "Destination Address": "10.0.0.5",
        "Threat Type": "Malware",
        "Severity": "high",
    }
    row.update(overrides)
    return normalize_record(row, "threats")


class TestPointBuilders:
    """Tests for record to point conversion."""

    def test_flow_point_tags_and_fields(self):
        line = build_flow_point(flow()).to_line_protocol()

        assert line.startswith("network_flow,")
        assert "sourceAddress=192.168.1.10" in line
        assert "destinationAddress=8.8.8.8" in line
        assert "protocol=TCP" in line
        assert "application=unknown" in line
        assert "bytes=100i" in line
        assert "packets=0i" in line
        assert line.endswith(f" {TS_MS}")

    def test_threat_point_tags_and_fields(self):
        line = build_threat_point(threat()).to_line_protocol()

        assert line.startswith("network_threat,")
        assert "threatType=Malware" in line
        assert "threatCategory=unknown" in line
        assert "severity=high" in line
        assert 'action="blocked"' in line
        assert line.endswith(f" {TS_MS}")

    def test_build_point_dispatches_on_type(self):
        assert build_point(flow()).to_line_protocol().startswith("network_flow")
        assert build_point(threat()).to_line_protocol().startswith("network_threat")

    def test_geo_adds_role_prefixed_tags_and_fields(self):
        geo = RecordGeo(
            source=None,
            destination=GeoResult(
                ip="8.8.8.8",
                latitude=37.75,
                longitude=-97.82,
                country="US",
                city="Mountain View",
                isp="Google",
            ),
        )
        line = build_flow_point(flow(), geo).to_line_protocol()

        assert "destCountry=US" in line
        assert "destCity=Mountain\\ View" in line
        assert "destISP=Google" in line
        assert "destLatitude=37.75" in line
        assert "destLongitude=-97.82" in line
        assert "sourceCountry" not in line

    def test_geo_without_coordinates_is_ignored(self):
        geo = RecordGeo(destination=GeoResult(ip="8.8.8.8", country="US"))
        line = build_flow_point(flow(), geo).to_line_protocol()
        assert "destCountry" not in line

    def test_missing_addresses_and_protocol_tagged_unknown(self):
        line = build_flow_point(flow(SourceIP="", DestinationIP="", Protocol="")).to_line_protocol()

        assert "sourceAddress=unknown" in line
        assert "destinationAddress=unknown" in line
        assert "protocol=unknown" in line

        line = build_threat_point(threat(**{"Source Address": ""})).to_line_protocol()
        assert "sourceAddress=unknown" in line

    def test_geo_without_country_tagged_unknown(self):
        geo = RecordGeo(destination=GeoResult(ip="8.8.8.8", latitude=1.0, longitude=2.0))
        line = build_flow_point(flow(), geo).to_line_protocol()
        assert "destCountry=unknown" in line

    def test_threat_points_carry_geo(self):
        geo = RecordGeo(source=GeoResult(ip="8.8.8.8", latitude=1.0, longitude=2.0, country="US"))
        line = build_threat_point(threat(), geo).to_line_protocol()
        assert "sourceCountry=US" in line
        assert "sourceLatitude=1" in line


class TestTimeSeriesStore:
    """Tests for buffering, flushing and failure accounting."""

    def test_missing_token_raises_at_construction(self):
        with pytest.raises(StorageConfigurationError):
            TimeSeriesStore(url="http://localhost:8086", token="")

    def test_missing_bucket_raises(self):
        with pytest.raises(StorageConfigurationError):
            TimeSeriesStore(bucket="", write_api=FakeWriteAPI())

    def test_buffers_until_flush(self):
        api = FakeWriteAPI()
        store = TimeSeriesStore(bucket="flows", org="home", write_api=api)

        assert store.write(flow())
        assert store.write(threat())
        assert api.calls == []

        assert store.flush() == 0
        assert len(api.calls) == 1
        assert api.calls[0]["bucket"] == "flows"
        assert api.calls[0]["org"] == "home"
        assert len(api.points) == 2

    def test_flush_with_empty_buffer_writes_nothing(self):
        api = FakeWriteAPI()
        store = TimeSeriesStore(write_api=api)
        assert store.flush() == 0
        assert api.calls == []

    def test_intermediate_write_at_max_buffer(self):
        api = FakeWriteAPI()
        store = TimeSeriesStore(write_api=api, max_buffer=2)

        for _ in range(5):
            store.write(flow())

        assert len(api.calls) == 2
        store.flush()
        assert len(api.calls) == 3
        assert len(api.points) == 5

    def test_failed_write_reported_by_flush(self):
        store = TimeSeriesStore(write_api=FakeWriteAPI(fail=True), max_buffer=2)

        for _ in range(3):
            assert store.write(flow())

        assert store.flush() == 3
        assert store.flush() == 0

    def test_router_counts_lost_points_as_failed(self):
        router = StorageRouter(TimeSeriesStore(write_api=FakeWriteAPI(fail=True)))

        for _ in range(4):
            router.write(flow())
        assert router.counters.succeeded == 4

        router.flush()
        assert router.counters.to_dict() == {"attempted": 4, "succeeded": 0, "failed": 4}

    def test_health_check_with_injected_write_api(self):
        check = TimeSeriesStore(write_api=FakeWriteAPI()).health_check()
        assert check["healthy"] is True
        assert check["backend_type"] == "timeseries"
