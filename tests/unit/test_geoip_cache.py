"""
Unit tests for the two-tier geolocation cache.
"""

import json

from traffic_flows_pipeline.geoip import GeoCache, GeoResult, cache_filename

DAY = 24 * 60 * 60

GOOGLE = GeoResult(
    ip="8.8.8.8",
    latitude=37.751,
    longitude=-97.822,
    country="US",
    city="",
    isp="Google LLC",
    asn="AS15169",
)


class TestGeoCache:
    """Tests for GeoCache."""

    def test_miss_returns_none(self, geo_cache):
        assert geo_cache.get("8.8.8.8") is None

    def test_put_then_get_from_memory(self, geo_cache):
        geo_cache.put("8.8.8.8", GOOGLE)
        assert geo_cache.get("8.8.8.8") == GOOGLE
        assert geo_cache.memory_size == 1

    def test_file_document_shape(self, geo_cache, fake_clock):
        geo_cache.put("8.8.8.8", GOOGLE)
        document = json.loads(geo_cache.path_for("8.8.8.8").read_text())
        assert document["timestamp"] == int(fake_clock() * 1000)
        assert document["data"]["country"] == "US"
        assert document["data"]["latitude"] == 37.751
        assert geo_cache.path_for("8.8.8.8").name == "8.8.8.8.json"

    def test_file_tier_survives_memory_clear_and_is_promoted(self, geo_cache):
        geo_cache.put("8.8.8.8", GOOGLE)
        geo_cache.clear_memory()
        assert geo_cache.memory_size == 0

        assert geo_cache.get("8.8.8.8") == GOOGLE
        assert geo_cache.memory_size == 1

    def test_file_tier_shared_between_instances(self, tmp_path, fake_clock):
        GeoCache(tmp_path, clock=fake_clock).put("1.1.1.1", GOOGLE)
        assert GeoCache(tmp_path, clock=fake_clock).get("1.1.1.1") == GOOGLE

    def test_entry_valid_before_ttl(self, geo_cache, fake_clock):
        geo_cache.put("8.8.8.8", GOOGLE)
        fake_clock.advance(29 * DAY)
        assert geo_cache.get("8.8.8.8") == GOOGLE

    def test_expired_entry_is_absent_and_file_removed(self, geo_cache, fake_clock):
        geo_cache.put("8.8.8.8", GOOGLE)
        path = geo_cache.path_for("8.8.8.8")
        assert path.exists()

        fake_clock.advance(31 * DAY)
        assert geo_cache.get("8.8.8.8") is None
        assert not path.exists()

    def test_expired_file_written_by_earlier_run(self, geo_cache, fake_clock):
        stale_ms = int((fake_clock() - 31 * DAY) * 1000)
        path = geo_cache.path_for("8.8.8.8")
        path.write_text(json.dumps({"timestamp": stale_ms, "data": GOOGLE.to_dict()}))

        assert geo_cache.get("8.8.8.8") is None
        assert not path.exists()

    def test_corrupt_file_is_a_miss(self, geo_cache):
        geo_cache.path_for("8.8.8.8").write_text("{not json")
        assert geo_cache.get("8.8.8.8") is None

    def test_ipv6_filename_is_safe(self):
        assert cache_filename("2001:4860:4860::8888") == "2001_4860_4860__8888.json"

    def test_cache_dir_created(self, tmp_path):
        target = tmp_path / "nested" / "cache"
        GeoCache(target)
        assert target.is_dir()
