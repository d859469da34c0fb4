"""
Pytest configuration and shared fixtures for unit tests.
"""

from typing import Optional

import pytest

from traffic_flows_pipeline.geoip import GeoCache, GeoResult, RateLimiter
from traffic_flows_pipeline.geoip.providers import GeoProvider


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubProvider(GeoProvider):
    """Provider returning canned results and counting calls."""

    def __init__(self, name: str, results: Optional[dict[str, GeoResult]] = None):
        super().__init__(client=None)
        self._name = name
        self.results = results or {}
        self.calls: list[str] = []

    @property
    def provider_id(self) -> str:
        return self._name

    def build_request(self, address):
        return f"https://stub.invalid/{address}", {}

    def parse_response(self, address, payload):
        return None

    def fetch(self, address: str) -> Optional[GeoResult]:
        self.calls.append(address)
        return self.results.get(address)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def geo_cache(tmp_path, fake_clock) -> GeoCache:
    return GeoCache(tmp_path / "geoip-cache", ttl_days=30, clock=fake_clock)


@pytest.fixture
def generous_limiter(fake_clock) -> RateLimiter:
    return RateLimiter(max_requests=1000, window_seconds=60.0, clock=fake_clock)


@pytest.fixture
def stub_provider_factory():
    """Build StubProvider instances; their httpx clients are closed afterwards."""
    created = []

    def _make(name: str, results: Optional[dict[str, GeoResult]] = None) -> StubProvider:
        provider = StubProvider(name, results)
        created.append(provider)
        return provider

    yield _make

    for provider in created:
        provider.close()
