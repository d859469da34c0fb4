"""
Geolocation lookup service.

Orchestrates the cache and an ordered provider chain:

1. Reject private / loopback / link-local addresses without any I/O
2. Return a cached result when one is fresh
3. Walk the providers in priority order, skipping any whose rate limiter
   denies a permit; the first non-None result is cached and returned
4. Otherwise return None ("enrichment unavailable", not an error)

The providers are tried in sequence, never concurrently, so the
tighter-quota provider is only spent when the first one cannot answer.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Optional

import httpx

from ..config.constants import IP_API_COM, IPAPI_CO
from .addresses import is_private_address
from .cache import GeoCache
from .models import GeoResult, RecordGeo
from .providers import DEFAULT_HEADERS, GeoProvider, IpApiComProvider, IpapiCoProvider
from .rate_limiter import RateLimiter, RateLimiterRegistry

if TYPE_CHECKING:
    from ..config.settings import GeoIPSettings
    from ..ingestion.records import CanonicalRecord

logger = logging.getLogger(__name__)


@dataclass
class ProviderSlot:
    """One step of the fallback chain: a provider and the limiter guarding it."""

    limiter: RateLimiter
    provider: GeoProvider


@dataclass
class LookupStats:
    """Running counters for a lookup service."""

    lookups: int = 0
    skipped_private: int = 0
    cache_hits: int = 0
    provider_hits: int = 0
    rate_limited: int = 0
    misses: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def increment(self, name: str) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + 1)

    def to_dict(self) -> dict:
        return {
            "lookups": self.lookups,
            "skipped_private": self.skipped_private,
            "cache_hits": self.cache_hits,
            "provider_hits": self.provider_hits,
            "rate_limited": self.rate_limited,
            "misses": self.misses,
        }


class GeoLookupService:
    """
    Cache-first geolocation with provider fallback.

    The cache and the provider chain are injected, so tests can supply a
    fake clock and stub providers. Instances may be shared by concurrent
    imports: the cache and every limiter are internally locked.

    Usage:
        service = get_geo_service(settings.geoip)
        geo = service.lookup("8.8.8.8")
    """

    def __init__(
        self,
        cache: GeoCache,
        providers: Iterable[ProviderSlot],
        enabled: bool = True,
    ):
        """
        Args:
            cache: Two-tier result cache
            providers: Provider chain in priority order
            enabled: When False every lookup returns None
        """
        self.cache = cache
        self.providers = list(providers)
        self.enabled = enabled
        self.stats = LookupStats()
        self._owned_client: Optional[httpx.Client] = None

    @classmethod
    def from_settings(
        cls,
        settings: "GeoIPSettings",
        client: Optional[httpx.Client] = None,
        limiters: Optional[RateLimiterRegistry] = None,
    ) -> "GeoLookupService":
        """
        Build the default ipapi.co -> ip-api.com chain.

        Args:
            settings: Geolocation settings (cache dir, TTL, provider quotas)
            client: Optional shared httpx client for both providers
            limiters: Registry the provider limiters are taken from
                      (default: a new registry)
        """
        owns_client = client is None
        if client is None:
            client = httpx.Client(timeout=settings.request_timeout, headers=DEFAULT_HEADERS)
        if limiters is None:
            limiters = RateLimiterRegistry()

        providers = [
            ProviderSlot(
                limiter=limiters.get(
                    IPAPI_CO, settings.ipapi_co_limit, settings.ipapi_co_window_seconds
                ),
                provider=IpapiCoProvider(client=client),
            ),
            ProviderSlot(
                limiter=limiters.get(
                    IP_API_COM, settings.ip_api_com_limit, settings.ip_api_com_window_seconds
                ),
                provider=IpApiComProvider(client=client),
            ),
        ]
        cache = GeoCache(settings.cache_dir, ttl_days=settings.cache_ttl_days)
        logger.info(
            f"GeoIP lookup {'enabled' if settings.enabled else 'disabled'}, "
            f"cache at {settings.cache_dir}"
        )
        service = cls(cache=cache, providers=providers, enabled=settings.enabled)
        if owns_client:
            service._owned_client = client
        return service

    def lookup(self, address: Optional[str]) -> Optional[GeoResult]:
        """
        Geolocate one address.

        Returns:
            GeoResult, or None when the address is private, every provider
            was rate limited or failed, or lookup is disabled
        """
        if not self.enabled:
            return None

        self.stats.increment("lookups")
        if is_private_address(address):
            self.stats.increment("skipped_private")
            return None

        address = address.strip()
        cached = self.cache.get(address)
        if cached is not None:
            self.stats.increment("cache_hits")
            return cached

        for slot in self.providers:
            if not slot.limiter.try_acquire():
                self.stats.increment("rate_limited")
                logger.debug(f"Skipping {slot.provider.provider_id} for {address}: rate limited")
                continue

            result = slot.provider.fetch(address)
            if result is not None:
                self.stats.increment("provider_hits")
                self.cache.put(address, result)
                return result

        self.stats.increment("misses")
        logger.debug(f"No geolocation available for {address}")
        return None

    def enrich(self, record: "CanonicalRecord") -> RecordGeo:
        """Geolocate both ends of a record."""
        return RecordGeo(
            source=self.lookup(record.source_address),
            destination=self.lookup(record.destination_address),
        )

    def close(self) -> None:
        """Release provider HTTP clients."""
        for slot in self.providers:
            slot.provider.close()
        if self._owned_client is not None:
            self._owned_client.close()
            self._owned_client = None


# Process-wide services, one per geolocation configuration. Provider
# quotas are per process, so every service draws from one registry.
_shared_services: dict[tuple, GeoLookupService] = {}
_shared_limiters = RateLimiterRegistry()
_shared_lock = threading.Lock()


def get_geo_service(settings: "GeoIPSettings") -> GeoLookupService:
    """
    Get the process-wide lookup service for these settings.

    Every caller passing equal settings gets the same instance, so imports
    share one cache. All services share one set of provider limiters.
    Callers must not close it; use clear_geo_service_cache() instead.
    """
    key = tuple(sorted(settings.to_dict().items()))
    with _shared_lock:
        service = _shared_services.get(key)
        if service is None:
            service = GeoLookupService.from_settings(settings, limiters=_shared_limiters)
            _shared_services[key] = service
        return service


def clear_geo_service_cache() -> None:
    """Close and forget the process-wide services and limiters. Useful for testing."""
    global _shared_limiters
    with _shared_lock:
        services = list(_shared_services.values())
        _shared_services.clear()
        _shared_limiters = RateLimiterRegistry()
    for service in services:
        service.close()
