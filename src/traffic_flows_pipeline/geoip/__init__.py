"""
Geolocation enrichment: cache, rate limiting and provider fallback.

Usage:
    from traffic_flows_pipeline.geoip import get_geo_service

    service = get_geo_service(get_settings().geoip)
    result = service.lookup("8.8.8.8")
"""

from .addresses import is_private_address, parse_address
from .cache import GeoCache, cache_filename
from .models import GeoResult, RecordGeo
from .providers import GeoProvider, IpApiComProvider, IpapiCoProvider
from .rate_limiter import RateLimiter, RateLimiterRegistry
from .service import (
    GeoLookupService,
    LookupStats,
    ProviderSlot,
    clear_geo_service_cache,
    get_geo_service,
)

__all__ = [
    # Models
    "GeoResult",
    "RecordGeo",
    # Building blocks
    "GeoCache",
    "cache_filename",
    "RateLimiter",
    "RateLimiterRegistry",
    "GeoProvider",
    "IpapiCoProvider",
    "IpApiComProvider",
    # Service
    "GeoLookupService",
    "LookupStats",
    "ProviderSlot",
    "get_geo_service",
    "clear_geo_service_cache",
    # Address classification
    "is_private_address",
    "parse_address",
]
