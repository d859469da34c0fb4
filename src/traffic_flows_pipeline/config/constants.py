"""
Constants for record types, storage modes and geolocation providers.
"""

# =============================================================================
# Record Types
# =============================================================================

RECORD_TYPE_FLOWS = "flows"
RECORD_TYPE_THREATS = "threats"

# =============================================================================
# Storage
# =============================================================================

STORAGE_MODE_DOCUMENT = "document"
STORAGE_MODE_TIMESERIES = "timeseries"
STORAGE_MODES = frozenset([STORAGE_MODE_DOCUMENT, STORAGE_MODE_TIMESERIES])

# Records are written to the document store in batches of this size
DEFAULT_BATCH_SIZE = 1000

# Time-series measurement names
FLOW_MEASUREMENT = "network_flow"
THREAT_MEASUREMENT = "network_threat"

# =============================================================================
# Geolocation
# =============================================================================

DEFAULT_CACHE_TTL_DAYS = 30

IPAPI_CO = "ipapi.co"
IP_API_COM = "ip-api.com"

# ipapi.co free tier: 30,000 requests per month. Spread over the 720 hourly
# windows of a 30-day month, rounded down so the monthly quota holds.
IPAPI_CO_MONTHLY_QUOTA = 30000
IPAPI_CO_LIMIT = IPAPI_CO_MONTHLY_QUOTA // (30 * 24)
IPAPI_CO_WINDOW_SECONDS = 3600.0

# ip-api.com free tier: 45 requests per minute
IP_API_COM_LIMIT = 45
IP_API_COM_WINDOW_SECONDS = 60.0

IPAPI_CO_URL = "https://ipapi.co/{ip}/json/"
IP_API_COM_URL = "http://ip-api.com/json/{ip}"
IP_API_COM_FIELDS = "status,message,country,countryCode,city,lat,lon,isp,as"
