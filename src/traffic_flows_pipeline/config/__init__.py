"""Configuration module."""

from .constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CACHE_TTL_DAYS,
    RECORD_TYPE_FLOWS,
    RECORD_TYPE_THREATS,
    STORAGE_MODE_DOCUMENT,
    STORAGE_MODE_TIMESERIES,
)
from .loader import decrypt_sops_file, load_config_file
from .settings import (
    GeoIPSettings,
    InfluxDBSettings,
    Settings,
    StorageSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    # Constants
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_CACHE_TTL_DAYS",
    "RECORD_TYPE_FLOWS",
    "RECORD_TYPE_THREATS",
    "STORAGE_MODE_DOCUMENT",
    "STORAGE_MODE_TIMESERIES",
    # Settings
    "Settings",
    "StorageSettings",
    "InfluxDBSettings",
    "GeoIPSettings",
    "get_settings",
    "clear_settings_cache",
    # Config loading
    "load_config_file",
    "decrypt_sops_file",
]
