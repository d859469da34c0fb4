"""
Application settings and configuration management.

Supports loading from:
1. YAML config files (config.yaml, or SOPS-encrypted config.enc.yaml)
2. Environment variables, optionally seeded from a .env file (fallback)
"""

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from .constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CACHE_TTL_DAYS,
    IP_API_COM_LIMIT,
    IP_API_COM_WINDOW_SECONDS,
    IPAPI_CO_LIMIT,
    IPAPI_CO_WINDOW_SECONDS,
    STORAGE_MODE_DOCUMENT,
    STORAGE_MODES,
    STORAGE_MODE_TIMESERIES,
)

logger = logging.getLogger(__name__)


def _safe_int(key: str, default: int) -> int:
    """Safely parse int from env var, using default on error."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


def _safe_float(key: str, default: float) -> float:
    """Safely parse float from env var, using default on error."""
    try:
        return float(os.environ.get(key, str(default)))
    except ValueError:
        return default


def _safe_bool(key: str, default: bool) -> bool:
    """Safely parse bool from env var."""
    return os.environ.get(key, str(default).lower()).strip().lower() == "true"


# =============================================================================
# Storage Settings
# =============================================================================


@dataclass
class StorageSettings:
    """Selects the active record store and its local parameters."""

    mode: str = STORAGE_MODE_DOCUMENT
    document_db_path: str = "data/flows.db"
    batch_size: int = DEFAULT_BATCH_SIZE

    def validate(self) -> list[str]:
        """Validate settings values. Returns list of errors."""
        errors = []
        if self.mode not in STORAGE_MODES:
            errors.append(
                f"storage.mode must be one of {sorted(STORAGE_MODES)}, got {self.mode!r}"
            )
        if self.batch_size < 1:
            errors.append(f"storage.batch_size must be >= 1, got {self.batch_size}")
        return errors

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> "StorageSettings":
        """Create from configuration dictionary."""
        return cls(
            mode=config.get("mode", STORAGE_MODE_DOCUMENT),
            document_db_path=config.get("document_db_path", "data/flows.db"),
            batch_size=config.get("batch_size", DEFAULT_BATCH_SIZE),
        )

    @classmethod
    def from_env(cls) -> "StorageSettings":
        """Create from environment variables.

        ``USE_INFLUXDB=true`` switches to the time-series store; an explicit
        ``STORAGE_MODE`` wins over it.
        """
        mode = (
            STORAGE_MODE_TIMESERIES
            if _safe_bool("USE_INFLUXDB", False)
            else STORAGE_MODE_DOCUMENT
        )
        mode = os.environ.get("STORAGE_MODE", mode).strip().lower()
        db_dir = os.environ.get("DB_DIR", "data")
        return cls(
            mode=mode,
            document_db_path=str(Path(db_dir) / "flows.db"),
            batch_size=_safe_int("DB_BATCH_SIZE", DEFAULT_BATCH_SIZE),
        )


# =============================================================================
# InfluxDB Settings
# =============================================================================


@dataclass
class InfluxDBSettings:
    """Connection parameters for the time-series store."""

    url: str = "http://localhost:8086"
    token: str = ""
    org: str = "unifi-flows"
    bucket: str = "network-data"

    def validate(self) -> list[str]:
        errors = []
        if not self.token:
            errors.append("influxdb.token is required for timeseries mode")
        if not self.bucket:
            errors.append("influxdb.bucket is required for timeseries mode")
        return errors

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> "InfluxDBSettings":
        return cls(
            url=config.get("url", "http://localhost:8086"),
            token=config.get("token", ""),
            org=config.get("org", "unifi-flows"),
            bucket=config.get("bucket", "network-data"),
        )

    @classmethod
    def from_env(cls) -> "InfluxDBSettings":
        return cls(
            url=os.environ.get("INFLUXDB_URL", "http://localhost:8086"),
            token=os.environ.get("INFLUXDB_TOKEN", ""),
            org=os.environ.get("INFLUXDB_ORG", "unifi-flows"),
            bucket=os.environ.get("INFLUXDB_BUCKET", "network-data"),
        )


# =============================================================================
# GeoIP Settings
# =============================================================================


@dataclass
class GeoIPSettings:
    """
    Configuration for geolocation enrichment.

    Provider quotas default to the free tiers: ipapi.co allows 30,000
    requests per month (spread over hourly windows) and ip-api.com allows
    45 requests per minute.
    """

    enabled: bool = True
    cache_dir: str = "data/geoip-cache"
    cache_ttl_days: int = DEFAULT_CACHE_TTL_DAYS
    request_timeout: float = 5.0

    ipapi_co_limit: int = IPAPI_CO_LIMIT
    ipapi_co_window_seconds: float = IPAPI_CO_WINDOW_SECONDS
    ip_api_com_limit: int = IP_API_COM_LIMIT
    ip_api_com_window_seconds: float = IP_API_COM_WINDOW_SECONDS

    def validate(self) -> list[str]:
        """Validate settings values. Returns list of errors."""
        errors = []
        if self.cache_ttl_days < 1:
            errors.append(f"geoip.cache_ttl_days must be >= 1, got {self.cache_ttl_days}")
        if self.request_timeout <= 0:
            errors.append(
                f"geoip.request_timeout must be > 0, got {self.request_timeout}"
            )
        for name in ("ipapi_co_limit", "ip_api_com_limit"):
            if getattr(self, name) < 0:
                errors.append(f"geoip.{name} must be >= 0, got {getattr(self, name)}")
        for name in ("ipapi_co_window_seconds", "ip_api_com_window_seconds"):
            if getattr(self, name) <= 0:
                errors.append(f"geoip.{name} must be > 0, got {getattr(self, name)}")
        return errors

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "enabled": self.enabled,
            "cache_dir": self.cache_dir,
            "cache_ttl_days": self.cache_ttl_days,
            "request_timeout": self.request_timeout,
            "ipapi_co_limit": self.ipapi_co_limit,
            "ipapi_co_window_seconds": self.ipapi_co_window_seconds,
            "ip_api_com_limit": self.ip_api_com_limit,
            "ip_api_com_window_seconds": self.ip_api_com_window_seconds,
        }

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> "GeoIPSettings":
        """Create from configuration dictionary."""
        return cls(
            enabled=config.get("enabled", True),
            cache_dir=config.get("cache_dir", "data/geoip-cache"),
            cache_ttl_days=config.get("cache_ttl_days", DEFAULT_CACHE_TTL_DAYS),
            request_timeout=config.get("request_timeout", 5.0),
            ipapi_co_limit=config.get("ipapi_co_limit", IPAPI_CO_LIMIT),
            ipapi_co_window_seconds=config.get(
                "ipapi_co_window_seconds", IPAPI_CO_WINDOW_SECONDS
            ),
            ip_api_com_limit=config.get("ip_api_com_limit", IP_API_COM_LIMIT),
            ip_api_com_window_seconds=config.get(
                "ip_api_com_window_seconds", IP_API_COM_WINDOW_SECONDS
            ),
        )

    @classmethod
    def from_env(cls) -> "GeoIPSettings":
        """Create from environment variables."""
        return cls(
            # Only an explicit "false" turns lookups off
            enabled=os.environ.get("GEOIP_ENABLED", "").strip().lower() != "false",
            cache_dir=os.environ.get("GEOIP_CACHE_DIR", "data/geoip-cache"),
            cache_ttl_days=_safe_int("GEOIP_CACHE_TTL_DAYS", DEFAULT_CACHE_TTL_DAYS),
            request_timeout=_safe_float("GEOIP_REQUEST_TIMEOUT", 5.0),
            ipapi_co_limit=_safe_int("GEOIP_IPAPI_CO_LIMIT", IPAPI_CO_LIMIT),
            ipapi_co_window_seconds=_safe_float(
                "GEOIP_IPAPI_CO_WINDOW_SECONDS", IPAPI_CO_WINDOW_SECONDS
            ),
            ip_api_com_limit=_safe_int("GEOIP_IP_API_COM_LIMIT", IP_API_COM_LIMIT),
            ip_api_com_window_seconds=_safe_float(
                "GEOIP_IP_API_COM_WINDOW_SECONDS", IP_API_COM_WINDOW_SECONDS
            ),
        )


# =============================================================================
# Main Settings
# =============================================================================


@dataclass
class Settings:
    """Application settings for the flow import pipeline."""

    storage: StorageSettings = field(default_factory=StorageSettings)
    influxdb: InfluxDBSettings = field(default_factory=InfluxDBSettings)
    geoip: GeoIPSettings = field(default_factory=GeoIPSettings)

    # Directory scanned by ImportPipeline.import_directory()
    import_dir: str = "downloads"

    @property
    def use_timeseries(self) -> bool:
        """True when the time-series store is the active backend."""
        return self.storage.mode == STORAGE_MODE_TIMESERIES

    def validate(self) -> list[str]:
        """Validate required settings are present. Returns list of errors."""
        errors = []
        errors.extend(self.storage.validate())
        if self.use_timeseries:
            errors.extend(self.influxdb.validate())
        errors.extend(self.geoip.validate())
        return errors

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> "Settings":
        """Create Settings from configuration dictionary (e.g., from YAML)."""
        return cls(
            storage=StorageSettings.from_dict(config.get("storage") or {}),
            influxdb=InfluxDBSettings.from_dict(config.get("influxdb") or {}),
            geoip=GeoIPSettings.from_dict(config.get("geoip") or {}),
            import_dir=config.get("import_dir", "downloads"),
        )

    @classmethod
    def from_env(cls) -> "Settings":
        """Create Settings from environment variables."""
        return cls(
            storage=StorageSettings.from_env(),
            influxdb=InfluxDBSettings.from_env(),
            geoip=GeoIPSettings.from_env(),
            import_dir=os.environ.get("DOWNLOAD_DIR", "downloads"),
        )


# Default config file paths, checked in order
DEFAULT_CONFIG_PATHS = (Path("config.enc.yaml"), Path("config.yaml"))


@lru_cache
def get_settings(config_path: Optional[str] = None) -> Settings:
    """
    Get cached settings instance.

    Loads from a YAML config file if one is available, otherwise from
    environment variables (after reading any ``.env`` file).

    Args:
        config_path: Optional path to a YAML or SOPS-encrypted YAML file

    Returns:
        Settings instance
    """
    candidates = (Path(config_path),) if config_path else DEFAULT_CONFIG_PATHS

    for path in candidates:
        if not path.exists():
            continue
        try:
            from .loader import load_config_file

            config = load_config_file(path)
            return Settings.from_dict(config)
        except (OSError, RuntimeError, ValueError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            logger.warning("Falling back to environment variables")
            break

    load_dotenv()
    return Settings.from_env()


def clear_settings_cache() -> None:
    """Clear the cached settings (useful for testing)."""
    get_settings.cache_clear()
