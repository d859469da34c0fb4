"""
Unit tests for configuration loading.
"""

import pytest

from traffic_flows_pipeline.config import (
    GeoIPSettings,
    Settings,
    StorageSettings,
    clear_settings_cache,
    get_settings,
    load_config_file,
)

ENV_KEYS = (
    "USE_INFLUXDB",
    "STORAGE_MODE",
    "DB_DIR",
    "DB_BATCH_SIZE",
    "INFLUXDB_URL",
    "INFLUXDB_TOKEN",
    "INFLUXDB_ORG",
    "INFLUXDB_BUCKET",
    "GEOIP_ENABLED",
    "GEOIP_CACHE_DIR",
    "GEOIP_CACHE_TTL_DAYS",
    "GEOIP_IPAPI_CO_LIMIT",
    "DOWNLOAD_DIR",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Empty environment for settings keys, run from an empty directory."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    yield monkeypatch
    clear_settings_cache()


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self):
        settings = Settings()
        assert settings.storage.mode == "document"
        assert settings.storage.batch_size == 1000
        assert settings.use_timeseries is False
        assert settings.geoip.cache_ttl_days == 30
        assert settings.geoip.ipapi_co_limit == 41
        assert settings.geoip.ipapi_co_window_seconds == 3600.0
        assert settings.geoip.ip_api_com_limit == 45
        assert settings.geoip.ip_api_com_window_seconds == 60.0
        assert settings.validate() == []

    def test_timeseries_requires_token(self):
        settings = Settings(storage=StorageSettings(mode="timeseries"))
        errors = settings.validate()
        assert any("influxdb.token" in error for error in errors)

    def test_invalid_mode_reported(self):
        errors = StorageSettings(mode="sql").validate()
        assert errors and "storage.mode" in errors[0]

    def test_invalid_geoip_values_reported(self):
        errors = GeoIPSettings(cache_ttl_days=0, ip_api_com_window_seconds=0).validate()
        assert len(errors) == 2


class TestFromEnv:
    """Tests for environment variable loading."""

    def test_use_influxdb_switches_mode(self, clean_env):
        clean_env.setenv("USE_INFLUXDB", "true")
        clean_env.setenv("INFLUXDB_TOKEN", "secret")
        settings = Settings.from_env()
        assert settings.use_timeseries
        assert settings.influxdb.token == "secret"

    def test_storage_mode_overrides_use_influxdb(self, clean_env):
        clean_env.setenv("USE_INFLUXDB", "true")
        clean_env.setenv("STORAGE_MODE", "document")
        assert Settings.from_env().storage.mode == "document"

    def test_db_dir_and_batch_size(self, clean_env):
        clean_env.setenv("DB_DIR", "/var/lib/flows")
        clean_env.setenv("DB_BATCH_SIZE", "250")
        storage = Settings.from_env().storage
        assert storage.document_db_path.replace("\\", "/") == "/var/lib/flows/flows.db"
        assert storage.batch_size == 250

    def test_invalid_numbers_fall_back_to_defaults(self, clean_env):
        clean_env.setenv("DB_BATCH_SIZE", "lots")
        clean_env.setenv("GEOIP_IPAPI_CO_LIMIT", "")
        settings = Settings.from_env()
        assert settings.storage.batch_size == 1000
        assert settings.geoip.ipapi_co_limit == 41

    def test_geoip_can_be_disabled(self, clean_env):
        clean_env.setenv("GEOIP_ENABLED", "false")
        assert Settings.from_env().geoip.enabled is False

    def test_geoip_enabled_unless_false(self, clean_env):
        for value in ("true", "1", "yes", "on"):
            clean_env.setenv("GEOIP_ENABLED", value)
            assert Settings.from_env().geoip.enabled is True
        clean_env.setenv("GEOIP_ENABLED", " FALSE ")
        assert Settings.from_env().geoip.enabled is False


class TestConfigFile:
    """Tests for YAML config files."""

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "storage:\n"
            "  mode: timeseries\n"
            "influxdb:\n"
            "  token: abc\n"
            "  bucket: flows\n"
            "geoip:\n"
            "  cache_ttl_days: 7\n"
            "import_dir: /data/exports\n"
        )
        settings = Settings.from_dict(load_config_file(path))
        assert settings.use_timeseries
        assert settings.influxdb.bucket == "flows"
        assert settings.influxdb.org == "unifi-flows"
        assert settings.geoip.cache_ttl_days == 7
        assert settings.import_dir == "/data/exports"

    def test_empty_file_is_empty_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config_file(path) == {}

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ValueError):
            load_config_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config_file(tmp_path / "absent.yaml")


class TestGetSettings:
    """Tests for the cached settings accessor."""

    def test_prefers_config_yaml_in_cwd(self, clean_env, tmp_path):
        (tmp_path / "config.yaml").write_text("storage:\n  batch_size: 10\n")
        assert get_settings().storage.batch_size == 10

    def test_falls_back_to_env(self, clean_env):
        clean_env.setenv("DOWNLOAD_DIR", "incoming")
        assert get_settings().import_dir == "incoming"

    def test_broken_config_falls_back_to_env(self, clean_env, tmp_path):
        (tmp_path / "config.yaml").write_text("storage: [unclosed\n")
        clean_env.setenv("DB_BATCH_SIZE", "5")
        assert get_settings().storage.batch_size == 5

    def test_cached_until_cleared(self, clean_env):
        first = get_settings()
        assert get_settings() is first
        clear_settings_cache()
        assert get_settings() is not first
