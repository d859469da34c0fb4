"""
Shared fixtures for integration tests.

Provides:
- Temporary SQLite document store for isolated testing
- Sample CSV export generators
- Import pipeline fixtures
"""

import csv
import random
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import pytest

from traffic_flows_pipeline.config import Settings, StorageSettings
from traffic_flows_pipeline.geoip import clear_geo_service_cache
from traffic_flows_pipeline.pipeline import ImportPipeline, clear_last_import
from traffic_flows_pipeline.storage import get_store

# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

BASE_TIME = datetime(2024, 3, 5, tzinfo=timezone.utc)


def generate_flow_rows(num_rows: int = 100, seed: int = 42) -> list[dict]:
    """
    Generate sample flow export rows.

    Rows are spread over one day starting at BASE_TIME, one minute apart.

    Args:
        num_rows: Number of rows to generate
        seed: Random seed for reproducibility (default: 42)
    """
    rng = random.Random(seed)

    applications = ["DNS", "Netflix", "Zoom", "HTTPS", "SSH"]
    destinations = ["8.8.8.8", "1.1.1.1", "9.9.9.9", "142.250.80.46"]
    clients = ["laptop", "tv", "phone"]

    rows = []
    for i in range(num_rows):
        timestamp = BASE_TIME + timedelta(minutes=i)
        rows.append(
            {
                "Timestamp": timestamp.isoformat(),
                "SourceIP": f"192.168.1.{rng.randint(2, 254)}",
                "SourcePort": str(rng.randint(1024, 65535)),
                "DestinationIP": rng.choice(destinations),
                "DestinationPort": rng.choice(["53", "443", "22"]),
                "Protocol": rng.choice(["TCP", "UDP"]),
                "Application": rng.choice(applications),
                "Bytes": str(rng.randint(100, 100_000)),
                "Packets": str(rng.randint(1, 500)),
                "Client Name": rng.choice(clients),
            }
        )
    return rows


def generate_threat_rows(num_rows: int = 10, seed: int = 7) -> list[dict]:
    """Generate sample threat export rows."""
    rng = random.Random(seed)
    rows = []
    for i in range(num_rows):
        rows.append(
            {
                "Timestamp": (BASE_TIME + timedelta(hours=i)).isoformat(),
                "Source Address": rng.choice(["8.8.8.8", "1.1.1.1"]),
                "Destination Address": f"10.0.0.{rng.randint(2, 254)}",
                "Protocol": "TCP",
                "Threat Type": rng.choice(["Malware", "Scan", "Botnet"]),
                "Threat Category": "Intrusion",
                "Severity": rng.choice(["low", "medium", "high"]),
                "Action": "blocked",
            }
        )
    return rows


def write_csv(path: Path, rows: list[dict], columns: Optional[list[str]] = None) -> Path:
    """Write rows as a CSV export and return the path."""
    columns = columns or list(rows[0])
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=columns)
        writer.writeheader()
        writer.writerows(rows)
    return path


@pytest.fixture
def flow_rows() -> list[dict]:
    """Generate 100 sample flow rows."""
    return generate_flow_rows(num_rows=100)


@pytest.fixture
def threat_rows() -> list[dict]:
    """Generate 10 sample threat rows."""
    return generate_threat_rows(num_rows=10)


@pytest.fixture
def write_export():
    """Return the CSV export writer: write_export(path, rows, columns=None)."""
    return write_csv


# =============================================================================
# STORAGE FIXTURES
# =============================================================================


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Create a temporary database path."""
    return tmp_path / "test_flows.db"


@pytest.fixture
def document_store(temp_db_path: Path):
    """
    Create an initialized document store with temporary database.

    Automatically cleans up after test.
    """
    store = get_store("document", db_path=temp_db_path, batch_size=25)
    store.initialize()
    yield store
    store.close()


# =============================================================================
# PIPELINE FIXTURES
# =============================================================================


@pytest.fixture
def test_settings(tmp_path: Path, temp_db_path: Path) -> Settings:
    """Settings pointing every path at the test's temporary directory."""
    settings = Settings(
        storage=StorageSettings(document_db_path=str(temp_db_path)),
        import_dir=str(tmp_path / "downloads"),
    )
    settings.geoip.cache_dir = str(tmp_path / "geoip-cache")
    return settings


@pytest.fixture
def import_pipeline(test_settings: Settings):
    """
    Create an ImportPipeline over a temporary document store.

    Automatically cleans up after test.
    """
    pipeline = ImportPipeline(settings=test_settings)
    pipeline.initialize()
    yield pipeline
    pipeline.close()


@pytest.fixture(autouse=True)
def reset_last_import():
    """Each test starts without a recorded last import."""
    clear_last_import()
    yield
    clear_last_import()


@pytest.fixture(autouse=True)
def reset_geo_services():
    """Each test starts without process-wide geolocation services."""
    clear_geo_service_cache()
    yield
    clear_geo_service_cache()
