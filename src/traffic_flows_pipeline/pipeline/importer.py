"""
CSV import pipeline.

Drives an export stream through normalization, optional geolocation
enrichment and the storage router, and reports an ImportResult per run.

Pipeline stages:
1. Read: stream CSV rows (file, directory, or in-memory payload)
2. Normalize: map each row onto FlowRecord / ThreatRecord
3. Enrich: geolocate both addresses (time-series mode only)
4. Write: route to the active store, flushing once at stream end
"""

import io
import logging
import sys
import zlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Optional, Union

from ..config.constants import STORAGE_MODE_TIMESERIES
from ..config.settings import Settings, get_settings
from ..geoip.models import RecordGeo
from ..geoip.service import GeoLookupService, get_geo_service
from ..ingestion.csv_reader import CSVRowReader, as_text_stream
from ..ingestion.exceptions import (
    ImportStreamError,
    IngestionError,
    ParseError,
    SourceValidationError,
)
from ..ingestion.file_utils import is_csv_export, open_file_auto_decompress
from ..ingestion.normalizer import RecordNormalizer
from ..ingestion.records import CanonicalRecord, RecordType
from ..storage import RecordStore, StorageRouter, get_store
from .status import ImportStatus, record_last_import

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportResult:
    """Counts for one import run. ``total == imported + errors`` always holds."""

    total: int
    imported: int
    errors: int
    record_type: RecordType
    source: Optional[str] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get import duration in seconds."""
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/serialization."""
        return {
            "total": self.total,
            "imported": self.imported,
            "errors": self.errors,
            "type": self.record_type.value,
            "source": self.source,
            "started_at": self.started_at.isoformat(),
            "completed_at": (
                self.completed_at.isoformat() if self.completed_at else None
            ),
            "duration_seconds": self.duration_seconds,
        }


class ImportPipeline:
    """
    Import pipeline over a single record store.

    Usage:
        with ImportPipeline(settings=settings) as pipeline:
            result = pipeline.import_file("downloads/flows.csv", "flows")
            results = pipeline.import_directory("downloads")
    """

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        geo_service: Optional[GeoLookupService] = None,
        settings: Optional[Settings] = None,
        enrich: Optional[bool] = None,
        normalizer: Optional[RecordNormalizer] = None,
    ):
        """
        Initialize the import pipeline.

        Args:
            store: Pre-built RecordStore (optional; created from settings)
            geo_service: GeoLookupService (optional; the process-wide
                         service for settings.geoip when enrichment is on)
            settings: Settings (default: get_settings())
            enrich: Force enrichment on/off. By default it runs only in
                    time-series mode with geolocation enabled.
            normalizer: Custom RecordNormalizer (optional)
        """
        self.settings = settings or get_settings()

        if store is not None:
            self._store = store
            self._owns_store = False
        else:
            self._store = get_store(settings=self.settings)
            self._owns_store = True

        if enrich is None:
            enrich = (
                self._store.backend_type == STORAGE_MODE_TIMESERIES
                and self.settings.geoip.enabled
            )
        self._enrich = enrich

        if self._enrich and geo_service is None:
            geo_service = get_geo_service(self.settings.geoip)
        self.geo_service = geo_service

        self.router = StorageRouter(self._store)
        self.normalizer = normalizer or RecordNormalizer()
        self.reader = CSVRowReader()
        self._initialized = False

        logger.info(
            f"ImportPipeline initialized with {self._store.backend_type} store "
            f"(enrichment {'on' if self._enrich else 'off'})"
        )

    @property
    def store(self) -> RecordStore:
        return self._store

    def initialize(self) -> None:
        """Initialize the store (create tables / write API if needed)."""
        if not self._initialized:
            self._store.initialize()
            self._initialized = True

    def close(self) -> None:
        """Release the store if this pipeline created it; the geo service is shared."""
        if self._owns_store:
            self._store.close()

    def __enter__(self) -> "ImportPipeline":
        """Context manager entry."""
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()

    # =========================================================================
    # Imports
    # =========================================================================

    def import_stream(
        self,
        stream: Union[IO[str], IO[bytes]],
        record_type: Union[str, RecordType],
        source_name: Optional[str] = None,
    ) -> ImportResult:
        """
        Import one CSV stream.

        Args:
            stream: Text or binary stream with a header row
            record_type: 'flows' or 'threats'
            source_name: Name recorded in the last-import status

        Returns:
            ImportResult with total/imported/errors counts

        Raises:
            UnsupportedRecordTypeError: If record_type is unknown
            ImportStreamError: If the stream cannot be read; no result is
                recorded in that case
        """
        record_type = RecordType.from_value(record_type)
        started_at = datetime.now(timezone.utc)
        label = source_name or "stream"

        self.initialize()
        self.router.reset()
        self.normalizer.reset_counters()

        logger.info(f"[1/2] Importing {record_type.value} from {label}")
        total = 0
        try:
            for line_number, row in self.reader.iter_rows(as_text_stream(stream)):
                total += 1
                self._process_row(row, record_type, line_number)
        except (OSError, EOFError, zlib.error, UnicodeDecodeError, ParseError) as e:
            self.router.flush()
            logger.error(f"Import of {label} aborted after {total} rows: {e}")
            raise ImportStreamError(f"Failed to read CSV stream: {e}", source_name) from e

        logger.info(f"[2/2] Flushing {self._store.backend_type} store")
        self.router.flush()

        counters = self.router.counters
        result = ImportResult(
            total=total,
            imported=counters.succeeded,
            errors=counters.failed,
            record_type=record_type,
            source=source_name,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
        )
        record_last_import(
            ImportStatus(file=source_name, timestamp=result.completed_at, result=result)
        )

        if self.normalizer.malformed_rows:
            logger.warning(
                f"{self.normalizer.malformed_rows} rows in {label} had unparseable "
                f"values and were stored with defaults"
            )
        logger.info(
            f"Import completed: {result.imported} of {result.total} records "
            f"imported successfully ({result.errors} errors)"
        )
        return result

    def _process_row(self, row: dict, record_type: RecordType, line_number: int) -> None:
        try:
            record = self.normalizer.normalize(row, record_type)
        # Count the row rather than abort the stream
        except Exception as e:
            logger.warning(f"Row {line_number} could not be normalized: {e}")
            self.router.count_failure()
            return

        self.router.write(record, self._geolocate(record, line_number))

    def _geolocate(self, record: CanonicalRecord, line_number: int) -> Optional[RecordGeo]:
        if not self._enrich or self.geo_service is None:
            return None
        try:
            return self.geo_service.enrich(record)
        # Enrichment problems never block the write
        except Exception as e:
            logger.warning(f"Geolocation failed for row {line_number}: {e}")
            return None

    def import_file(
        self,
        file_path: Union[str, Path],
        record_type: Optional[Union[str, RecordType]] = None,
    ) -> ImportResult:
        """
        Import one CSV export (optionally gzip-compressed).

        Args:
            file_path: Path to the CSV file
            record_type: 'flows' or 'threats'; inferred from the file name
                         when omitted

        Raises:
            SourceValidationError: If the file does not exist
            ImportStreamError: If the file cannot be read
        """
        path = Path(file_path)
        if not path.is_file():
            raise SourceValidationError(
                f"File not found: {path}", source_type="file", reason="File not found"
            )

        if record_type is None:
            record_type = RecordType.from_filename(path.name)

        try:
            handle = open_file_auto_decompress(path)
        except OSError as e:
            raise ImportStreamError(f"Cannot open file: {e}", path.name) from e

        with handle:
            return self.import_stream(handle, record_type, source_name=path.name)

    def import_directory(
        self,
        directory: Optional[Union[str, Path]] = None,
    ) -> list[ImportResult]:
        """
        Import every CSV export in a directory, in name order.

        Files with "threat" in the name are imported as threats, all
        others as flows. A file that fails is logged and skipped.

        Args:
            directory: Directory to scan (default: settings.import_dir)

        Raises:
            SourceValidationError: If the directory does not exist
        """
        directory = Path(directory or self.settings.import_dir)
        if not directory.is_dir():
            raise SourceValidationError(
                f"Import directory not found: {directory}",
                source_type="directory",
                reason="Not a directory",
            )

        files = sorted(p for p in directory.iterdir() if is_csv_export(p))
        if not files:
            logger.info(f"No CSV files found in {directory}")
            return []

        results = []
        for index, path in enumerate(files, start=1):
            logger.info(f"File {index}/{len(files)}: {path.name}")
            try:
                results.append(self.import_file(path))
            except IngestionError as e:
                logger.error(f"Failed to import {path.name}: {e}")
        return results

    def import_csv_data(
        self,
        data: Union[str, bytes],
        record_type: Union[str, RecordType],
        source_name: str = "direct-import",
    ) -> ImportResult:
        """Import CSV content already held in memory."""
        if isinstance(data, bytes):
            stream: IO = io.BytesIO(data)
        else:
            stream = io.StringIO(data, newline="")
        return self.import_stream(stream, record_type, source_name=source_name)


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
) -> None:
    """
    Configure root logging for scripts and services.

    Args:
        level: Root log level
        log_file: Optional file that receives the same records as stderr
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
