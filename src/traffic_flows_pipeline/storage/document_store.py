"""
Embedded document store backed by SQLite.

Each record is stored as a JSON document alongside a handful of indexed
columns (timestamp, addresses, application) used by the query helpers.
Writes are batched: records accumulate in memory and are inserted with a
single ``executemany`` per table when the batch fills or on ``flush``.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

from ..config.constants import DEFAULT_BATCH_SIZE, STORAGE_MODE_DOCUMENT
from ..geoip.models import RecordGeo
from ..ingestion.records import CanonicalRecord, FlowRecord, RecordType
from .base import QueryError, RecordStore, StorageConnectionError, WriteError

logger = logging.getLogger(__name__)


# =============================================================================
# SQLite Schema Definitions
# =============================================================================

FLOWS_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS flows (
    row_id INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL,  -- record id, not unique
    timestamp TEXT NOT NULL,
    source_address TEXT,
    destination_address TEXT,
    protocol TEXT,
    application TEXT,
    client_name TEXT,
    bytes INTEGER NOT NULL DEFAULT 0,
    packets INTEGER NOT NULL DEFAULT 0,
    document TEXT NOT NULL,  -- full record as JSON
    imported_at TEXT NOT NULL
)
"""

THREATS_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS threats (
    row_id INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL,  -- record id, not unique
    timestamp TEXT NOT NULL,
    source_address TEXT,
    destination_address TEXT,
    protocol TEXT,
    threat_type TEXT,
    severity TEXT,
    document TEXT NOT NULL,
    imported_at TEXT NOT NULL
)
"""

INDEX_DEFINITIONS = [
    "CREATE INDEX IF NOT EXISTS idx_flows_id ON flows(id)",
    "CREATE INDEX IF NOT EXISTS idx_flows_timestamp ON flows(timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_flows_source ON flows(source_address)",
    "CREATE INDEX IF NOT EXISTS idx_flows_destination ON flows(destination_address)",
    "CREATE INDEX IF NOT EXISTS idx_flows_application ON flows(application)",
    "CREATE INDEX IF NOT EXISTS idx_threats_id ON threats(id)",
    "CREATE INDEX IF NOT EXISTS idx_threats_timestamp ON threats(timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_threats_source ON threats(source_address)",
]

FLOW_INSERT_SQL = """
    INSERT INTO flows (
        id, timestamp, source_address, destination_address, protocol,
        application, client_name, bytes, packets, document, imported_at
    ) VALUES (
        :id, :timestamp, :source_address, :destination_address, :protocol,
        :application, :client_name, :bytes, :packets, :document, :imported_at
    )
"""

THREAT_INSERT_SQL = """
    INSERT INTO threats (
        id, timestamp, source_address, destination_address, protocol,
        threat_type, severity, document, imported_at
    ) VALUES (
        :id, :timestamp, :source_address, :destination_address, :protocol,
        :threat_type, :severity, :document, :imported_at
    )
"""

TABLE_FOR_TYPE = {
    RecordType.FLOWS: "flows",
    RecordType.THREATS: "threats",
}

# Columns usable as equality filters and group-by keys, per table
FLOW_FILTER_COLUMNS = frozenset(
    ["source_address", "destination_address", "application", "protocol", "client_name"]
)
THREAT_FILTER_COLUMNS = frozenset(
    ["source_address", "destination_address", "protocol", "threat_type", "severity"]
)


# =============================================================================
# Type Conversion Helpers
# =============================================================================


def _to_sqlite_timestamp(value: Union[datetime, str]) -> str:
    """Render a timestamp as fixed-width UTC ISO8601 so text ordering is time ordering."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def _validate_identifier(value: str, valid_set: frozenset, name: str) -> str:
    """
    Validate an identifier against a whitelist to prevent SQL injection.

    Raises:
        ValueError: If identifier is not in the valid set
    """
    if value not in valid_set:
        raise ValueError(
            f"Invalid {name}: '{value}'. Must be one of: {sorted(valid_set)}"
        )
    return value


# =============================================================================
# Document Store Implementation
# =============================================================================


class DocumentStore(RecordStore):
    """
    SQLite-backed document store with batched writes.

    Usage:
        with DocumentStore("data/flows.db") as store:
            store.write(record)
            store.flush()
            recent = store.query_flows({"application": "DNS"}, limit=10)
    """

    def __init__(
        self,
        db_path: Union[Path, str] = "data/flows.db",
        batch_size: int = DEFAULT_BATCH_SIZE,
        *,
        timeout: float = 30.0,
    ):
        """
        Args:
            db_path: Path to SQLite database file (``:memory:`` allowed)
            batch_size: Records buffered before an automatic insert
            timeout: Connection timeout in seconds
        """
        self.db_path = Path(db_path) if str(db_path) != ":memory:" else db_path
        self.batch_size = batch_size
        self._timeout = timeout
        self._connection: Optional[sqlite3.Connection] = None
        self._initialized = False

        self._lock = threading.RLock()
        self._pending: dict[RecordType, list[dict]] = {
            RecordType.FLOWS: [],
            RecordType.THREATS: [],
        }
        self._unreported_failures = 0

        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def backend_type(self) -> str:
        """Return backend type identifier."""
        return STORAGE_MODE_DOCUMENT

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._connection is None:
            try:
                self._connection = sqlite3.connect(
                    str(self.db_path),
                    check_same_thread=False,
                    timeout=self._timeout,
                )
                self._connection.row_factory = sqlite3.Row
                logger.debug(f"Connected to document store: {self.db_path}")
            except sqlite3.Error as e:
                raise StorageConnectionError(
                    f"Failed to connect to SQLite database: {e}"
                ) from e
        return self._connection

    @contextmanager
    def _cursor(self):
        """Context manager for database cursor with automatic commit/rollback."""
        with self._lock:
            conn = self._get_connection()
            cursor = conn.cursor()
            try:
                yield cursor
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise QueryError(f"SQLite query failed: {e}") from e
            finally:
                cursor.close()

    def initialize(self) -> None:
        """
        Create tables and indexes.

        Safe to call multiple times - uses IF NOT EXISTS.
        """
        if self._initialized:
            return
        logger.info(f"Initializing document store: {self.db_path}")
        with self._cursor() as cursor:
            cursor.execute(FLOWS_TABLE_SCHEMA)
            cursor.execute(THREATS_TABLE_SCHEMA)
            for index_sql in INDEX_DEFINITIONS:
                cursor.execute(index_sql)
        self._initialized = True

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            pending = sum(len(rows) for rows in self._pending.values())
            if pending:
                logger.warning(f"Closing document store with {pending} unflushed records")
            if self._connection is not None:
                self._connection.close()
                self._connection = None
                self._initialized = False
                logger.debug("Document store connection closed")

    # =========================================================================
    # Writes
    # =========================================================================

    def write(self, record: CanonicalRecord, geo: Optional[RecordGeo] = None) -> bool:
        """Buffer a record; the batch is inserted once it reaches batch_size."""
        try:
            row = self._to_row(record, geo)
        except (TypeError, ValueError) as e:
            logger.warning(f"Rejected record {getattr(record, 'id', '?')}: {e}")
            return False

        with self._lock:
            self._pending[record.record_type].append(row)
            pending = sum(len(rows) for rows in self._pending.values())
            if pending >= self.batch_size:
                self._unreported_failures += self._drain()
        return True

    def flush(self) -> int:
        """Insert all buffered records; return failures since the last flush."""
        with self._lock:
            failures = self._unreported_failures + self._drain()
            self._unreported_failures = 0
        return failures

    def _drain(self) -> int:
        """Insert pending batches. Returns the number of records that failed."""
        failed = 0
        for record_type, rows in self._pending.items():
            if not rows:
                continue
            batch, self._pending[record_type] = rows, []
            try:
                self.insert_batch(record_type, batch)
            except WriteError as e:
                logger.error(f"Batch write failed, {e.record_count} records lost: {e}")
                failed += e.record_count
        return failed

    def insert_batch(self, record_type: RecordType, rows: list[dict]) -> int:
        """
        Insert converted rows in one transaction.

        Returns:
            Number of rows inserted

        Raises:
            WriteError: If the insert fails; no rows of the batch are kept
        """
        if not rows:
            return 0
        sql = FLOW_INSERT_SQL if record_type is RecordType.FLOWS else THREAT_INSERT_SQL
        try:
            self.initialize()
            with self._cursor() as cursor:
                cursor.executemany(sql, rows)
        except (QueryError, StorageConnectionError) as e:
            raise WriteError(str(e), record_count=len(rows)) from e
        logger.debug(f"Inserted {len(rows)} {record_type.value} documents")
        # executemany may not set rowcount correctly; use len instead
        return len(rows)

    @staticmethod
    def _to_row(record: CanonicalRecord, geo: Optional[RecordGeo]) -> dict:
        document = record.to_dict()
        document["timestamp"] = _to_sqlite_timestamp(record.timestamp)
        if geo is not None:
            document["geo"] = geo.to_dict()
        imported_at = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
        document["imported_at"] = imported_at

        row = {
            "id": record.id,
            "timestamp": document["timestamp"],
            "source_address": record.source_address,
            "destination_address": record.destination_address,
            "protocol": record.protocol,
            "document": json.dumps(document),
            "imported_at": imported_at,
        }
        if isinstance(record, FlowRecord):
            row.update(
                application=record.application,
                client_name=record.client_name,
                bytes=record.bytes,
                packets=record.packets,
            )
        else:
            row.update(threat_type=record.threat_type, severity=record.severity)
        return row

    # =========================================================================
    # Queries
    # =========================================================================

    def query(self, sql: str, params: Optional[dict] = None) -> list[dict]:
        """
        Execute query and return results as list of dictionaries.

        Args:
            sql: SQL query (use :param_name for parameters)
            params: Optional parameter dictionary
        """
        self.initialize()
        with self._cursor() as cursor:
            cursor.execute(sql, params or {})
            columns = [desc[0] for desc in cursor.description or []]
            rows = cursor.fetchall()
            return [dict(zip(columns, row)) for row in rows]

    def _where(
        self,
        filters: Optional[dict[str, Any]],
        valid_columns: frozenset,
    ) -> tuple[str, dict]:
        clauses = []
        params: dict[str, Any] = {}
        for key, value in (filters or {}).items():
            if value is None or value == "":
                continue
            if key == "from":
                clauses.append("timestamp >= :from_ts")
                params["from_ts"] = _to_sqlite_timestamp(value)
            elif key == "to":
                clauses.append("timestamp <= :to_ts")
                params["to_ts"] = _to_sqlite_timestamp(value)
            else:
                column = _validate_identifier(key, valid_columns, "filter")
                clauses.append(f"{column} = :{column}")
                params[column] = value
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    def _query_documents(
        self,
        table: str,
        valid_columns: frozenset,
        filters: Optional[dict[str, Any]],
        limit: int,
        skip: int,
        sort_desc: bool,
    ) -> list[dict]:
        where, params = self._where(filters, valid_columns)
        params.update(limit=int(limit), skip=int(skip))
        order = "DESC" if sort_desc else "ASC"
        rows = self.query(
            f"""
            SELECT document FROM {table}
            {where}
            ORDER BY timestamp {order}
            LIMIT :limit OFFSET :skip
            """,
            params,
        )
        return [json.loads(row["document"]) for row in rows]

    def query_flows(
        self,
        filters: Optional[dict[str, Any]] = None,
        limit: int = 100,
        skip: int = 0,
        sort_desc: bool = True,
    ) -> list[dict]:
        """
        Query flow documents.

        Args:
            filters: Optional keys ``from``/``to`` (datetime or ISO string)
                     and equality filters source_address, destination_address,
                     application, protocol, client_name
            limit: Maximum documents returned
            skip: Documents skipped (for paging)
            sort_desc: Newest first when True

        Raises:
            ValueError: If a filter key is not supported
        """
        return self._query_documents(
            "flows", FLOW_FILTER_COLUMNS, filters, limit, skip, sort_desc
        )

    def query_threats(
        self,
        filters: Optional[dict[str, Any]] = None,
        limit: int = 100,
        skip: int = 0,
        sort_desc: bool = True,
    ) -> list[dict]:
        """Query threat documents; same contract as query_flows."""
        return self._query_documents(
            "threats", THREAT_FILTER_COLUMNS, filters, limit, skip, sort_desc
        )

    def get_record(self, record_type: Union[str, RecordType], record_id: str) -> Optional[dict]:
        """Fetch the first stored document with this id, or None."""
        table = TABLE_FOR_TYPE[RecordType.from_value(record_type)]
        rows = self.query(
            f"SELECT document FROM {table} WHERE id = :id ORDER BY row_id LIMIT 1",
            {"id": record_id},
        )
        return json.loads(rows[0]["document"]) if rows else None

    def count(self, record_type: Union[str, RecordType]) -> int:
        table = TABLE_FOR_TYPE[RecordType.from_value(record_type)]
        result = self.query(f"SELECT COUNT(*) AS count FROM {table}")
        return result[0]["count"] if result else 0

    def get_stats(self) -> dict:
        """
        Summary statistics over stored flows.

        Returns:
            {
                "total_flows": int,
                "total_threats": int,
                "time_range": {"start": str | None, "end": str | None},
                "top_applications": [{"application": str, "bytes": int}, ...]
            }
        """
        time_range = self.query(
            "SELECT MIN(timestamp) AS first_seen, MAX(timestamp) AS last_seen FROM flows"
        )[0]
        top_applications = self.query(
            """
            SELECT application, SUM(bytes) AS bytes
            FROM flows
            GROUP BY application
            ORDER BY bytes DESC
            LIMIT 10
            """
        )
        return {
            "total_flows": self.count(RecordType.FLOWS),
            "total_threats": self.count(RecordType.THREATS),
            "time_range": {
                "start": time_range["first_seen"],
                "end": time_range["last_seen"],
            },
            "top_applications": top_applications,
        }

    def get_top_by_field(
        self,
        field: str,
        filters: Optional[dict[str, Any]] = None,
        limit: int = 10,
    ) -> list[dict]:
        """
        Top flow groups by total bytes.

        Args:
            field: Group-by column (e.g., 'application', 'source_address')
            filters: Same filters as query_flows
            limit: Maximum groups returned

        Returns:
            List of {field: value, "bytes": int, "packets": int, "count": int}

        Raises:
            ValueError: If field is not a supported group-by column
        """
        column = _validate_identifier(field, FLOW_FILTER_COLUMNS, "group field")
        where, params = self._where(filters, FLOW_FILTER_COLUMNS)
        params["limit"] = int(limit)
        return self.query(
            f"""
            SELECT {column}, SUM(bytes) AS bytes, SUM(packets) AS packets,
                   COUNT(*) AS count
            FROM flows
            {where}
            GROUP BY {column}
            ORDER BY bytes DESC
            LIMIT :limit
            """,
            params,
        )

    def health_check(self) -> dict:
        """Extended health check with SQLite-specific info."""
        try:
            self.query("SELECT 1 AS test")
        except (QueryError, StorageConnectionError) as e:
            return {
                "healthy": False,
                "backend_type": self.backend_type,
                "message": f"Health check failed: {e}",
                "details": {"error": str(e)},
            }

        check = super().health_check()
        check["details"] = {
            "db_path": str(self.db_path),
            "flows": self.count(RecordType.FLOWS),
            "threats": self.count(RecordType.THREATS),
        }
        return check
