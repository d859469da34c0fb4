"""
Abstract base class for record stores.

Provides a unified write interface over the document store (embedded,
queried ad hoc) and the time-series store (points with tags and fields).
"""

from abc import ABC, abstractmethod
from typing import Optional

from ..geoip.models import RecordGeo
from ..ingestion.records import CanonicalRecord


class RecordStore(ABC):
    """
    Abstract base class for record stores.

    Stores may buffer writes internally. ``write`` reports whether the
    record was accepted; ``flush`` persists anything still buffered and
    reports how many previously accepted records were ultimately lost.
    """

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Return the backend type identifier (e.g., 'document')."""
        pass

    @abstractmethod
    def initialize(self) -> None:
        """
        Prepare the store for writes.

        Should be idempotent - safe to call multiple times.
        """
        pass

    @abstractmethod
    def write(self, record: CanonicalRecord, geo: Optional[RecordGeo] = None) -> bool:
        """
        Accept one record for storage.

        Args:
            record: Normalized flow or threat record
            geo: Optional geolocation for the record's addresses

        Returns:
            True if the record was accepted, False if it was rejected.
            Never raises for a per-record problem.
        """
        pass

    @abstractmethod
    def flush(self) -> int:
        """
        Persist buffered records.

        Returns:
            Number of records accepted since the previous flush that
            failed to persist (including failures of batches drained
            automatically during ``write``).
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """
        Close connections and release resources.

        Buffered records are not flushed; call ``flush`` first.
        """
        pass

    def health_check(self) -> dict:
        """
        Perform a health check on the store.

        Returns:
            Dictionary with health status information:
            {
                "healthy": bool,
                "backend_type": str,
                "message": str,
                "details": dict
            }
        """
        return {
            "healthy": True,
            "backend_type": self.backend_type,
            "message": "Backend is operational",
            "details": {},
        }

    def __enter__(self) -> "RecordStore":
        """Context manager entry."""
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - ensures resources are released."""
        self.close()


class StorageError(Exception):
    """Base exception for storage backend errors."""

    pass


class StorageConnectionError(StorageError):
    """Raised when connection to storage backend fails."""

    pass


class StorageConfigurationError(StorageError):
    """Raised once at construction when a store cannot be configured."""

    pass


class QueryError(StorageError):
    """Raised when a query fails to execute."""

    pass


class SchemaError(StorageError):
    """Raised when there's a schema-related error."""

    pass


class WriteError(StorageError):
    """Raised when a batch of records cannot be persisted."""

    def __init__(self, message: str, record_count: int = 0):
        self.record_count = record_count
        super().__init__(message)
