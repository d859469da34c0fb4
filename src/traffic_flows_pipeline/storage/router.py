"""
Storage router: hands each record to the one active store and keeps
per-import write counters.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..geoip.models import RecordGeo
from ..ingestion.records import CanonicalRecord
from .base import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class WriteCounters:
    """Write outcomes for one import. ``attempted == succeeded + failed``."""

    attempted: int = 0
    succeeded: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
        }


class StorageRouter:
    """
    Routes records to a single RecordStore chosen at construction.

    Records accepted by a buffering store count as succeeded until a flush
    reports them lost, at which point they move to failed.

    Usage:
        router = StorageRouter(store)
        router.reset()
        for record in records:
            router.write(record)
        router.flush()
        print(router.counters.to_dict())
    """

    def __init__(self, store: RecordStore):
        self.store = store
        self.counters = WriteCounters()

    @property
    def backend_type(self) -> str:
        return self.store.backend_type

    def reset(self) -> WriteCounters:
        """Start a new set of counters (one per import)."""
        self.counters = WriteCounters()
        return self.counters

    def write(self, record: CanonicalRecord, geo: Optional[RecordGeo] = None) -> bool:
        """
        Write one record.

        Returns:
            True if the store accepted the record
        """
        self.counters.attempted += 1
        try:
            accepted = self.store.write(record, geo)
        # A store must not abort the stream over one record
        except Exception as e:
            logger.warning(f"Write failed for record {record.id}: {e}")
            accepted = False

        if accepted:
            self.counters.succeeded += 1
        else:
            self.counters.failed += 1
        return accepted

    def count_failure(self) -> None:
        """Count a record that failed before it reached the store."""
        self.counters.attempted += 1
        self.counters.failed += 1

    def flush(self) -> int:
        """
        Flush the store and fold lost records into the counters.

        Returns:
            Number of records the flush reported as lost
        """
        lost = self.store.flush()
        if lost:
            lost = min(lost, self.counters.succeeded)
            self.counters.succeeded -= lost
            self.counters.failed += lost
            logger.error(f"{lost} records were lost while flushing {self.backend_type} store")
        return lost
