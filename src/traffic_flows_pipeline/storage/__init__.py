"""
Storage layer for imported flow and threat records.

Two interchangeable record stores share one interface: an embedded
document store (SQLite) and a time-series store (InfluxDB).

Usage:
    from traffic_flows_pipeline.storage import StorageRouter, get_store

    # Store chosen from configuration
    store = get_store()

    # Or explicitly
    store = get_store('document', db_path='data/flows.db')

    with store:
        router = StorageRouter(store)
        router.write(record)
        router.flush()
"""

from .base import (
    QueryError,
    RecordStore,
    SchemaError,
    StorageConfigurationError,
    StorageConnectionError,
    StorageError,
    WriteError,
)
from .document_store import DocumentStore
from .factory import get_store, list_available_stores, register_store
from .router import StorageRouter, WriteCounters

__all__ = [
    # Base classes and exceptions
    "RecordStore",
    "StorageError",
    "StorageConnectionError",
    "StorageConfigurationError",
    "QueryError",
    "SchemaError",
    "WriteError",
    # Stores
    "DocumentStore",
    # Routing
    "StorageRouter",
    "WriteCounters",
    # Factory functions
    "get_store",
    "register_store",
    "list_available_stores",
]
