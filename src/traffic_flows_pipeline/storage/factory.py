"""
Record store factory.

Provides a factory function to create the configured record store.
"""

import logging
from typing import TYPE_CHECKING, Optional

from ..config.constants import STORAGE_MODE_DOCUMENT, STORAGE_MODE_TIMESERIES
from .base import RecordStore, StorageConfigurationError, StorageError

if TYPE_CHECKING:
    from ..config.settings import Settings

logger = logging.getLogger(__name__)

# Registry of available stores
_STORE_REGISTRY: dict[str, type[RecordStore]] = {}


def register_store(backend_type: str, store_class: type[RecordStore]) -> None:
    """
    Register a record store class.

    Args:
        backend_type: Store identifier (e.g., 'document')
        store_class: Class implementing the RecordStore interface
    """
    _STORE_REGISTRY[backend_type.lower()] = store_class
    logger.debug(f"Registered record store: {backend_type}")


def get_store(
    backend_type: Optional[str] = None,
    settings: Optional["Settings"] = None,
    **kwargs,
) -> RecordStore:
    """
    Get a record store instance based on configuration.

    Args:
        backend_type: 'document' or 'timeseries'. If None, taken from settings.
        settings: Settings to read defaults from (default: get_settings())
        **kwargs: Constructor arguments; when omitted they come from settings.
                  document: db_path, batch_size
                  timeseries: url, token, org, bucket

    Returns:
        RecordStore instance (not yet initialized)

    Raises:
        StorageConfigurationError: If the store cannot be configured
            (e.g., missing InfluxDB token)
        StorageError: If the backend type is unknown

    Examples:
        store = get_store()
        store = get_store('document', db_path='data/flows.db')
    """
    if settings is None and (backend_type is None or not kwargs):
        from ..config.settings import get_settings

        settings = get_settings()

    if backend_type is None:
        backend_type = settings.storage.mode

    backend_type = backend_type.lower()

    # Lazy-load store implementations
    if backend_type not in _STORE_REGISTRY:
        _load_store(backend_type)

    if backend_type not in _STORE_REGISTRY:
        available = list(_STORE_REGISTRY.keys()) if _STORE_REGISTRY else ["none"]
        raise StorageError(
            f"Unknown storage backend: '{backend_type}'. "
            f"Available backends: {', '.join(available)}"
        )

    store_class = _STORE_REGISTRY[backend_type]

    if not kwargs:
        kwargs = _get_default_kwargs(backend_type, settings)

    try:
        store = store_class(**kwargs)
    except StorageConfigurationError:
        raise
    except (TypeError, ValueError, OSError) as e:
        raise StorageError(f"Failed to create {backend_type} store: {e}") from e

    logger.info(f"Created {backend_type} record store")
    return store


def _load_store(backend_type: str) -> None:
    """Lazy-load a store implementation."""
    if backend_type == STORAGE_MODE_DOCUMENT:
        from .document_store import DocumentStore

        register_store(STORAGE_MODE_DOCUMENT, DocumentStore)
    elif backend_type == STORAGE_MODE_TIMESERIES:
        try:
            from .timeseries_store import TimeSeriesStore

            register_store(STORAGE_MODE_TIMESERIES, TimeSeriesStore)
        except ImportError as e:
            logger.warning(f"Time-series store not available: {e}")


def _get_default_kwargs(backend_type: str, settings: "Settings") -> dict:
    """Constructor arguments for a store, taken from settings."""
    if backend_type == STORAGE_MODE_DOCUMENT:
        return {
            "db_path": settings.storage.document_db_path,
            "batch_size": settings.storage.batch_size,
        }
    if backend_type == STORAGE_MODE_TIMESERIES:
        return {
            "url": settings.influxdb.url,
            "token": settings.influxdb.token,
            "org": settings.influxdb.org,
            "bucket": settings.influxdb.bucket,
        }
    return {}


def list_available_stores() -> list[str]:
    """List all store types that can be loaded."""
    for backend_type in (STORAGE_MODE_DOCUMENT, STORAGE_MODE_TIMESERIES):
        if backend_type not in _STORE_REGISTRY:
            _load_store(backend_type)
    return list(_STORE_REGISTRY.keys())
