"""Import pipeline module."""

from .importer import ImportPipeline, ImportResult, setup_logging
from .status import ImportStatus, clear_last_import, get_last_import

__all__ = [
    # Import pipeline
    "ImportPipeline",
    "ImportResult",
    "setup_logging",
    # Last-import status
    "ImportStatus",
    "get_last_import",
    "clear_last_import",
]
