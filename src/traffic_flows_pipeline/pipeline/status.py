"""
Process-wide "last import" status.

Holds the most recent ImportResult together with the source name and the
instant it finished, for whatever API layer reports system status.
"""

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .importer import ImportResult


@dataclass(frozen=True)
class ImportStatus:
    """Outcome of the most recently completed import."""

    file: Optional[str]
    timestamp: datetime
    result: "ImportResult"

    def to_dict(self) -> dict:
        return {
            "file": self.file,
            "timestamp": self.timestamp.isoformat(),
            "results": self.result.to_dict(),
        }


_lock = threading.Lock()
_last_import: Optional[ImportStatus] = None


def record_last_import(status: ImportStatus) -> None:
    global _last_import
    with _lock:
        _last_import = status


def get_last_import() -> Optional[ImportStatus]:
    """Return the last completed import, or None if nothing has run yet."""
    with _lock:
        return _last_import


def clear_last_import() -> None:
    """Forget the last import (useful for testing)."""
    global _last_import
    with _lock:
        _last_import = None
