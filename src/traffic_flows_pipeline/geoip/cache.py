"""
Two-tier geolocation cache.

The memory tier is a dict checked first. The file tier stores one JSON
document per address at ``<cache_dir>/<address>.json``:

    {"timestamp": <epoch millis>, "data": {...GeoResult...}}

Entries older than the TTL are treated as absent and their file is
removed on the access that finds them expired.
"""

import json
import logging
import os
import re
import threading
import time
from pathlib import Path
from typing import Callable, Optional, Union

from ..config.constants import DEFAULT_CACHE_TTL_DAYS
from .models import GeoResult

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")

# (result, stored-at epoch millis)
CacheEntry = tuple[GeoResult, int]


def cache_filename(address: str) -> str:
    """File name for an address; IPv6 colons become underscores."""
    return f"{_UNSAFE_FILENAME_CHARS.sub('_', address)}.json"


class GeoCache:
    """
    Memory + file cache of GeoResult keyed by address.

    Thread-safe for concurrent lookups within one process.

    Usage:
        cache = GeoCache("data/geoip-cache")
        result = cache.get("8.8.8.8")
        if result is None:
            cache.put("8.8.8.8", fetched)
    """

    def __init__(
        self,
        cache_dir: Union[str, Path],
        ttl_days: float = DEFAULT_CACHE_TTL_DAYS,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Args:
            cache_dir: Directory for per-address JSON files (created if missing)
            ttl_days: Entry lifetime in days
            clock: Returns current epoch seconds (default: time.time)
        """
        self.cache_dir = Path(cache_dir)
        self.ttl_ms = int(ttl_days * 24 * 60 * 60 * 1000)
        self._clock = clock or time.time
        self._memory: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(f"GeoIP cache directory: {self.cache_dir}")

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _is_expired(self, stored_ms: int) -> bool:
        return self._now_ms() - stored_ms >= self.ttl_ms

    def path_for(self, address: str) -> Path:
        return self.cache_dir / cache_filename(address)

    def get(self, address: str) -> Optional[GeoResult]:
        """
        Look up an address in memory, then on disk.

        Returns:
            Cached GeoResult, or None when absent or expired
        """
        with self._lock:
            entry = self._memory.get(address)
            if entry is not None:
                result, stored_ms = entry
                if not self._is_expired(stored_ms):
                    return result
                del self._memory[address]

        entry = self._read_file(address)
        if entry is None:
            return None

        result, stored_ms = entry
        if self._is_expired(stored_ms):
            logger.debug(f"GeoIP cache entry for {address} expired")
            self._remove_file(address)
            return None

        self._promote(address, entry)
        return result

    def put(self, address: str, result: GeoResult) -> None:
        """Store a result in both tiers, replacing any previous entry."""
        stored_ms = self._now_ms()
        with self._lock:
            self._memory[address] = (result, stored_ms)
        self._write_file(address, result, stored_ms)

    def _promote(self, address: str, entry: CacheEntry) -> None:
        """Copy a file-tier entry into memory."""
        with self._lock:
            self._memory[address] = entry

    def clear_memory(self) -> None:
        """Drop the memory tier; files are kept."""
        with self._lock:
            self._memory.clear()

    @property
    def memory_size(self) -> int:
        with self._lock:
            return len(self._memory)

    # =========================================================================
    # File tier
    # =========================================================================

    def _read_file(self, address: str) -> Optional[CacheEntry]:
        path = self.path_for(address)
        if not path.exists():
            return None
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
            stored_ms = int(document["timestamp"])
            result = GeoResult.from_dict(document["data"])
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Unreadable GeoIP cache file {path}: {e}")
            return None
        return result, stored_ms

    def _write_file(self, address: str, result: GeoResult, stored_ms: int) -> None:
        path = self.path_for(address)
        tmp_path = path.with_name(f"{path.name}.{threading.get_ident()}.tmp")
        document = {"timestamp": stored_ms, "data": result.to_dict()}
        try:
            tmp_path.write_text(json.dumps(document), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            logger.warning(f"Failed to write GeoIP cache file {path}: {e}")

    def _remove_file(self, address: str) -> None:
        try:
            self.path_for(address).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to remove expired GeoIP cache file: {e}")
