"""
Record normalization for exported flow and threat CSV rows.

Exports from different controller versions name the same column
differently (``sourceIP``, ``SourceIP``, ``Source Address``...). The alias
table below is tried in order for each canonical field and the first
non-empty value wins.

Normalization never raises: anything that cannot be typed falls back to a
default and the row is counted as malformed.
"""

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Union

from .records import CanonicalRecord, FlowRecord, RecordType, ThreatRecord

logger = logging.getLogger(__name__)


# =============================================================================
# Column Aliases (priority order)
# =============================================================================

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "id": ("id",),
    "timestamp": ("timestamp", "Timestamp", "Time"),
    "source_address": ("sourceIP", "SourceIP", "Source Address", "sourceAddress"),
    "source_port": ("sourcePort", "SourcePort", "Source Port"),
    "destination_address": (
        "destinationIP",
        "DestinationIP",
        "Destination Address",
        "destinationAddress",
    ),
    "destination_port": ("destinationPort", "DestinationPort", "Destination Port"),
    "protocol": ("protocol", "Protocol"),
    "application": ("application", "Application"),
    "category": ("category", "Category"),
    "bytes": ("bytes", "Bytes", "Data Transferred"),
    "packets": ("packets", "Packets"),
    "duration": ("duration", "Duration"),
    "direction": ("direction", "Direction"),
    "client_name": ("clientName", "ClientName", "Client Name", "Client"),
    "session_id": ("sessionId", "SessionId", "Session ID"),
    "action": ("action", "Action"),
    "threat_type": ("threatType", "ThreatType", "Threat Type"),
    "threat_category": ("threatCategory", "ThreatCategory", "Threat Category"),
    "severity": ("severity", "Severity"),
}

# Formats tried after ISO 8601 and numeric epochs, month-first
TIMESTAMP_FORMATS = (
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%b %d, %Y %H:%M:%S",
    "%b %d, %Y %I:%M:%S %p",
    "%d %b %Y %H:%M:%S",
)

_INT_PATTERN = re.compile(r"^\s*([+-]?\d+)")
_FLOAT_PATTERN = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_DATE_SEPARATORS = re.compile(r"[/\-:]")
_EPOCH_PATTERN = re.compile(r"^\d{9,19}(\.\d+)?$")


# =============================================================================
# Value Parsers
# =============================================================================


def pick_field(row: Mapping[str, Any], field_name: str) -> Optional[str]:
    """
    Return the first non-empty value among a field's aliases.

    Args:
        row: Raw CSV row (column name -> value)
        field_name: Canonical field name from FIELD_ALIASES

    Returns:
        Stripped string value, or None if every alias is absent or blank
    """
    for alias in FIELD_ALIASES[field_name]:
        value = row.get(alias)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def parse_int(value: Optional[str]) -> tuple[int, bool]:
    """
    Permissively parse an integer.

    Takes the leading signed digits after dropping thousands separators,
    so ``"1,024"`` is 1024 and ``"12 KB"`` is 12.

    Returns:
        Tuple of (value, ok). Absent input is (0, True); unparsable input
        is (0, False).
    """
    if value is None:
        return 0, True
    match = _INT_PATTERN.match(value.replace(",", ""))
    if not match:
        return 0, False
    return int(match.group(1)), True


def parse_float(value: Optional[str]) -> tuple[float, bool]:
    """Permissively parse a float; same contract as parse_int."""
    if value is None:
        return 0.0, True
    match = _FLOAT_PATTERN.match(value.replace(",", ""))
    if not match:
        return 0.0, False
    try:
        return float(match.group(1)), True
    except (ValueError, OverflowError):
        return 0.0, False


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a timestamp string into a UTC-aware datetime.

    Supports:
    - ISO 8601 (``Z`` suffix accepted)
    - Unix timestamps in seconds, milliseconds or nanoseconds
    - Month-first formats such as ``03/05/2024 14:02:11``
    - As a last resort, the first three ``/``, ``-`` or ``:`` separated
      groups read as month/day/year

    Naive values are taken as UTC.

    Returns:
        datetime, or None if nothing matched
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None

    if _EPOCH_PATTERN.match(text):
        try:
            ts = float(text)
            if ts > 1e18:  # Nanoseconds
                return datetime.fromtimestamp(ts / 1e9, tz=timezone.utc)
            elif ts > 1e15:  # Microseconds
                return datetime.fromtimestamp(ts / 1e6, tz=timezone.utc)
            elif ts > 1e12:  # Milliseconds
                return datetime.fromtimestamp(ts / 1000, tz=timezone.utc)
            return datetime.fromtimestamp(ts, tz=timezone.utc)
        except (ValueError, OSError, OverflowError):
            return None

    parsed = None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        for fmt in TIMESTAMP_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        parsed = _parse_month_day_year(text)
    if parsed is None:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_month_day_year(text: str) -> Optional[datetime]:
    parts = _DATE_SEPARATORS.split(text)
    if len(parts) < 3:
        return None

    numbers = []
    for part in parts[:3]:
        match = _INT_PATTERN.match(part)
        if not match:
            return None
        numbers.append(int(match.group(1)))

    month, day, year = numbers
    if 0 <= year < 100:
        year += 2000
    try:
        return datetime(year, month, day)
    except ValueError:
        return None


def generate_record_id() -> str:
    """Random identifier for rows that carry none."""
    return uuid.uuid4().hex


# =============================================================================
# Normalizer
# =============================================================================


class RecordNormalizer:
    """
    Maps raw CSV rows onto FlowRecord / ThreatRecord.

    Usage:
        normalizer = RecordNormalizer()
        record = normalizer.normalize(row, RecordType.FLOWS)
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        """
        Args:
            clock: Returns "now" for rows without a usable timestamp
                   (default: current UTC time)
        """
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.rows_normalized = 0
        self.malformed_rows = 0

    def normalize(
        self,
        raw_row: Mapping[str, Any],
        record_type: Union[str, RecordType],
    ) -> CanonicalRecord:
        """
        Normalize one CSV row.

        Args:
            raw_row: Column name -> value mapping; names are not controlled
            record_type: 'flows' or 'threats'

        Returns:
            FlowRecord or ThreatRecord with every field populated

        Raises:
            UnsupportedRecordTypeError: If record_type is unknown
        """
        record_type = RecordType.from_value(record_type)
        problems: list[str] = []

        timestamp = self._timestamp(raw_row, problems)
        record_id = pick_field(raw_row, "id") or generate_record_id()

        if record_type is RecordType.FLOWS:
            record = self._flow(raw_row, record_id, timestamp, problems)
        else:
            record = self._threat(raw_row, record_id, timestamp, problems)

        self.rows_normalized += 1
        if problems:
            self.malformed_rows += 1
            logger.debug(
                f"Row {record_id} normalized with defaults: {'; '.join(problems)}"
            )
        return record

    def reset_counters(self) -> None:
        self.rows_normalized = 0
        self.malformed_rows = 0

    def _timestamp(self, row: Mapping[str, Any], problems: list[str]) -> datetime:
        value = pick_field(row, "timestamp")
        parsed = parse_timestamp(value)
        if parsed is not None:
            return parsed

        now = self._clock()
        if value is None:
            logger.warning("Row has no timestamp column value, using current time")
        else:
            logger.warning(f"Unparseable timestamp {value!r}, using current time")
        problems.append(f"timestamp={value!r}")
        return now

    def _int(self, row: Mapping[str, Any], name: str, problems: list[str]) -> int:
        raw = pick_field(row, name)
        value, ok = parse_int(raw)
        if not ok:
            problems.append(f"{name}={raw!r}")
        return value

    def _text(self, row: Mapping[str, Any], name: str, default: str = "") -> str:
        return pick_field(row, name) or default

    def _flow(
        self,
        row: Mapping[str, Any],
        record_id: str,
        timestamp: datetime,
        problems: list[str],
    ) -> FlowRecord:
        duration_raw = pick_field(row, "duration")
        duration, ok = parse_float(duration_raw)
        if not ok:
            problems.append(f"duration={duration_raw!r}")

        return FlowRecord(
            id=record_id,
            timestamp=timestamp,
            source_address=self._text(row, "source_address"),
            source_port=self._int(row, "source_port", problems),
            destination_address=self._text(row, "destination_address"),
            destination_port=self._int(row, "destination_port", problems),
            protocol=self._text(row, "protocol"),
            application=self._text(row, "application"),
            category=self._text(row, "category"),
            bytes=self._int(row, "bytes", problems),
            packets=self._int(row, "packets", problems),
            duration=duration,
            direction=self._text(row, "direction"),
            client_name=self._text(row, "client_name"),
            session_id=self._text(row, "session_id"),
            action=self._text(row, "action", "unknown"),
            raw=dict(row),
        )

    def _threat(
        self,
        row: Mapping[str, Any],
        record_id: str,
        timestamp: datetime,
        problems: list[str],
    ) -> ThreatRecord:
        return ThreatRecord(
            id=record_id,
            timestamp=timestamp,
            source_address=self._text(row, "source_address"),
            source_port=self._int(row, "source_port", problems),
            destination_address=self._text(row, "destination_address"),
            destination_port=self._int(row, "destination_port", problems),
            protocol=self._text(row, "protocol"),
            threat_type=self._text(row, "threat_type", "unknown"),
            threat_category=self._text(row, "threat_category", "unknown"),
            severity=self._text(row, "severity", "medium"),
            action=self._text(row, "action", "blocked"),
            raw=dict(row),
        )


def normalize_record(
    raw_row: Mapping[str, Any],
    record_type: Union[str, RecordType],
) -> CanonicalRecord:
    """Normalize a single row with a throwaway RecordNormalizer."""
    return RecordNormalizer().normalize(raw_row, record_type)
