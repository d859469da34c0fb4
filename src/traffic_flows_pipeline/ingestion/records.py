"""
Canonical record shapes produced by normalization.

Every CSV row, whatever its column naming, becomes one of these two
dataclasses. Downstream stages (enrichment, storage) only ever see these
shapes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Union

from ..config.constants import RECORD_TYPE_FLOWS, RECORD_TYPE_THREATS
from .exceptions import UnsupportedRecordTypeError


class RecordType(str, Enum):
    """Kind of record carried by an export file."""

    FLOWS = RECORD_TYPE_FLOWS
    THREATS = RECORD_TYPE_THREATS

    @classmethod
    def from_value(cls, value: Union[str, "RecordType"]) -> "RecordType":
        """
        Resolve a record type from its string form.

        Raises:
            UnsupportedRecordTypeError: If value is neither flows nor threats
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnsupportedRecordTypeError(value) from None

    @classmethod
    def from_filename(cls, filename: str) -> "RecordType":
        """Threat exports carry "threat" in their name; all others are flows."""
        return cls.THREATS if "threat" in filename.lower() else cls.FLOWS


@dataclass
class FlowRecord:
    """
    One observed network connection summary.

    Numeric fields are never None; unparsable input becomes 0.
    """

    id: str
    timestamp: datetime
    source_address: str = ""
    source_port: int = 0
    destination_address: str = ""
    destination_port: int = 0
    protocol: str = ""
    application: str = ""
    category: str = ""
    bytes: int = 0
    packets: int = 0
    duration: float = 0.0
    direction: str = ""
    client_name: str = ""
    session_id: str = ""
    action: str = "unknown"

    # Original CSV row, kept for traceability
    raw: dict = field(default_factory=dict)

    @property
    def record_type(self) -> RecordType:
        return RecordType.FLOWS

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "source_address": self.source_address,
            "source_port": self.source_port,
            "destination_address": self.destination_address,
            "destination_port": self.destination_port,
            "protocol": self.protocol,
            "application": self.application,
            "category": self.category,
            "bytes": self.bytes,
            "packets": self.packets,
            "duration": self.duration,
            "direction": self.direction,
            "client_name": self.client_name,
            "session_id": self.session_id,
            "action": self.action,
            "raw": dict(self.raw),
        }


@dataclass
class ThreatRecord:
    """One detected or blocked security event."""

    id: str
    timestamp: datetime
    source_address: str = ""
    source_port: int = 0
    destination_address: str = ""
    destination_port: int = 0
    protocol: str = ""
    threat_type: str = "unknown"
    threat_category: str = "unknown"
    severity: str = "medium"
    action: str = "blocked"
    raw: dict = field(default_factory=dict)

    @property
    def record_type(self) -> RecordType:
        return RecordType.THREATS

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "source_address": self.source_address,
            "source_port": self.source_port,
            "destination_address": self.destination_address,
            "destination_port": self.destination_port,
            "protocol": self.protocol,
            "threat_type": self.threat_type,
            "threat_category": self.threat_category,
            "severity": self.severity,
            "action": self.action,
            "raw": dict(self.raw),
        }


CanonicalRecord = Union[FlowRecord, ThreatRecord]
