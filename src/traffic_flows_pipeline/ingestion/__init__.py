"""
Ingestion module: CSV reading and record normalization.

Usage:
    from traffic_flows_pipeline.ingestion import RecordNormalizer, RecordType

    normalizer = RecordNormalizer()
    record = normalizer.normalize({"SourceIP": "8.8.8.8"}, RecordType.FLOWS)
"""

from .csv_reader import CSVRowReader, as_text_stream
from .exceptions import (
    ImportStreamError,
    IngestionError,
    ParseError,
    SourceValidationError,
    UnsupportedRecordTypeError,
)
from .file_utils import is_csv_export, open_file_auto_decompress
from .normalizer import (
    FIELD_ALIASES,
    RecordNormalizer,
    normalize_record,
    parse_float,
    parse_int,
    parse_timestamp,
    pick_field,
)
from .records import CanonicalRecord, FlowRecord, RecordType, ThreatRecord

__all__ = [
    # Records
    "CanonicalRecord",
    "FlowRecord",
    "ThreatRecord",
    "RecordType",
    # Normalization
    "FIELD_ALIASES",
    "RecordNormalizer",
    "normalize_record",
    "pick_field",
    "parse_int",
    "parse_float",
    "parse_timestamp",
    # Reading
    "CSVRowReader",
    "as_text_stream",
    "open_file_auto_decompress",
    "is_csv_export",
    # Exceptions
    "IngestionError",
    "ParseError",
    "SourceValidationError",
    "ImportStreamError",
    "UnsupportedRecordTypeError",
]
