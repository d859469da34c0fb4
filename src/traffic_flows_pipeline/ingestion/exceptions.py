"""
Exceptions raised while reading CSV exports.

Row-level problems never raise: the normalizer substitutes defaults. The
classes below cover the cases that stop an import before or while the
stream is read.
"""


class IngestionError(Exception):
    """Base class; catch this to skip a failing file in a directory import."""

    pass


class ParseError(IngestionError):
    """
    The CSV stream is not readable as CSV.

    Attributes:
        line_number: Reader line at which the stream failed (optional)
    """

    def __init__(self, message: str, line_number: int | None = None):
        self.line_number = line_number
        if line_number is not None:
            message = f"{message} (line {line_number})"
        super().__init__(message)


class UnsupportedRecordTypeError(IngestionError):
    """A record type other than flows or threats was requested."""

    def __init__(self, record_type: object):
        self.record_type = record_type
        super().__init__(
            f"Unsupported record type: {record_type!r}. "
            f"Expected 'flows' or 'threats'"
        )


class SourceValidationError(IngestionError):
    """
    An import source is missing or is the wrong kind of path.

    Attributes:
        source_type: 'file' or 'directory'
        reason: Short machine-friendly reason, e.g. "File not found"
    """

    def __init__(
        self,
        message: str,
        source_type: str | None = None,
        reason: str | None = None,
    ):
        self.source_type = source_type
        self.reason = reason
        super().__init__(message)


class ImportStreamError(IngestionError):
    """
    The input stream failed mid-import; no result is recorded.

    Attributes:
        source_name: File or stream label (optional)
    """

    def __init__(self, message: str, source_name: str | None = None):
        self.source_name = source_name
        if source_name:
            message = f"{message} (source='{source_name}')"
        super().__init__(message)
