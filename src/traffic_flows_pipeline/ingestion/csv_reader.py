"""
Streaming CSV row reader.

Reads exported CSV files row by row so that large exports never sit in
memory. Column names are taken verbatim from the header; mapping them to
canonical fields is the normalizer's job.
"""

import csv
import io
import logging
from typing import IO, Iterator, Union

from .exceptions import ParseError

logger = logging.getLogger(__name__)


def as_text_stream(stream: Union[IO[str], IO[bytes]], encoding: str = "utf-8-sig") -> IO[str]:
    """
    Wrap a binary stream for text reading; text streams pass through.

    The default ``utf-8-sig`` encoding drops a leading BOM.
    """
    if isinstance(stream, io.TextIOBase):
        return stream
    if isinstance(stream, (io.RawIOBase, io.BufferedIOBase)) or "b" in getattr(
        stream, "mode", ""
    ):
        return io.TextIOWrapper(stream, encoding=encoding, newline="")
    return stream


class CSVRowReader:
    """
    Streaming CSV reader yielding one dict per data row.

    Supports:
    - Configurable delimiters (comma, tab, etc.)
    - BOM stripping on the header row
    - Skipping blank rows

    Usage:
        reader = CSVRowReader()
        with open('flows.csv', newline='') as f:
            for line_number, row in reader.iter_rows(f):
                process(row)
    """

    def __init__(self, delimiter: str = ",", quotechar: str = '"'):
        self.delimiter = delimiter
        self.quotechar = quotechar
        self.rows_read = 0
        self.rows_skipped = 0

    def iter_rows(self, file_handle: IO[str]) -> Iterator[tuple[int, dict[str, str]]]:
        """
        Parse CSV data from a text handle.

        Short rows are padded with empty strings; cells beyond the header
        are ignored.

        Args:
            file_handle: Open file handle (text mode)

        Yields:
            Tuples of (line_number, row) where row maps header -> cell

        Raises:
            ParseError: If the stream is not readable as CSV
        """
        reader = csv.reader(
            file_handle,
            delimiter=self.delimiter,
            quotechar=self.quotechar,
        )
        self.rows_read = 0
        self.rows_skipped = 0

        try:
            yield from self._rows(reader)
        except csv.Error as e:
            raise ParseError(f"Malformed CSV: {e}", line_number=reader.line_num) from e

    def _rows(self, reader) -> Iterator[tuple[int, dict[str, str]]]:
        try:
            header = next(reader)
        except StopIteration:
            logger.warning("Empty CSV file")
            return

        # Strip BOM from first column if present (common in Excel exports)
        if header and header[0].startswith("\ufeff"):
            header[0] = header[0].lstrip("\ufeff")
        header = [name.strip() for name in header]

        for row in reader:
            if not row or all(cell.strip() == "" for cell in row):
                self.rows_skipped += 1
                continue

            if len(row) < len(header):
                row = row + [""] * (len(header) - len(row))
            self.rows_read += 1
            yield reader.line_num, dict(zip(header, row))

        logger.info(
            f"CSV parsing complete: {self.rows_read} rows read, "
            f"{self.rows_skipped} blank rows skipped"
        )
