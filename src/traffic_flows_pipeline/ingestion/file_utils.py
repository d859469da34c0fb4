"""
Shared file utilities for the ingestion module.
"""

import gzip
from pathlib import Path
from typing import IO, Union

# Export files picked up by directory imports
CSV_SUFFIXES = (".csv", ".csv.gz")


def open_file_auto_decompress(
    file_path: Union[str, Path],
    encoding: str = "utf-8-sig",
) -> IO[str]:
    """
    Open a CSV export for reading, automatically detecting gzip compression.

    Gzip detection is performed by:
    1. Checking for .gz file extension
    2. Checking for gzip magic bytes (0x1f 0x8b) even without .gz extension

    Args:
        file_path: Path to the file
        encoding: Text encoding (default: utf-8 with optional BOM)

    Returns:
        Open file handle (text mode, newline translation disabled for csv)

    Raises:
        FileNotFoundError: If file doesn't exist
        PermissionError: If file cannot be read
    """
    path = Path(file_path)

    if not path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    if path.suffix.lower() == ".gz":
        return gzip.open(path, "rt", encoding=encoding, newline="")

    with open(path, "rb") as f:
        magic = f.read(2)
    if magic == b"\x1f\x8b":
        return gzip.open(path, "rt", encoding=encoding, newline="")

    return open(path, "r", encoding=encoding, newline="")


def is_csv_export(path: Path) -> bool:
    """True for ``*.csv`` and ``*.csv.gz`` files."""
    return path.is_file() and path.name.lower().endswith(CSV_SUFFIXES)
