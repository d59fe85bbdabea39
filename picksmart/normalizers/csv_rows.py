"""
Flat-record reader for the platform's tabular exports.
Rows come back as raw string dicts in file order; nothing is interpreted here.
"""
import csv
from typing import Dict, Iterable, List

from picksmart.errors import InputMalformedError
from picksmart.logger import logger


def parse_rows(lines: Iterable[str], source: str = "<input>") -> List[Dict[str, str]]:
    """
    Parse CSV text into header-keyed rows.

    Raises:
        InputMalformedError: On unterminated quotes or a row whose column
            count differs from the header. No partial result is returned.
    """
    reader = csv.reader(lines, strict=True)
    rows: List[Dict[str, str]] = []

    try:
        header = next(reader, None)
        if header is None:
            return rows

        for values in reader:
            if not values:
                # blank line
                continue
            if len(values) != len(header):
                raise InputMalformedError(
                    f"{source}: line {reader.line_num} has {len(values)} columns, "
                    f"expected {len(header)}"
                )
            rows.append(dict(zip(header, values)))

    except csv.Error as e:
        raise InputMalformedError(f"{source}: line {reader.line_num}: {e}") from e

    return rows


def read_rows(file_path: str) -> List[Dict[str, str]]:
    """Read an export file from disk. A missing file propagates as FileNotFoundError."""
    with open(file_path, "r", encoding="utf-8-sig", newline="") as f:
        rows = parse_rows(f, source=file_path)

    logger.info(
        f"Read {len(rows)} rows from {file_path}",
        extra={"extra": {"component": "migration", "rows": len(rows)}}
    )
    return rows
