from __future__ import annotations

import csv
import io
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any

import pandas as pd

"""CSV reader and cell helpers.

The uploaded CSVs have no fixed schema: the first row may be a header with
years as columns ("transposed" layout) or a plain header (flat layout). This
module therefore reads every file raw (no header, all cells as strings) and
leaves layout detection to emigrant_pipeline.tabular.reshape.

Numeric cleaning is deliberately lossy: every non-digit character is removed
before parsing, so "1,234" -> 1234, "(500)" -> 500 and "12.5" -> 125. Source
figures are emigrant head-counts, which are never negative or fractional.
"""

__all__ = [
    "RawRow",
    "YearColumns",
    "ReshapeError",
    "ParseError",
    "FormatMismatchError",
    "EmptyResultError",
    "read_csv_rows",
    "detect_year_columns",
    "has_year_headers",
    "clean_numeric",
    "parse_year",
    "is_excluded_label",
    "find_category_row",
]

RawRow = list[str]

_YEAR_RE = re.compile(r"^[0-9]{4}$")
_NON_DIGIT_RE = re.compile(r"[^0-9]")

NO_DATA_MESSAGE = "No data found in CSV file."


class ReshapeError(Exception):
    """Base class for upload failures; the message is shown to the user as-is."""


class ParseError(ReshapeError):
    """Raised when the file cannot be read as CSV."""


class FormatMismatchError(ReshapeError):
    """Raised when columns required by the selected dataset are absent."""


class EmptyResultError(ReshapeError):
    """Raised when parsing succeeded but produced no usable records."""


@dataclass(frozen=True)
class YearColumns:
    """Year header cells found in a header row (parallel lists, column order)."""
    years: list[int] = field(default_factory=list)
    indices: list[int] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.years)

    def __iter__(self):
        return iter(zip(self.years, self.indices, strict=True))


def read_csv_rows(source: Path | str | IO[Any]) -> list[RawRow]:
    """Read a CSV file into raw string rows.

    Parameters
    ----------
    source: path or readable text/binary buffer

    Raises
    ------
    ParseError: the file is unreadable or not valid CSV
    EmptyResultError: the file holds no non-blank rows
    """
    try:
        text = _read_text(source)
        width = _widest_row(text)
    except (UnicodeDecodeError, OSError, csv.Error) as e:
        raise ParseError(f"Error parsing CSV: {e}") from e
    if width == 0:
        raise EmptyResultError(NO_DATA_MESSAGE)

    # rows may be ragged (trailing commas, title rows); name every column up front
    try:
        df = pd.read_csv(
            io.StringIO(text),
            header=None,
            names=range(width),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except pd.errors.EmptyDataError as e:
        raise EmptyResultError(NO_DATA_MESSAGE) from e
    except (pd.errors.ParserError, UnicodeDecodeError, OSError, ValueError) as e:
        raise ParseError(f"Error parsing CSV: {e}") from e

    rows = rows_from_frame(df)
    if not rows:
        raise EmptyResultError(NO_DATA_MESSAGE)
    return rows


def _read_text(source: Path | str | IO[Any]) -> str:
    data = source.read() if hasattr(source, "read") else Path(source).read_bytes()
    if isinstance(data, bytes):
        data = data.decode("utf-8-sig")
    return data.removeprefix("\ufeff")


def _widest_row(text: str) -> int:
    return max((len(row) for row in csv.reader(io.StringIO(text))), default=0)


def rows_from_frame(df: pd.DataFrame) -> list[RawRow]:
    """Convert a header-less DataFrame into string rows, dropping blank rows."""
    rows: list[RawRow] = []
    for raw in df.fillna("").itertuples(index=False, name=None):
        row = ["" if v is None else str(v) for v in raw]
        if all(cell.strip() == "" for cell in row):
            continue
        rows.append(row)
    return rows


def detect_year_columns(header_row: Sequence[Any]) -> YearColumns:
    """Return the columns (from index 1 on) whose trimmed text is exactly four digits.

    Order follows the header, not chronology; callers sort if they need to.

    >>> detect_year_columns(["Category", "2000", "Notes", "2001"])
    YearColumns(years=[2000, 2001], indices=[1, 3])
    """
    years: list[int] = []
    indices: list[int] = []
    for idx, cell in enumerate(header_row):
        if idx == 0:
            continue
        trimmed = _cell_text(cell).strip()
        if _YEAR_RE.match(trimmed):
            years.append(int(trimmed))
            indices.append(idx)
    return YearColumns(years=years, indices=indices)


def has_year_headers(header_row: Sequence[Any]) -> bool:
    return len(detect_year_columns(header_row)) > 0


def clean_numeric(cell: Any) -> int:
    """Strip every non-digit character and parse base-10; 0 when nothing is left.

    >>> clean_numeric("1,234"), clean_numeric(""), clean_numeric("N/A")
    (1234, 0, 0)
    """
    digits = _NON_DIGIT_RE.sub("", _cell_text(cell))
    if digits == "":
        return 0
    return int(digits, 10)


def parse_year(cell: Any) -> int | None:
    """Return the cell as a 4-digit year, or None when it is not one."""
    trimmed = _cell_text(cell).strip()
    if _YEAR_RE.match(trimmed):
        return int(trimmed)
    return None


def is_excluded_label(label: Any, extra: Iterable[str] = ()) -> bool:
    """True for category rows that must never become output categories or totals.

    Empty labels, "not reported" (exact) and anything containing "no response"
    are excluded; `extra` adds more exact (case-insensitive) labels.
    """
    text = _cell_text(label).strip().lower()
    if not text:
        return True
    if text == "not reported" or "no response" in text:
        return True
    return text in {e.strip().lower() for e in extra}


def find_category_row(rows: Sequence[Sequence[Any]], variants: Iterable[str]) -> Sequence[Any] | None:
    """Return the first data row (after the header) whose label matches a variant.

    Matching is exact after trimming, case-insensitive.
    """
    wanted = {v.strip().lower() for v in variants}
    for row in rows[1:]:
        if not row:
            continue
        if _cell_text(row[0]).strip().lower() in wanted:
            return row
    return None


def cell_at(row: Sequence[Any] | None, index: int) -> Any:
    """Cell value or None when the row is missing or too short."""
    if row is None or index >= len(row):
        return None
    return row[index]


def _cell_text(cell: Any) -> str:
    if cell is None:
        return ""
    try:
        if pd.isna(cell):
            return ""
    except (TypeError, ValueError):
        pass
    return str(cell)
