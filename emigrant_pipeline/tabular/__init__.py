"""CSV reading and reshaping into narrow per-year records."""

from .reader import (
    EmptyResultError,
    FormatMismatchError,
    ParseError,
    ReshapeError,
    YearColumns,
    clean_numeric,
    detect_year_columns,
    find_category_row,
    read_csv_rows,
)
from .reshape import merge_by_year, reshape_rows

__all__ = [
    "ReshapeError",
    "ParseError",
    "FormatMismatchError",
    "EmptyResultError",
    "YearColumns",
    "read_csv_rows",
    "detect_year_columns",
    "clean_numeric",
    "find_category_row",
    "merge_by_year",
    "reshape_rows",
]
