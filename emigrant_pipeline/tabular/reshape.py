from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from ..models.datasets import DatasetKind, NormalizedRecord
from .reader import (
    EmptyResultError,
    FormatMismatchError,
    RawRow,
    cell_at,
    clean_numeric,
    detect_year_columns,
    find_category_row,
    is_excluded_label,
    parse_year,
)

"""Reshapers: raw CSV rows -> narrow NormalizedRecords.

Layouts handled:

- flat ("long"): one row per year, header names the columns
  (gender, total fallback, geographic)
- transposed ("wide"): header row holds 4-digit years, first column holds the
  category label (education, age, occupation, total)

Transposed parsers return an empty list when the header has no year columns;
the dispatcher reshape_rows() turns any empty result into EmptyResultError so
the upload is rejected with a single human-readable message.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "EDUCATION_LEVELS",
    "parse_gender",
    "parse_education_transposed",
    "parse_age_transposed",
    "parse_occupation_transposed",
    "parse_total_transposed",
    "parse_total_flat",
    "parse_geographic",
    "merge_by_year",
    "reshape_rows",
    "NO_VALID_DATA_MESSAGE",
]

NO_VALID_DATA_MESSAGE = "No valid processed data. Please check your CSV format."

# output field -> source row spellings; each field is the sum of its rows
EDUCATION_LEVELS: dict[str, tuple[tuple[str, ...], ...]] = {
    "elementary": (
        ("Elementary Level",),
        ("Elementary Graduate",),
    ),
    "highSchool": (
        ("High School Level",),
        ("High School Graduate",),
    ),
    "college": (
        ("College Level",),
        ("College Graduate",),
    ),
    "postgraduate": (
        ("Post Graduate Level", "Postgraduate Level"),
        ("Post Graduate", "Postgraduate"),
    ),
}

OCCUPATION_EXCLUDED = ("no occupation reported",)


def _lower_headers(rows: Sequence[RawRow]) -> list[str]:
    return [str(h).strip().lower() for h in rows[0]]


def _find_header(headers: list[str], predicate) -> int:
    for idx, h in enumerate(headers):
        if predicate(h):
            return idx
    return -1


def parse_gender(rows: Sequence[RawRow]) -> list[NormalizedRecord]:
    """Flat gender table: columns containing 'year', 'male' and 'female'.

    Raises FormatMismatchError when any of the three columns is missing.
    """
    if not rows:
        return []
    headers = _lower_headers(rows)
    year_idx = _find_header(headers, lambda h: "year" in h)
    male_idx = _find_header(headers, lambda h: "male" in h and "female" not in h)
    female_idx = _find_header(headers, lambda h: "female" in h)
    logger.debug("gender columns year=%d male=%d female=%d", year_idx, male_idx, female_idx)

    missing = [
        name
        for name, idx in (("year", year_idx), ("male", male_idx), ("female", female_idx))
        if idx == -1
    ]
    if missing:
        raise FormatMismatchError(f"gender data is missing required columns: {missing}")

    records: list[NormalizedRecord] = []
    for row in rows[1:]:
        year = parse_year(cell_at(row, year_idx))
        if year is None:
            continue
        records.append({
            "year": year,
            "male": clean_numeric(cell_at(row, male_idx)),
            "female": clean_numeric(cell_at(row, female_idx)),
        })
    return records


def parse_education_transposed(rows: Sequence[RawRow]) -> list[NormalizedRecord]:
    """One record per year column with the four education aggregates.

    Each aggregate sums its "Level" and "Graduate" rows; absent rows count as 0.
    """
    if not rows:
        return []
    year_cols = detect_year_columns(rows[0])
    logger.debug("education years=%s", year_cols.years)

    source_rows = {
        field: [find_category_row(rows, variants) for variants in parts]
        for field, parts in EDUCATION_LEVELS.items()
    }

    records: list[NormalizedRecord] = []
    for year, col in year_cols:
        record: NormalizedRecord = {"year": year}
        for field, matched in source_rows.items():
            record[field] = sum(clean_numeric(cell_at(r, col)) for r in matched)
        records.append(record)
    return records


def _parse_category_transposed(
    rows: Sequence[RawRow],
    label_field: str,
    extra_excluded: Sequence[str] = (),
) -> list[NormalizedRecord]:
    if not rows:
        return []
    year_cols = detect_year_columns(rows[0])
    if not year_cols:
        logger.debug("no year columns found for %s data", label_field)
        return []

    records: list[NormalizedRecord] = []
    for year, col in year_cols:
        for row in rows[1:]:
            label = str(cell_at(row, 0) or "").strip()
            if is_excluded_label(label, extra_excluded):
                continue
            count = clean_numeric(cell_at(row, col))
            if count > 0:
                records.append({"year": year, label_field: label, "count": count})
    return records


def parse_age_transposed(rows: Sequence[RawRow]) -> list[NormalizedRecord]:
    """One {year, ageGroup, count} record per year column and age-group row (count > 0)."""
    return _parse_category_transposed(rows, "ageGroup")


def parse_occupation_transposed(rows: Sequence[RawRow]) -> list[NormalizedRecord]:
    """One {year, occupation, count} record per year column and occupation row (count > 0)."""
    return _parse_category_transposed(rows, "occupation", OCCUPATION_EXCLUDED)


def parse_total_transposed(rows: Sequence[RawRow]) -> list[NormalizedRecord]:
    """Per year column, the sum over every non-excluded category row."""
    if not rows:
        return []
    year_cols = detect_year_columns(rows[0])
    if not year_cols:
        return []

    records: list[NormalizedRecord] = []
    for year, col in year_cols:
        total = 0
        for row in rows[1:]:
            if is_excluded_label(cell_at(row, 0)):
                continue
            total += clean_numeric(cell_at(row, col))
        records.append({"year": year, "total": total})
    return records


def parse_total_flat(rows: Sequence[RawRow]) -> list[NormalizedRecord]:
    """Flat totals table: columns containing 'year' and 'total'."""
    if not rows:
        return []
    headers = _lower_headers(rows)
    year_idx = _find_header(headers, lambda h: "year" in h)
    total_idx = _find_header(headers, lambda h: "total" in h)
    if year_idx == -1 or total_idx == -1:
        raise FormatMismatchError("total data needs 'year' and 'total' columns")

    records: list[NormalizedRecord] = []
    for row in rows[1:]:
        year = parse_year(cell_at(row, year_idx))
        if year is None:
            continue
        records.append({"year": year, "total": clean_numeric(cell_at(row, total_idx))})
    return records


def parse_geographic(rows: Sequence[RawRow]) -> list[NormalizedRecord]:
    """Flat country table: a YEAR column followed by one column per country.

    A TOTAL column and blank headers are ignored; only positive counts are emitted.
    """
    if not rows:
        return []
    header = rows[0]
    year_idx = _find_header([str(h).strip().upper() for h in header], lambda h: h == "YEAR")
    if year_idx == -1:
        raise FormatMismatchError("geographic data needs a 'YEAR' column")

    countries: list[tuple[int, str]] = []
    for idx in range(year_idx + 1, len(header)):
        name = str(header[idx]).strip()
        if name and name.upper() != "TOTAL":
            countries.append((idx, name))
    logger.debug("geographic countries=%s", [c for _, c in countries])

    records: list[NormalizedRecord] = []
    for row in rows[1:]:
        year = parse_year(cell_at(row, year_idx))
        if year is None:
            continue
        for idx, country in countries:
            count = clean_numeric(cell_at(row, idx))
            if count > 0:
                records.append({"year": year, "country": country, "count": count})
    return records


def merge_by_year(
    occupation: Sequence[NormalizedRecord],
    education: Sequence[NormalizedRecord],
) -> list[NormalizedRecord]:
    """Inner-join occupation records with the education aggregates of the same year.

    Occupation years with no education record are dropped; the output keeps
    the order of `occupation`.
    """
    education_by_year: dict[int, dict[str, int]] = {}
    for item in education:
        education_by_year[int(item["year"])] = {
            field: int(item.get(field) or 0) for field in EDUCATION_LEVELS
        }

    merged: list[NormalizedRecord] = []
    for occ in occupation:
        edu = education_by_year.get(int(occ["year"]))
        if edu is None:
            continue
        merged.append({
            "year": int(occ["year"]),
            "occupation": occ["occupation"],
            "totalOccupation": int(occ.get("count") or 0),
            "totalEducation": sum(edu.values()),
            **edu,
        })
    return merged


def reshape_rows(kind: DatasetKind, rows: Sequence[RawRow]) -> list[NormalizedRecord]:
    """Run the reshaper for `kind`.

    `total` tries the transposed layout first and falls back to the flat one
    when the header has no year columns. Any empty outcome raises
    EmptyResultError.
    """
    if not rows:
        raise EmptyResultError(NO_VALID_DATA_MESSAGE)

    records: list[NormalizedRecord]
    if kind is DatasetKind.GENDER:
        records = parse_gender(rows)
    elif kind is DatasetKind.EDUCATION:
        records = parse_education_transposed(rows)
    elif kind is DatasetKind.AGE:
        records = parse_age_transposed(rows)
    elif kind is DatasetKind.OCCUPATION:
        records = parse_occupation_transposed(rows)
    elif kind is DatasetKind.GEOGRAPHIC:
        records = parse_geographic(rows)
    elif kind is DatasetKind.TOTAL:
        if detect_year_columns(rows[0]):
            records = parse_total_transposed(rows)
        else:
            records = parse_total_flat(rows)
    else:  # pragma: no cover - exhaustive over DatasetKind
        raise FormatMismatchError(f"unsupported dataset kind: {kind}")

    if not records:
        raise EmptyResultError(NO_VALID_DATA_MESSAGE)
    logger.debug("reshaped kind=%s records=%d first=%s", kind.value, len(records), records[:3])
    return records


def preview(records: Sequence[NormalizedRecord], limit: int = 10) -> list[dict[str, Any]]:
    return [dict(r) for r in records[:limit]]
