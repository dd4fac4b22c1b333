from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from numbers import Real
from typing import Any

import numpy as np

from ..models.series import SeriesPoint

"""Series preparation for the forecaster: field selection, min-max scaling
and sliding windows.

Windows are built in chronological order and never shuffled; the
validation split is positional (most recent windows held out).
"""

__all__ = [
    "ForecastError",
    "SeriesSelectionError",
    "DegenerateSeriesError",
    "InsufficientDataError",
    "Scaler",
    "select_series",
    "windowize",
    "split_train_validation",
]


class ForecastError(Exception):
    """Base class for training / forecasting failures."""


class SeriesSelectionError(ForecastError):
    """Raised when the requested field is missing or not numeric in the stored records."""


class DegenerateSeriesError(ForecastError):
    """Raised when every value is identical, so min-max scaling is undefined."""


class InsufficientDataError(ForecastError):
    """Raised when there are too few points to window or train on."""


def _numeric(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, Real):
        return None
    as_float = float(value)
    if not math.isfinite(as_float):
        return None
    return as_float


def select_series(
    records: Iterable[dict[str, Any]],
    field: str,
    start_year: int | None = None,
    end_year: int | None = None,
    how: str = "last",
) -> list[SeriesPoint]:
    """Pick one numeric field out of stored records as a year-indexed series.

    Every record in the year range must hold `field` as a finite number;
    there is no fallback to other field names. Duplicate years collapse by
    last write (`how="last"`) or are summed (`how="sum"`, for per-category
    collections such as age groups or countries).
    """
    if how not in ("last", "sum"):
        raise ValueError(f"unknown duplicate-year policy: {how}")

    by_year: dict[int, float] = {}
    for record in records:
        try:
            year = int(record["year"])
        except (KeyError, TypeError, ValueError) as e:
            raise SeriesSelectionError(f"record without a valid year: {record!r}") from e
        if start_year is not None and year < start_year:
            continue
        if end_year is not None and year > end_year:
            continue
        if field not in record:
            available = ", ".join(sorted(k for k in record if k not in ("id", "year")))
            raise SeriesSelectionError(
                f"field '{field}' missing for year {year} (available fields: {available})"
            )
        value = _numeric(record[field])
        if value is None:
            raise SeriesSelectionError(f"field '{field}' for year {year} is not a finite number: {record[field]!r}")
        if how == "sum":
            by_year[year] = by_year.get(year, 0.0) + value
        else:
            by_year[year] = value

    return [SeriesPoint(year=y, value=by_year[y]) for y in sorted(by_year)]


@dataclass(frozen=True)
class Scaler:
    """Min-max scaler fitted once per training run (max > min)."""
    min: float
    max: float

    @classmethod
    def fit(cls, values: Sequence[float]) -> Scaler:
        if len(values) == 0:
            raise InsufficientDataError("cannot fit a scaler on an empty series")
        lo = float(min(values))
        hi = float(max(values))
        if hi == lo:
            raise DegenerateSeriesError(
                f"all values are identical ({lo:g}); normalization is undefined for a constant series"
            )
        return cls(min=lo, max=hi)

    @property
    def range(self) -> float:
        return self.max - self.min

    def normalize(self, values: Sequence[float] | np.ndarray) -> np.ndarray:
        return (np.asarray(values, dtype=np.float64) - self.min) / self.range

    def denormalize(self, values: Sequence[float] | np.ndarray) -> np.ndarray:
        return np.asarray(values, dtype=np.float64) * self.range + self.min


def windowize(values: Sequence[float] | np.ndarray, lookback: int) -> tuple[np.ndarray, np.ndarray]:
    """Sliding windows for one-step-ahead supervised learning.

    X[i] = values[i : i+lookback], y[i] = values[i+lookback]; a series of
    length L yields L - lookback windows.

    Raises InsufficientDataError when L <= lookback.
    """
    arr = np.asarray(values, dtype=np.float64)
    if lookback < 1:
        raise ValueError("lookback must be >= 1")
    if arr.shape[0] <= lookback:
        raise InsufficientDataError(
            f"need more than {lookback} points to build windows, got {arr.shape[0]}"
        )
    n = arr.shape[0] - lookback
    X = np.stack([arr[i:i + lookback] for i in range(n)])
    y = arr[lookback:].copy()
    return X, y


def split_train_validation(
    X: np.ndarray,
    y: np.ndarray,
    validation_fraction: float,
) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Split windows by position: the most recent fraction is held out.

    The split index is floor(n * (1 - fraction)), clamped so both sides keep
    at least one window. A single window serves as both training and
    validation data.
    """
    n = X.shape[0]
    if n == 0:
        raise InsufficientDataError("no windows to split")
    if n == 1:
        return X, y, X, y
    split = int(math.floor(n * (1.0 - validation_fraction)))
    split = min(max(split, 1), n - 1)
    return X[:split], y[:split], X[split:], y[split:]
