from __future__ import annotations

import math

import numpy as np
import pytest

from emigrant_pipeline.forecast.series import (
    DegenerateSeriesError,
    InsufficientDataError,
    Scaler,
    SeriesSelectionError,
    select_series,
    split_train_validation,
    windowize,
)
from emigrant_pipeline.models.series import SeriesPoint


def test_select_series_sorted_and_ranged():
    records = [{"year": 2003, "total": 3}, {"year": 2001, "total": 1}, {"year": 2002, "total": 2}]
    assert select_series(records, "total") == [
        SeriesPoint(2001, 1.0), SeriesPoint(2002, 2.0), SeriesPoint(2003, 3.0),
    ]
    assert [p.year for p in select_series(records, "total", start_year=2002)] == [2002, 2003]
    assert [p.year for p in select_series(records, "total", end_year=2001)] == [2001]


def test_select_series_missing_field_fails_fast():
    records = [{"id": "2001", "year": 2001, "male": 1, "female": 2}]
    with pytest.raises(SeriesSelectionError) as ei:
        select_series(records, "emigrants")
    assert "emigrants" in str(ei.value)
    assert "female, male" in str(ei.value)


def test_select_series_rejects_non_numeric_values():
    with pytest.raises(SeriesSelectionError):
        select_series([{"year": 2001, "total": "12"}], "total")
    with pytest.raises(SeriesSelectionError):
        select_series([{"year": 2001, "total": float("nan")}], "total")
    with pytest.raises(SeriesSelectionError):
        select_series([{"year": 2001, "total": True}], "total")


def test_select_series_out_of_range_records_are_not_checked():
    records = [{"year": 1990}, {"year": 2001, "total": 5}]
    assert select_series(records, "total", start_year=2000) == [SeriesPoint(2001, 5.0)]


def test_select_series_duplicate_years():
    records = [
        {"year": 2001, "country": "USA", "count": 5},
        {"year": 2001, "country": "CANADA", "count": 3},
    ]
    assert select_series(records, "count") == [SeriesPoint(2001, 3.0)]
    assert select_series(records, "count", how="sum") == [SeriesPoint(2001, 8.0)]
    with pytest.raises(ValueError):
        select_series(records, "count", how="mean")


def test_scaler_round_trip_and_range():
    scaler = Scaler.fit([10, 20, 30])
    assert (scaler.min, scaler.max) == (10.0, 30.0)
    np.testing.assert_allclose(scaler.normalize([10, 20, 30]), [0.0, 0.5, 1.0])
    np.testing.assert_allclose(scaler.denormalize([0.25, 1.5]), [15.0, 40.0])


@pytest.mark.parametrize("lo,hi", [(10.0, 30.0), (1234.0, 987654.0), (0.0, 1.0), (100.0, 160.0)])
def test_scaler_round_trip_within_1e_9(lo, hi):
    scaler = Scaler.fit([lo, hi])
    values = np.append(np.linspace(lo, hi, 1001), [lo, hi, (lo + hi) / 3])
    restored = scaler.denormalize(scaler.normalize(values))
    assert np.max(np.abs(restored - values)) <= 1e-9


def test_scaler_constant_series_is_degenerate():
    with pytest.raises(DegenerateSeriesError):
        Scaler.fit([5, 5, 5])
    with pytest.raises(InsufficientDataError):
        Scaler.fit([])


def test_windowize_shapes_and_targets():
    X, y = windowize([1, 2, 3, 4, 5, 6], 3)
    assert X.shape == (3, 3)
    np.testing.assert_array_equal(X[0], [1, 2, 3])
    np.testing.assert_array_equal(X[-1], [3, 4, 5])
    np.testing.assert_array_equal(y, [4, 5, 6])


def test_windowize_needs_more_points_than_lookback():
    with pytest.raises(InsufficientDataError):
        windowize([1, 2, 3], 3)
    with pytest.raises(ValueError):
        windowize([1, 2, 3], 0)


def test_split_is_positional_with_most_recent_held_out():
    X, y = windowize(list(range(15)), 5)  # 10 windows
    X_tr, y_tr, X_val, y_val = split_train_validation(X, y, 0.2)
    assert len(X_tr) == 8 and len(X_val) == 2
    np.testing.assert_array_equal(y_val, [13, 14])
    assert y_tr.max() < y_val.min()


def test_split_keeps_both_sides_non_empty():
    X, y = windowize([0, 1, 2, 3], 2)  # 2 windows
    X_tr, _, X_val, _ = split_train_validation(X, y, 0.01)
    assert len(X_tr) == 1 and len(X_val) == 1

    X, y = windowize([0, 1, 2], 2)  # 1 window
    X_tr, y_tr, X_val, y_val = split_train_validation(X, y, 0.2)
    assert len(X_tr) == len(X_val) == 1
    assert math.isclose(float(y_tr[0]), float(y_val[0]))
