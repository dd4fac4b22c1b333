from .series import (
    DegenerateSeriesError,
    ForecastError,
    InsufficientDataError,
    Scaler,
    SeriesSelectionError,
    select_series,
    split_train_validation,
    windowize,
)

__all__ = [
    "DegenerateSeriesError",
    "ForecastError",
    "InsufficientDataError",
    "Scaler",
    "SeriesSelectionError",
    "select_series",
    "split_train_validation",
    "windowize",
]
