from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable, Generator, Iterator, Mapping, Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

import numpy as np
from tensorflow import keras

from ..models.config_models import ForecastSettings
from ..models.processing_result import (
    BacktestComparison,
    BacktestReport,
    CandidateScore,
    EpochLog,
    TrainingReport,
)
from ..models.series import ForecastPoint, SeriesPoint
from .series import (
    DegenerateSeriesError,
    ForecastError,
    InsufficientDataError,
    Scaler,
    split_train_validation,
    windowize,
)

"""Forecaster: training loop, model selection, autoregressive rollout and backtest.

Lifecycle (EngineState):

    IDLE -> TRAINING -> TRAINED -> FORECASTING -> FORECASTED
                 \\-> ERROR (any failure; training again recovers)

Training runs one epoch per model.fit() call so the loop can be observed,
cancelled (should_cancel is checked between epochs) and, in train_async(),
yield to the event loop every `yield_every` epochs. An engine is not
reentrant: callers serialize training requests per series.

With ForecastSettings.tune the engine trains every configuration in
TUNING_CANDIDATES (three LSTM, three MLP) on the same windows and keeps the
model with the lowest validation RMSE; the others are dropped as soon as a
better one is found.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "EngineState",
    "EngineStateError",
    "TrainingCancelled",
    "ForecastEngine",
    "TUNING_CANDIDATES",
    "build_model",
    "build_lstm_model",
    "build_mlp_model",
    "candidate_settings",
    "forecast",
    "backtest_accuracy",
]

# (model_type, units, dropout, learning_rate); dense head width per type below
TUNING_CANDIDATES = (
    ("lstm", 50, 0.2, 0.001),
    ("lstm", 100, 0.2, 0.001),
    ("lstm", 100, 0.3, 0.0005),
    ("mlp", 64, 0.2, 0.001),
    ("mlp", 128, 0.2, 0.001),
    ("mlp", 128, 0.3, 0.0005),
)
_TUNING_DENSE_UNITS = {"lstm": 50, "mlp": 64}
_TUNING_RECURRENT_LAYERS = 2


class EngineStateError(ForecastError):
    """Raised when an operation is not valid in the engine's current state."""


class TrainingCancelled(ForecastError):
    """Raised when should_cancel() asked training to stop between epochs."""


class EngineState(Enum):
    IDLE = "idle"
    TRAINING = "training"
    TRAINED = "trained"
    FORECASTING = "forecasting"
    FORECASTED = "forecasted"
    ERROR = "error"


def build_lstm_model(settings: ForecastSettings) -> keras.Model:
    """LSTM regression model: 1-2 recurrent layers + dropout + dense head.

    Input shape is (lookback, 1); output is the next normalized value.
    """
    model = keras.Sequential()
    model.add(keras.layers.Input(shape=(settings.lookback, 1)))
    for layer in range(settings.recurrent_layers):
        last = layer == settings.recurrent_layers - 1
        model.add(keras.layers.LSTM(settings.units, return_sequences=not last))
        model.add(keras.layers.Dropout(settings.dropout))
    model.add(keras.layers.Dense(settings.dense_units))
    model.add(keras.layers.Dense(1))
    _compile(model, settings)
    return model


def build_mlp_model(settings: ForecastSettings) -> keras.Model:
    """Feed-forward model over the flattened window: (lookback,) -> next value."""
    model = keras.Sequential()
    model.add(keras.layers.Input(shape=(settings.lookback,)))
    for _ in range(2):
        model.add(keras.layers.Dense(settings.units, activation="relu"))
        model.add(keras.layers.Dropout(settings.dropout))
    model.add(keras.layers.Dense(settings.dense_units, activation="relu"))
    model.add(keras.layers.Dense(1))
    _compile(model, settings)
    return model


def build_model(settings: ForecastSettings) -> keras.Model:
    if settings.model_type == "mlp":
        return build_mlp_model(settings)
    return build_lstm_model(settings)


def _compile(model: keras.Model, settings: ForecastSettings) -> None:
    model.compile(
        optimizer=keras.optimizers.Adam(learning_rate=settings.learning_rate),
        loss="mse",
        metrics=["mae"],
    )


def candidate_settings(settings: ForecastSettings) -> list[ForecastSettings]:
    """Configurations to train: just `settings`, or the tuning grid when `tune` is set."""
    if not settings.tune:
        return [settings]
    return [
        replace(
            settings,
            model_type=model_type,
            units=units,
            dropout=dropout,
            learning_rate=learning_rate,
            dense_units=_TUNING_DENSE_UNITS[model_type],
            recurrent_layers=_TUNING_RECURRENT_LAYERS,
            tune=False,
        )
        for model_type, units, dropout, learning_rate in TUNING_CANDIDATES
    ]


def _model_input(X: np.ndarray, model_type: str) -> np.ndarray:
    # lstm: (samples, timesteps, features=1); mlp: (samples, timesteps)
    if model_type == "mlp":
        return X.reshape(X.shape[0], X.shape[1])
    return X.reshape(X.shape[0], X.shape[1], 1)


def _rmse(predicted: np.ndarray, actual: np.ndarray) -> float:
    diff = np.asarray(predicted, dtype=np.float64).reshape(-1) - np.asarray(actual, dtype=np.float64).reshape(-1)
    return float(math.sqrt(float(np.mean(diff * diff))))


def forecast(
    model: Any,
    last_window: Sequence[float] | np.ndarray,
    horizon: int,
    scaler: Scaler,
    last_year: int,
    model_type: str = "lstm",
) -> list[ForecastPoint]:
    """Autoregressive rollout of `horizon` one-step predictions.

    Each step predicts the next normalized value from the current window,
    records its denormalized value (rounded to a whole head-count) for year
    last_year + k, then slides the window: drop the oldest value, append the
    prediction.
    """
    if horizon < 1:
        raise ValueError("horizon must be >= 1")
    window = np.asarray(last_window, dtype=np.float64).reshape(-1).copy()
    if window.shape[0] == 0:
        raise InsufficientDataError("forecast needs a non-empty input window")

    points: list[ForecastPoint] = []
    for k in range(1, horizon + 1):
        raw = model.predict(_model_input(window.reshape(1, -1), model_type), verbose=0)
        predicted = float(np.asarray(raw, dtype=np.float64).reshape(-1)[0])
        value = float(scaler.denormalize([predicted])[0])
        points.append(ForecastPoint(year=last_year + k, value=float(round(value)), normalized_value=predicted))
        window = np.append(window[1:], predicted)
    return points


def backtest_accuracy(
    forecast_points: Sequence[ForecastPoint],
    actual_series: Sequence[SeriesPoint] | Mapping[int, float],
) -> BacktestReport:
    """Compare forecasts with actual values for the same years.

    Accuracy per year is 100 * (1 - |actual - predicted| / actual). Years
    without an actual value (or with an actual of 0) are left out rather
    than counted as perfect or failed predictions.
    """
    if isinstance(actual_series, Mapping):
        actual_by_year = {int(y): float(v) for y, v in actual_series.items()}
    else:
        actual_by_year = {p.year: float(p.value) for p in actual_series}

    comparisons: list[BacktestComparison] = []
    for point in forecast_points:
        actual = actual_by_year.get(point.year)
        if not actual:
            continue
        error = abs(actual - point.value)
        comparisons.append(BacktestComparison(
            year=point.year,
            actual=actual,
            predicted=point.value,
            error=error,
            percent_error=error / abs(actual) * 100.0,
            accuracy=100.0 * (1.0 - error / actual),
        ))
    return BacktestReport(comparisons=comparisons)


@dataclass(frozen=True)
class _PreparedSeries:
    years: list[int]
    values: list[float]
    scaler: Scaler
    X_train: np.ndarray
    y_train: np.ndarray
    X_val: np.ndarray
    y_val: np.ndarray


class ForecastEngine:
    """Owns one model at a time for one attribute series.

    The trained model is released explicitly with release(); training again
    also discards the previous model first.
    """

    def __init__(
        self,
        settings: ForecastSettings | None = None,
        *,
        attribute: str = "value",
        model_factory: Callable[[ForecastSettings], Any] = build_model,
    ) -> None:
        self.settings = settings or ForecastSettings()
        self.attribute = attribute
        self._model_factory = model_factory
        self.state = EngineState.IDLE
        self.model: Any = None
        self.report: TrainingReport | None = None
        self.forecasts: list[ForecastPoint] = []
        self.last_error: str | None = None

    @property
    def busy(self) -> bool:
        return self.state in (EngineState.TRAINING, EngineState.FORECASTING)

    @property
    def planned_epochs(self) -> int:
        """Upper bound of epochs one training run will report."""
        return self.settings.epochs * len(candidate_settings(self.settings))

    @property
    def scaler(self) -> Scaler:
        if self.report is None:
            raise EngineStateError("engine has not been trained")
        return Scaler(min=self.report.scaler_min, max=self.report.scaler_max)

    def _prepare(self, series: Sequence[SeriesPoint]) -> _PreparedSeries:
        points = sorted(series, key=lambda p: p.year)
        years = [p.year for p in points]
        if len(set(years)) != len(years):
            raise ForecastError("series years must be unique")
        values = [float(p.value) for p in points]
        if not all(math.isfinite(v) for v in values):
            raise ForecastError("series values must be finite")
        # a flat series can never be normalized, however long it is
        if values and min(values) == max(values):
            raise DegenerateSeriesError(
                f"all values are identical ({values[0]:g}); normalization is undefined for a constant series"
            )
        required = self.settings.required_points
        if len(points) < required:
            raise InsufficientDataError(
                f"need at least {required} years of data for training, got {len(points)}"
            )

        scaler = Scaler.fit(values)
        X, y = windowize(scaler.normalize(values), self.settings.lookback)
        X_train, y_train, X_val, y_val = split_train_validation(X, y, self.settings.validation_fraction)
        return _PreparedSeries(
            years=years,
            values=values,
            scaler=scaler,
            X_train=X_train,
            y_train=y_train,
            X_val=X_val,
            y_val=y_val,
        )

    def _discard_model(self) -> None:
        if self.model is not None:
            self.model = None
            keras.backend.clear_session()

    def _abort(self, state: EngineState, error: str | None) -> None:
        self.model = None
        keras.backend.clear_session()
        self.state = state
        self.last_error = error

    def _fit_candidate(
        self,
        model: Any,
        settings: ForecastSettings,
        data: _PreparedSeries,
        candidate: int,
        should_cancel: Callable[[], bool] | None,
    ) -> Generator[EpochLog, None, tuple[list[EpochLog], float, bool]]:
        X_train = _model_input(data.X_train, settings.model_type)
        X_val = _model_input(data.X_val, settings.model_type)

        history: list[EpochLog] = []
        best_val = math.inf
        stale = 0
        stopped_early = False
        for epoch in range(1, settings.epochs + 1):
            if should_cancel is not None and should_cancel():
                raise TrainingCancelled(f"training cancelled before epoch {epoch}")
            fitted = model.fit(
                X_train,
                data.y_train,
                validation_data=(X_val, data.y_val),
                epochs=1,
                batch_size=settings.batch_size,
                shuffle=False,
                verbose=0,
            )
            loss = float(fitted.history["loss"][-1])
            val_history = fitted.history.get("val_loss")
            val_loss = float(val_history[-1]) if val_history else None
            log = EpochLog(epoch=epoch, loss=loss, val_loss=val_loss, candidate=candidate)
            history.append(log)
            yield log

            if settings.patience and val_loss is not None:
                if val_loss < best_val:
                    best_val = val_loss
                    stale = 0
                else:
                    stale += 1
                    if stale >= settings.patience:
                        logger.debug("early stopping at epoch %d", epoch)
                        stopped_early = True
                        break

        rmse = _rmse(model.predict(X_val, verbose=0), data.y_val)
        return history, rmse, stopped_early

    def iter_training(
        self,
        series: Sequence[SeriesPoint],
        should_cancel: Callable[[], bool] | None = None,
    ) -> Iterator[EpochLog]:
        """Train epoch by epoch, yielding an EpochLog after each one.

        On normal completion the engine is TRAINED and `report` is set.
        Cancellation (should_cancel(), closing the generator or an interrupt
        such as KeyboardInterrupt) releases the partially trained model and
        leaves the engine IDLE; any other failure leaves it in ERROR.
        """
        if self.busy:
            raise EngineStateError(f"cannot train while {self.state.value}")
        self._discard_model()
        self.report = None
        self.state = EngineState.TRAINING
        self.last_error = None
        try:
            data = self._prepare(series)
            candidates = candidate_settings(self.settings)
            logger.debug(
                "training attribute=%s points=%d train_windows=%d val_windows=%d candidates=%d",
                self.attribute,
                len(data.values),
                data.X_train.shape[0],
                data.X_val.shape[0],
                len(candidates),
            )

            scores: list[CandidateScore] = []
            best: tuple[Any, ForecastSettings, list[EpochLog], float, bool] | None = None
            for index, settings in enumerate(candidates, start=1):
                model = self._model_factory(settings)
                history, rmse, stopped_early = yield from self._fit_candidate(
                    model, settings, data, index, should_cancel
                )
                scores.append(CandidateScore(
                    model_type=settings.model_type,
                    units=settings.units,
                    dropout=settings.dropout,
                    learning_rate=settings.learning_rate,
                    rmse=rmse,
                    epochs_run=len(history),
                ))
                logger.debug(
                    "candidate %d/%d %s units=%d rmse=%.6f",
                    index, len(candidates), settings.model_type, settings.units, rmse,
                )
                # ties keep the earlier candidate; the loser's reference is dropped here
                if best is None or rmse < best[3]:
                    best = (model, settings, history, rmse, stopped_early)
                model = None
        except GeneratorExit:
            self._abort(EngineState.IDLE, None)
            raise
        except TrainingCancelled as e:
            self._abort(EngineState.IDLE, str(e))
            raise
        except Exception as e:
            self._abort(EngineState.ERROR, str(e))
            raise
        except BaseException:
            self._abort(EngineState.IDLE, "training interrupted")
            raise

        assert best is not None
        model, settings, history, rmse, stopped_early = best
        self.model = model
        self.report = TrainingReport(
            attribute=self.attribute,
            lookback=self.settings.lookback,
            scaler_min=data.scaler.min,
            scaler_max=data.scaler.max,
            trained_years=data.years,
            trained_values=data.values,
            history=history,
            rmse=rmse,
            stopped_early=stopped_early,
            model_type=settings.model_type,
            candidates=scores if len(candidates) > 1 else [],
        )
        self.state = EngineState.TRAINED
        logger.debug(
            "trained attribute=%s model=%s rmse=%.6f epochs=%d",
            self.attribute, settings.model_type, rmse, len(history),
        )

    def train(
        self,
        series: Sequence[SeriesPoint],
        should_cancel: Callable[[], bool] | None = None,
        on_epoch: Callable[[EpochLog], None] | None = None,
    ) -> TrainingReport:
        """Run the whole training loop synchronously."""
        for log in self.iter_training(series, should_cancel):
            if on_epoch is not None:
                on_epoch(log)
        assert self.report is not None
        return self.report

    async def train_async(
        self,
        series: Sequence[SeriesPoint],
        should_cancel: Callable[[], bool] | None = None,
        on_epoch: Callable[[EpochLog], None] | None = None,
    ) -> TrainingReport:
        """Training loop that hands control back to the event loop every `yield_every` epochs."""
        for log in self.iter_training(series, should_cancel):
            if on_epoch is not None:
                on_epoch(log)
            if log.epoch % self.settings.yield_every == 0:
                await asyncio.sleep(0)
        assert self.report is not None
        return self.report

    def forecast(self, horizon: int | None = None) -> list[ForecastPoint]:
        """Forecast `horizon` years after the last trained year."""
        if self.state not in (EngineState.TRAINED, EngineState.FORECASTED) or self.model is None:
            raise EngineStateError(f"cannot forecast while {self.state.value}; train the model first")
        assert self.report is not None
        steps = horizon if horizon is not None else self.settings.horizon
        self.state = EngineState.FORECASTING
        try:
            scaler = self.scaler
            window = scaler.normalize(self.report.trained_values[-self.report.lookback:])
            points = forecast(
                self.model, window, steps, scaler, self.report.last_year, self.report.model_type
            )
        except BaseException as e:
            self.state = EngineState.ERROR
            self.last_error = str(e)
            raise
        self.forecasts = points
        self.state = EngineState.FORECASTED
        return points

    def release(self) -> None:
        """Drop the trained model and free its backend resources."""
        if self.busy:
            raise EngineStateError(f"cannot release while {self.state.value}")
        self._discard_model()
        self.state = EngineState.IDLE
