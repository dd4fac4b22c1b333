from __future__ import annotations

import statistics
from dataclasses import dataclass, field
from datetime import datetime

from .error_record import ErrorRecord
from .series import ForecastPoint, SeriesPoint

"""Result models for ingestion and forecasting runs.

All results are frozen; callers build new ones rather than mutating, so a
failed run can never corrupt the results of an earlier one.
"""

__all__ = [
    "BulkResult",
    "IngestResult",
    "EpochLog",
    "CandidateScore",
    "TrainingReport",
    "BacktestComparison",
    "BacktestReport",
    "ForecastRunResult",
    "BatchStatsAccumulator",
]


@dataclass(frozen=True)
class BulkResult:
    """Outcome of a best-effort bulk upsert / delete.

    Succeeded keys stay written even when other keys failed; `failures`
    names each failed operation.
    """
    collection: str
    succeeded: list[str]
    failures: list[ErrorRecord] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def failed_keys(self) -> list[str]:
        return [f.key for f in self.failures]


@dataclass(frozen=True)
class IngestResult:
    """Per-upload outcome (one CSV, or the occupation+education pair)."""
    source: str
    kind: str
    status: str  # success / partial / failed
    record_count: int = 0  # records produced by the reshaper
    stored_count: int = 0  # records the store accepted
    failed_count: int = 0
    elapsed_seconds: float = 0.0
    error: str | None = None  # human-readable reason for failed uploads
    records: list[dict] | None = None  # preview rows (reshaped records)


@dataclass(frozen=True)
class EpochLog:
    """Loss values reported after one training epoch."""
    epoch: int  # 1-based
    loss: float
    val_loss: float | None
    candidate: int = 1  # 1-based position in the model search


@dataclass(frozen=True)
class CandidateScore:
    """Validation score of one configuration tried during model selection."""
    model_type: str
    units: int
    dropout: float
    learning_rate: float
    rmse: float
    epochs_run: int


@dataclass(frozen=True)
class TrainingReport:
    """Summary of one training run.

    `rmse` is measured on the held-out (most recent) windows in normalized
    units and doubles as the artifact's bestScore.
    `candidates` lists every configuration tried when model selection ran;
    the report describes the winner.
    """
    attribute: str
    lookback: int
    scaler_min: float
    scaler_max: float
    trained_years: list[int]
    trained_values: list[float]
    history: list[EpochLog]
    rmse: float
    stopped_early: bool = False
    model_type: str = "lstm"
    candidates: list[CandidateScore] = field(default_factory=list)

    @property
    def model_accuracy(self) -> float:
        return max(0.0, (1.0 - self.rmse) * 100.0)

    @property
    def epochs_run(self) -> int:
        return len(self.history)

    @property
    def last_year(self) -> int:
        return self.trained_years[-1]


@dataclass(frozen=True)
class BacktestComparison:
    year: int
    actual: float
    predicted: float
    error: float
    percent_error: float
    accuracy: float


@dataclass(frozen=True)
class BacktestReport:
    """Diagnostic comparison of forecasts against already-known actuals."""
    comparisons: list[BacktestComparison]

    @property
    def mean_accuracy(self) -> float | None:
        if not self.comparisons:
            return None
        return statistics.mean(c.accuracy for c in self.comparisons)

    @property
    def mean_percent_error(self) -> float | None:
        if not self.comparisons:
            return None
        return statistics.mean(c.percent_error for c in self.comparisons)


@dataclass(frozen=True)
class ForecastRunResult:
    kind: str
    attribute: str
    series: list[SeriesPoint]
    training: TrainingReport
    forecasts: list[ForecastPoint]
    backtest: BacktestReport
    started_at: datetime
    finished_at: datetime
    artifact_path: str | None = None

    @property
    def elapsed_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


class BatchStatsAccumulator:
    """Accumulates per-operation timings reported by bulk operations."""

    def __init__(self) -> None:
        self.batch_times: list[float] = []

    def add_batch_time(self, elapsed_seconds: float) -> None:
        self.batch_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Return (count, mean_seconds, p95_seconds)."""
        if not self.batch_times:
            return (0, 0.0, 0.0)

        total = len(self.batch_times)
        avg = statistics.mean(self.batch_times)
        if total == 1:
            p95 = self.batch_times[0]
        else:
            p95 = statistics.quantiles(self.batch_times, n=20, method="inclusive")[18]
        return (total, avg, p95)
