from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from ..forecast.series import SeriesSelectionError, select_series
from ..logging.error_log import ErrorLogBuffer
from ..models.config_models import ForecastSettings
from ..models.datasets import DatasetKind, NormalizedRecord
from ..models.error_record import FILE_LEVEL_KEY, ErrorRecord
from ..models.processing_result import BacktestReport, BulkResult, ForecastRunResult, IngestResult
from ..models.series import SeriesPoint
from ..storage.bulk import BulkMetrics, bulk_upsert
from ..storage.collection import CollectionStore
from ..tabular.reader import EmptyResultError, FormatMismatchError, ParseError, ReshapeError, read_csv_rows
from ..tabular.reshape import (
    NO_VALID_DATA_MESSAGE,
    merge_by_year,
    parse_education_transposed,
    parse_occupation_transposed,
    reshape_rows,
)
from .progress import TrainingProgress

if TYPE_CHECKING:
    from ..forecast.engine import ForecastEngine

"""Use cases of the pipeline.

- ingest_file: CSV -> reshape -> bulk upsert into the kind's collection
- ingest_occupation: occupation CSV + education CSV -> merge by year -> upsert
- load_series: stored records -> one numeric year series
- run_forecast: train, forecast, backtest against stored actuals, optionally
  save the artifact; the model is always released afterwards

A reshape failure only fails that upload: nothing is written and data stored
by earlier uploads is left as it was.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "ProcessingError",
    "ingest_file",
    "ingest_occupation",
    "load_series",
    "run_forecast",
    "default_duplicate_policy",
]

# per-category fields summed across categories when building a year series
_SUMMED_FIELDS = ("count", "totalOccupation")


class ProcessingError(Exception):
    """Raised for requests the pipeline cannot serve (wrong kind, bad arguments)."""


def _failed(source: str, kind: DatasetKind, error: str, started: float) -> IngestResult:
    return IngestResult(
        source=source,
        kind=kind.value,
        status="failed",
        elapsed_seconds=time.time() - started,
        error=error,
    )


def _store_records(
    source: str,
    kind: DatasetKind,
    records: list[NormalizedRecord],
    store: CollectionStore,
    error_log: ErrorLogBuffer | None,
    metrics_callback: Callable[[BulkMetrics], None] | None,
    started: float,
) -> IngestResult:
    bulk: BulkResult = bulk_upsert(store, kind, records, source=source, metrics_callback=metrics_callback)
    if error_log is not None:
        error_log.extend(bulk.failures)

    if bulk.ok:
        status = "success"
    elif bulk.succeeded:
        status = "partial"
    else:
        status = "failed"
    for failure in bulk.failures:
        logger.warning("store failure source=%s key=%s: %s", source, failure.key, failure.message)

    return IngestResult(
        source=source,
        kind=kind.value,
        status=status,
        record_count=len(records),
        stored_count=len(bulk.succeeded),
        failed_count=len(bulk.failures),
        elapsed_seconds=time.time() - started,
        error=None if bulk.ok else f"{len(bulk.failures)} of {len(records)} records failed to store",
        records=records,
    )


_ERROR_TYPES = {
    ParseError: "PARSE_ERROR",
    FormatMismatchError: "FORMAT_MISMATCH",
    EmptyResultError: "EMPTY_RESULT",
}


def _error_type(error: ReshapeError) -> str:
    for cls, name in _ERROR_TYPES.items():
        if isinstance(error, cls):
            return name
    return "RESHAPE_ERROR"


def _record_reshape_failure(
    error_log: ErrorLogBuffer | None,
    source: str,
    kind: DatasetKind,
    error: ReshapeError,
) -> None:
    logger.debug("reshape failed source=%s kind=%s: %s", source, kind.value, error)
    if error_log is not None:
        error_log.append(ErrorRecord.create(source, kind.collection, FILE_LEVEL_KEY, _error_type(error), str(error)))


def ingest_file(
    path: Path,
    kind: DatasetKind,
    store: CollectionStore,
    error_log: ErrorLogBuffer | None = None,
    *,
    metrics_callback: Callable[[BulkMetrics], None] | None = None,
) -> IngestResult:
    """Read, reshape and upsert one CSV upload.

    Reshape failures return a failed IngestResult carrying the user-facing
    message. Store failures are per record (status "partial" or "failed").
    """
    if kind is DatasetKind.OCCUPATION:
        raise ProcessingError("occupation data needs an occupation file and an education file; use ingest_occupation")

    started = time.time()
    source = Path(path).name
    try:
        rows = read_csv_rows(path)
        records = reshape_rows(kind, rows)
    except ReshapeError as e:
        _record_reshape_failure(error_log, source, kind, e)
        return _failed(source, kind, str(e), started)

    return _store_records(source, kind, records, store, error_log, metrics_callback, started)


def ingest_occupation(
    occupation_path: Path,
    education_path: Path,
    store: CollectionStore,
    error_log: ErrorLogBuffer | None = None,
    *,
    metrics_callback: Callable[[BulkMetrics], None] | None = None,
) -> IngestResult:
    """Parse both halves of the occupation upload, join them by year and upsert."""
    kind = DatasetKind.OCCUPATION
    started = time.time()
    source = f"{Path(occupation_path).name}+{Path(education_path).name}"
    try:
        occupation = parse_occupation_transposed(read_csv_rows(occupation_path))
        education = parse_education_transposed(read_csv_rows(education_path))
    except ReshapeError as e:
        _record_reshape_failure(error_log, source, kind, e)
        return _failed(source, kind, str(e), started)

    merged = merge_by_year(occupation, education)
    if not merged:
        logger.debug(
            "occupation merge produced nothing: occupation=%d education=%d",
            len(occupation),
            len(education),
        )
        if error_log is not None:
            error_log.append(ErrorRecord.create(source, kind.collection, FILE_LEVEL_KEY, "EMPTY_RESULT", NO_VALID_DATA_MESSAGE))
        return _failed(source, kind, NO_VALID_DATA_MESSAGE, started)

    return _store_records(source, kind, merged, store, error_log, metrics_callback, started)


def default_duplicate_policy(kind: DatasetKind, field: str) -> str:
    """How several records of one year collapse into one point.

    Per-category counts are summed over categories; every other field holds
    the same value in each record of a year, so the last one wins.
    """
    if kind.category_field is not None and field in _SUMMED_FIELDS:
        return "sum"
    return "last"


def load_series(
    store: CollectionStore,
    kind: DatasetKind,
    field: str,
    start_year: int | None = None,
    end_year: int | None = None,
    how: str | None = None,
) -> list[SeriesPoint]:
    """Read a collection back and select one numeric field as a year series."""
    if start_year is not None and end_year is not None and start_year > end_year:
        raise ProcessingError(f"start year {start_year} is after end year {end_year}")
    records = store.get_all(kind.collection)
    return select_series(
        records,
        field,
        start_year=start_year,
        end_year=end_year,
        how=how or default_duplicate_policy(kind, field),
    )


def _actuals_after(
    store: CollectionStore,
    kind: DatasetKind,
    field: str,
    last_year: int,
) -> list[SeriesPoint]:
    try:
        return load_series(store, kind, field, start_year=last_year + 1)
    except SeriesSelectionError as e:
        logger.warning("backtest skipped: %s", e)
        return []


def run_forecast(
    store: CollectionStore,
    kind: DatasetKind,
    field: str,
    settings: ForecastSettings | None = None,
    horizon: int | None = None,
    start_year: int | None = None,
    end_year: int | None = None,
    artifact_dir: Path | None = None,
    *,
    engine: ForecastEngine | None = None,
    should_cancel: Callable[[], bool] | None = None,
) -> ForecastRunResult:
    """Train on the stored series, forecast `horizon` years and backtest.

    Backtest actuals are the stored values for forecast years (only present
    when end_year cut the training range short). Typed forecast errors
    (InsufficientDataError, DegenerateSeriesError, TrainingCancelled, ...)
    propagate to the caller.
    """
    from ..forecast.engine import ForecastEngine, backtest_accuracy

    settings = settings or ForecastSettings()
    started_at = datetime.now(UTC)
    series = load_series(store, kind, field, start_year, end_year)
    logger.debug("series kind=%s field=%s points=%d", kind.value, field, len(series))

    engine = engine or ForecastEngine(settings, attribute=field)
    artifact_path: str | None = None
    try:
        with TrainingProgress(engine.planned_epochs, description=f"Training {field}") as progress:
            report = engine.train(series, should_cancel=should_cancel, on_epoch=progress.update)
        forecasts = engine.forecast(horizon or settings.horizon)

        actuals = _actuals_after(store, kind, field, report.last_year)
        backtest = backtest_accuracy(forecasts, actuals) if actuals else BacktestReport(comparisons=[])

        if artifact_dir is not None:
            from ..forecast.artifact import save_artifact

            target = Path(artifact_dir) / f"{kind.value}-{field}"
            artifact_path = str(save_artifact(target, engine.model, report, field))
    finally:
        if engine.busy:
            logger.warning("forecast engine left %s, not releasing", engine.state.value)
        else:
            engine.release()

    return ForecastRunResult(
        kind=kind.value,
        attribute=field,
        series=series,
        training=report,
        forecasts=forecasts,
        backtest=backtest,
        started_at=started_at,
        finished_at=datetime.now(UTC),
        artifact_path=artifact_path,
    )
