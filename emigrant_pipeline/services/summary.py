from __future__ import annotations

from collections.abc import Sequence

from ..models.processing_result import ForecastRunResult, IngestResult

"""SUMMARY line rendering for ingest and forecast runs.

Formats:

    SUMMARY files=N success=S failed=F records=R failed_records=E elapsed_sec=T
    SUMMARY attribute=A years=FIRST-LAST horizon=H rmse=X accuracy=Y
"""

__all__ = [
    "format_number",
    "render_ingest_summary",
    "render_forecast_summary",
]


def format_number(value: float) -> str:
    """Render a number without trailing zeros or scientific notation.

    >>> format_number(2.0)
    '2'
    >>> format_number(0.0004)
    '0.0004'
    >>> format_number(12.3456)
    '12.346'
    """
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if abs(value) < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_ingest_summary(results: Sequence[IngestResult]) -> str:
    """One SUMMARY line over all uploads of an ingest run.

    A partially stored upload counts as failed; `records` counts stored
    documents and `failed_records` those the store rejected.

    >>> r = IngestResult(source="a.csv", kind="gender", status="success",
    ...                  record_count=3, stored_count=3, elapsed_seconds=0.5)
    >>> render_ingest_summary([r])
    'SUMMARY files=1 success=1 failed=0 records=3 failed_records=0 elapsed_sec=0.5'
    """
    success = sum(1 for r in results if r.status == "success")
    stored = sum(r.stored_count for r in results)
    failed_records = sum(r.failed_count for r in results)
    elapsed = sum(r.elapsed_seconds for r in results)
    return (
        f"SUMMARY files={len(results)} "
        f"success={success} "
        f"failed={len(results) - success} "
        f"records={stored} "
        f"failed_records={failed_records} "
        f"elapsed_sec={format_number(elapsed)}"
    )


def render_forecast_summary(result: ForecastRunResult) -> str:
    """SUMMARY line for one forecast run; accuracy is the model accuracy in percent."""
    training = result.training
    years = f"{training.trained_years[0]}-{training.trained_years[-1]}"
    return (
        f"SUMMARY attribute={result.attribute} "
        f"years={years} "
        f"horizon={len(result.forecasts)} "
        f"rmse={format_number(training.rmse)} "
        f"accuracy={format_number(training.model_accuracy)}"
    )
