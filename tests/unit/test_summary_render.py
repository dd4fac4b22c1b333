from __future__ import annotations

from datetime import UTC, datetime

from emigrant_pipeline.models.processing_result import (
    BacktestReport,
    EpochLog,
    ForecastRunResult,
    IngestResult,
    TrainingReport,
)
from emigrant_pipeline.models.series import ForecastPoint
from emigrant_pipeline.services.summary import format_number, render_forecast_summary, render_ingest_summary


def test_format_number():
    assert format_number(0) == "0"
    assert format_number(3.0) == "3"
    assert format_number(0.123456) == "0.123"
    assert format_number(0.001234) == "0.001234"


def test_render_ingest_summary_counts_partial_as_failed():
    results = [
        IngestResult("a.csv", "total", "success", record_count=10, stored_count=10, elapsed_seconds=1.0),
        IngestResult("b.csv", "total", "partial", record_count=5, stored_count=3, failed_count=2, elapsed_seconds=0.5),
        IngestResult("c.csv", "total", "failed", error="No data found in CSV file."),
    ]
    assert render_ingest_summary(results) == (
        "SUMMARY files=3 success=1 failed=2 records=13 failed_records=2 elapsed_sec=1.5"
    )


def test_render_ingest_summary_empty():
    assert render_ingest_summary([]) == (
        "SUMMARY files=0 success=0 failed=0 records=0 failed_records=0 elapsed_sec=0"
    )


def test_render_forecast_summary():
    report = TrainingReport(
        attribute="total",
        lookback=5,
        scaler_min=1.0,
        scaler_max=2.0,
        trained_years=list(range(2000, 2010)),
        trained_values=[float(i) for i in range(10)],
        history=[EpochLog(1, 0.1, 0.2)],
        rmse=0.25,
    )
    now = datetime.now(UTC)
    result = ForecastRunResult(
        kind="total",
        attribute="total",
        series=[],
        training=report,
        forecasts=[ForecastPoint(2010 + i, 1.0) for i in range(5)],
        backtest=BacktestReport(comparisons=[]),
        started_at=now,
        finished_at=now,
    )
    assert render_forecast_summary(result) == (
        "SUMMARY attribute=total years=2000-2009 horizon=5 rmse=0.25 accuracy=75"
    )
