"""Domain models for the emigrant statistics pipeline.

Dataset kinds and their storage keys, series value objects, error records and
the frozen result types returned by ingestion and forecasting runs.
"""

from .datasets import DatasetKind, NormalizedRecord, to_document
from .error_record import ErrorRecord
from .processing_result import (
    BacktestComparison,
    BacktestReport,
    BulkResult,
    EpochLog,
    ForecastRunResult,
    IngestResult,
    TrainingReport,
)
from .series import ForecastPoint, SeriesPoint

__all__ = [
    # Datasets
    "DatasetKind",
    "NormalizedRecord",
    "to_document",
    # Series
    "SeriesPoint",
    "ForecastPoint",
    # Results
    "BulkResult",
    "IngestResult",
    "EpochLog",
    "TrainingReport",
    "BacktestComparison",
    "BacktestReport",
    "ForecastRunResult",
    "ErrorRecord",
]
