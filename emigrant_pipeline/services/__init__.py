"""Pipeline use cases, upload workflow state and run reporting."""

from .dashboard_state import DashboardState
from .orchestrator import ProcessingError, ingest_file, ingest_occupation, load_series, run_forecast
from .progress import TrainingProgress
from .summary import render_forecast_summary, render_ingest_summary

__all__ = [
    "DashboardState",
    "ProcessingError",
    "ingest_file",
    "ingest_occupation",
    "load_series",
    "run_forecast",
    "TrainingProgress",
    "render_ingest_summary",
    "render_forecast_summary",
]
