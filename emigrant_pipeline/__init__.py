"""Emigrant statistics ingestion and forecasting pipeline."""

__version__ = "0.1.0"
