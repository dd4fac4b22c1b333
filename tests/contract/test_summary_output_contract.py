from __future__ import annotations

import re

from emigrant_pipeline.models.processing_result import IngestResult
from emigrant_pipeline.services.summary import render_ingest_summary

"""SUMMARY line format contract (ingest and forecast runs)."""

INGEST_PATTERN = re.compile(
    r"^SUMMARY\s+files=([0-9]+)\s+success=([0-9]+)\s+failed=([0-9]+)\s+"
    r"records=([0-9]+)\s+failed_records=([0-9]+)\s+elapsed_sec=([0-9]+\.?[0-9]*)$"
)

FORECAST_PATTERN = re.compile(
    r"^SUMMARY\s+attribute=(\S+)\s+years=([0-9]{4})-([0-9]{4})\s+horizon=([0-9]+)\s+"
    r"rmse=([0-9]+\.?[0-9]*)\s+accuracy=([0-9]+\.?[0-9]*)$"
)


def test_ingest_pattern_example_line():
    line = "SUMMARY files=2 success=1 failed=1 records=40 failed_records=3 elapsed_sec=0.84"
    assert INGEST_PATTERN.match(line)


def test_rendered_ingest_line_matches_contract():
    results = [
        IngestResult("a.csv", "total", "success", record_count=4, stored_count=4, elapsed_seconds=0.000123),
        IngestResult("b.csv", "total", "failed", error="No data found in CSV file.", elapsed_seconds=0.2),
    ]
    m = INGEST_PATTERN.match(render_ingest_summary(results))
    assert m
    assert int(m.group(1)) == int(m.group(2)) + int(m.group(3))


def test_forecast_pattern_example_line():
    line = "SUMMARY attribute=total years=1981-2020 horizon=5 rmse=0.042 accuracy=95.8"
    m = FORECAST_PATTERN.match(line)
    assert m
    assert m.group(2) < m.group(3)
