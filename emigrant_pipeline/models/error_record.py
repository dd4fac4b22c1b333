from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for error logging.

One ErrorRecord describes a single failed storage operation (or a file-level
failure) during ingestion. Records are written as JSON Lines with a fixed key
set; the schema is bundled at emigrant_pipeline/config/error_log_schema.json.

`key` is "<FILE_LEVEL>" when the failure is not tied to one document (for
example a CSV that could not be reshaped).
"""

__all__ = [
    "ErrorRecord",
    "FILE_LEVEL_KEY",
]

FILE_LEVEL_KEY = "<FILE_LEVEL>"


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        source: CSV file name (or "-" when records did not come from a file)
        collection: Target store collection
        key: Document key the operation targeted, or FILE_LEVEL_KEY
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Store / parser error message
    """
    timestamp: str  # ISO8601 UTC
    source: str
    collection: str
    key: str
    error_type: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(source: str, collection: str, key: str, error_type: str, message: str) -> ErrorRecord:
        """Create a new ErrorRecord stamped with the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            source=source,
            collection=collection,
            key=key,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        """Serialize to one JSON line (no extra keys)."""
        return json.dumps(asdict(self), ensure_ascii=False)
