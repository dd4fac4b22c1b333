from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from functools import partial

from ..models.datasets import DatasetKind, NormalizedRecord, to_document
from ..models.error_record import ErrorRecord
from ..models.processing_result import BulkResult
from .collection import CollectionStore, ExternalStoreError

"""Best-effort bulk upsert / delete over a CollectionStore.

One store call per record. A failing call is recorded as an ErrorRecord and
the loop moves on; records already written stay written (no rollback).
An optional metrics callback receives the timing of every call.
"""

__all__ = [
    "BulkMetrics",
    "bulk_upsert",
    "bulk_delete",
]


@dataclass(frozen=True)
class BulkMetrics:
    """Timing of one store call."""
    key: str
    operation: str
    ok: bool
    elapsed_seconds: float
    start_time: float
    end_time: float


def _timed(
    fn: Callable[[], None],
    key: str,
    operation: str,
    metrics_callback: Callable[[BulkMetrics], None] | None,
) -> None:
    start_time = time.time()
    ok = False
    try:
        fn()
        ok = True
    finally:
        end_time = time.time()
        if metrics_callback is not None:
            metrics_callback(BulkMetrics(
                key=key,
                operation=operation,
                ok=ok,
                elapsed_seconds=end_time - start_time,
                start_time=start_time,
                end_time=end_time,
            ))


def bulk_upsert(
    store: CollectionStore,
    kind: DatasetKind,
    records: Iterable[NormalizedRecord],
    *,
    source: str = "-",
    metrics_callback: Callable[[BulkMetrics], None] | None = None,
) -> BulkResult:
    """Upsert each record under its deterministic key.

    Parameters
    ----------
    store: target store
    kind: dataset kind (decides collection, key and document shape)
    records: reshaped records
    source: originating file name, copied into ErrorRecords
    metrics_callback: optional per-call timing hook

    Returns
    -------
    BulkResult listing written keys and one ErrorRecord per failed key.
    """
    collection = kind.collection
    succeeded: list[str] = []
    failures: list[ErrorRecord] = []
    started = time.time()

    for record in records:
        try:
            key = kind.record_key(record)
            document = to_document(kind, record)
        except (KeyError, TypeError, ValueError) as e:
            failures.append(ErrorRecord.create(source, collection, str(record.get("year", "?")), "INVALID_RECORD", str(e)))
            continue
        try:
            _timed(partial(store.put, collection, key, document), key, "put", metrics_callback)
        except ExternalStoreError as e:
            failures.append(ErrorRecord.create(source, collection, key, "STORE_PUT_ERROR", str(e)))
            continue
        succeeded.append(key)

    return BulkResult(
        collection=collection,
        succeeded=succeeded,
        failures=failures,
        elapsed_seconds=time.time() - started,
    )


def bulk_delete(
    store: CollectionStore,
    collection: str,
    keys: Sequence[str],
    *,
    metrics_callback: Callable[[BulkMetrics], None] | None = None,
) -> BulkResult:
    """Delete each key; failures are reported, successful deletes are kept."""
    succeeded: list[str] = []
    failures: list[ErrorRecord] = []
    started = time.time()

    for key in keys:
        try:
            _timed(partial(store.delete_by_key, collection, key), key, "delete", metrics_callback)
        except ExternalStoreError as e:
            failures.append(ErrorRecord.create("-", collection, key, "STORE_DELETE_ERROR", str(e)))
            continue
        succeeded.append(key)

    return BulkResult(
        collection=collection,
        succeeded=succeeded,
        failures=failures,
        elapsed_seconds=time.time() - started,
    )
