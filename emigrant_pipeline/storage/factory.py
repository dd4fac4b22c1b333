from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from .collection import CollectionStore, InMemoryStore

"""Store selection from configuration (`store.backend`)."""

__all__ = [
    "open_store",
]


@contextmanager
def open_store(store_config: Any) -> Iterator[CollectionStore]:
    """Yield the configured store; postgres connections are closed on exit.

    Raises ExternalStoreError when the database cannot be reached.
    """
    backend = getattr(store_config, "backend", "memory")
    if backend == "memory":
        yield InMemoryStore()
        return
    if backend == "postgres":
        from .postgres import postgres_store

        with postgres_store(store_config.database, table=store_config.table) as store:
            yield store
        return
    raise ValueError(f"unknown store backend: {backend}")
