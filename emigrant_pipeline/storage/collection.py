from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import Any

"""Key-value collection store interface.

The pipeline only needs three operations from its document store:

- put(collection, key, record): idempotent upsert
- get_all(collection): every document, sorted by year
- delete_by_key(collection, key)

No multi-key transaction is assumed; bulk helpers in storage.bulk report
per-key failures instead of rolling back.
"""

__all__ = [
    "ExternalStoreError",
    "CollectionStore",
    "InMemoryStore",
    "sort_by_year",
]


class ExternalStoreError(Exception):
    """Opaque failure from the storage backend, tagged with the failing operation."""

    def __init__(self, message: str, *, collection: str, key: str | None = None, operation: str = "") -> None:
        super().__init__(message)
        self.collection = collection
        self.key = key
        self.operation = operation

    def __str__(self) -> str:
        target = f"{self.collection}/{self.key}" if self.key is not None else self.collection
        return f"{self.operation or 'store'} failed for {target}: {self.args[0]}"


def sort_by_year(documents: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(documents, key=lambda d: (int(d.get("year") or 0), str(d.get("id", ""))))


class CollectionStore(ABC):
    """Minimal document store: named collections of JSON-like records keyed by string."""

    @abstractmethod
    def put(self, collection: str, key: str, record: dict[str, Any]) -> None:
        """Insert or replace the document stored under `key`."""

    @abstractmethod
    def get_all(self, collection: str) -> list[dict[str, Any]]:
        """Return all documents (each with its key under "id"), sorted by year ascending."""

    @abstractmethod
    def delete_by_key(self, collection: str, key: str) -> None:
        """Delete one document; deleting a missing key is not an error."""

    def delete_all(self, collection: str) -> int:
        """Delete every document of a collection; returns the number removed."""
        keys = [str(d["id"]) for d in self.get_all(collection)]
        for key in keys:
            self.delete_by_key(collection, key)
        return len(keys)

    def close(self) -> None:  # pragma: no cover - trivial default
        return None

    def __enter__(self) -> CollectionStore:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


class InMemoryStore(CollectionStore):
    """Dict-backed store for tests and `store.backend: memory`."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    def put(self, collection: str, key: str, record: dict[str, Any]) -> None:
        self._collections.setdefault(collection, {})[str(key)] = copy.deepcopy(record)

    def get_all(self, collection: str) -> list[dict[str, Any]]:
        docs = self._collections.get(collection, {})
        return sort_by_year([{"id": key, **copy.deepcopy(body)} for key, body in docs.items()])

    def delete_by_key(self, collection: str, key: str) -> None:
        self._collections.get(collection, {}).pop(str(key), None)

    def delete_all(self, collection: str) -> int:
        removed = len(self._collections.get(collection, {}))
        self._collections.pop(collection, None)
        return removed
