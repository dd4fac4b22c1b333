"""Key-value document storage for reshaped records."""

from .bulk import BulkMetrics, bulk_delete, bulk_upsert
from .collection import CollectionStore, ExternalStoreError, InMemoryStore
from .factory import open_store

__all__ = [
    "CollectionStore",
    "InMemoryStore",
    "ExternalStoreError",
    "BulkMetrics",
    "bulk_upsert",
    "bulk_delete",
    "open_store",
]
