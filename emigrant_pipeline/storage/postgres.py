from __future__ import annotations

import os
import re
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import psycopg2
from psycopg2.extras import Json

from .collection import CollectionStore, ExternalStoreError, sort_by_year

"""PostgreSQL-backed collection store.

Documents live in a single JSONB table:

    CREATE TABLE IF NOT EXISTS documents (
        collection text NOT NULL,
        key text NOT NULL,
        body jsonb NOT NULL,
        updated_at timestamptz NOT NULL DEFAULT now(),
        PRIMARY KEY (collection, key)
    )

The connection runs in autocommit mode: every put/delete is its own
transaction, matching the best-effort semantics of the bulk helpers.
"""

__all__ = [
    "PostgresStore",
    "resolve_dsn",
    "postgres_store",
]

_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class PostgresStore(CollectionStore):
    def __init__(self, connection: Any, table: str = "documents", *, create_table: bool = True) -> None:
        if not _IDENT_RE.match(table):
            raise ValueError(f"invalid table name: {table!r}")
        self._conn = connection
        self._table = table
        if create_table:
            self._execute(
                f"CREATE TABLE IF NOT EXISTS {table} ("
                "collection text NOT NULL, key text NOT NULL, body jsonb NOT NULL, "
                "updated_at timestamptz NOT NULL DEFAULT now(), "
                "PRIMARY KEY (collection, key))",
                (),
                collection="*",
                operation="create_table",
            )

    def _execute(
        self,
        sql: str,
        params: tuple[Any, ...],
        *,
        collection: str,
        key: str | None = None,
        operation: str,
        fetch: bool = False,
    ) -> list[tuple[Any, ...]] | None:
        try:
            with self._conn.cursor() as cur:
                cur.execute(sql, params)
                return cur.fetchall() if fetch else None
        except psycopg2.Error as e:
            raise ExternalStoreError(str(e).strip(), collection=collection, key=key, operation=operation) from e

    def put(self, collection: str, key: str, record: dict[str, Any]) -> None:
        self._execute(
            f"INSERT INTO {self._table} (collection, key, body) VALUES (%s, %s, %s) "
            "ON CONFLICT (collection, key) DO UPDATE SET body = EXCLUDED.body, updated_at = now()",
            (collection, str(key), Json(record)),
            collection=collection,
            key=str(key),
            operation="put",
        )

    def get_all(self, collection: str) -> list[dict[str, Any]]:
        rows = self._execute(
            f"SELECT key, body FROM {self._table} WHERE collection = %s",
            (collection,),
            collection=collection,
            operation="get_all",
            fetch=True,
        ) or []
        return sort_by_year([{"id": key, **body} for key, body in rows])

    def delete_by_key(self, collection: str, key: str) -> None:
        self._execute(
            f"DELETE FROM {self._table} WHERE collection = %s AND key = %s",
            (collection, str(key)),
            collection=collection,
            key=str(key),
            operation="delete",
        )

    def delete_all(self, collection: str) -> int:
        rows = self._execute(
            f"DELETE FROM {self._table} WHERE collection = %s RETURNING key",
            (collection,),
            collection=collection,
            operation="delete_all",
            fetch=True,
        ) or []
        return len(rows)

    def close(self) -> None:
        if not self._conn.closed:
            self._conn.close()


def resolve_dsn(database: Any) -> str:
    """Build the connection string.

    Priority: DATABASE_URL / PGDSN, then config dsn, then individual
    PGHOST/PGPORT/PGUSER/PGPASSWORD/PGDATABASE with config fallbacks.
    """
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or getattr(database, "dsn", None)
    if dsn:
        return dsn
    host = os.getenv("PGHOST", getattr(database, "host", None) or "localhost")
    port = os.getenv("PGPORT", str(getattr(database, "port", None) or 5432))
    user = os.getenv("PGUSER", getattr(database, "user", None) or "postgres")
    password = os.getenv("PGPASSWORD", getattr(database, "password", None) or "")
    dbname = os.getenv("PGDATABASE", getattr(database, "database", None) or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={dbname}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def postgres_store(database: Any, table: str = "documents") -> Iterator[PostgresStore]:
    """Open a PostgresStore for the duration of the block."""
    try:
        conn = psycopg2.connect(resolve_dsn(database))
    except psycopg2.Error as e:
        raise ExternalStoreError(str(e).strip(), collection="*", operation="connect") from e
    try:
        conn.autocommit = True
        store = PostgresStore(conn, table=table)
    except BaseException:
        conn.close()
        raise
    try:
        yield store
    finally:
        store.close()
