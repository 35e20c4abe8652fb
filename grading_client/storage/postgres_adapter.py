from collections.abc import Iterable, Mapping

import psycopg
from psycopg import sql

from grading_client.database.connection import get_connection
from grading_client.storage.base import BaseStorage
from grading_client.storage.exceptions import StorageError


class PostgresStorage(BaseStorage):
    """Key/value store in a PostgreSQL table, for kiosks that share a database.

    Each multi-key operation runs in a single transaction.
    """

    def __init__(self, table: str = "client_storage") -> None:
        self._table = sql.Identifier(table)

    def ensure_schema(self) -> None:
        """Create the storage table if it does not exist."""
        query = sql.SQL(
            """
            CREATE TABLE IF NOT EXISTS {table} (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """
        ).format(table=self._table)
        try:
            with get_connection() as conn:
                conn.execute(query)
        except psycopg.Error as exc:
            raise StorageError(f"Cannot create storage table: {exc}") from exc

    def get(self, key: str) -> str | None:
        query = sql.SQL("SELECT value FROM {table} WHERE key = %s").format(table=self._table)
        try:
            with get_connection() as conn:
                row = conn.execute(query, (key,)).fetchone()
        except psycopg.Error as exc:
            raise StorageError(f"Cannot read key '{key}': {exc}") from exc
        return None if row is None else row[0]

    def set_items(self, items: Mapping[str, str]) -> None:
        query = sql.SQL(
            """
            INSERT INTO {table} (key, value, updated_at)
            VALUES (%s, %s, NOW())
            ON CONFLICT (key) DO UPDATE
            SET value = EXCLUDED.value, updated_at = NOW()
            """
        ).format(table=self._table)
        try:
            with get_connection() as conn:
                with conn.transaction():
                    with conn.cursor() as cur:
                        cur.executemany(query, list(items.items()))
        except psycopg.Error as exc:
            raise StorageError(f"Cannot write keys {sorted(items)}: {exc}") from exc

    def remove_items(self, keys: Iterable[str]) -> None:
        key_list = list(keys)
        query = sql.SQL("DELETE FROM {table} WHERE key = ANY(%s)").format(table=self._table)
        try:
            with get_connection() as conn:
                with conn.transaction():
                    conn.execute(query, (key_list,))
        except psycopg.Error as exc:
            raise StorageError(f"Cannot remove keys {sorted(key_list)}: {exc}") from exc
