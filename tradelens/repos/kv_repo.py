"""Key-value repository — JSON objects stored under string keys."""

import copy
import json
from typing import Optional, Protocol

from tradelens.repos.db import get_connection


class KeyValueStore(Protocol):
    """Anything that can load and save a JSON-serialisable dict by key."""

    def load(self, key: str) -> Optional[dict]: ...

    def save(self, key: str, value: dict) -> None: ...


class KeyValueRepo:
    """SQLite-backed key-value store over the ``kv_store`` table.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def load(self, key: str) -> Optional[dict]:
        """Return the object stored under *key*, or ``None``."""
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        finally:
            conn.close()
        return json.loads(row["value"]) if row else None

    def save(self, key: str, value: dict) -> None:
        """Insert or replace the object stored under *key*."""
        payload = json.dumps(value)
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at)
                VALUES (?, ?, datetime('now'))
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, payload),
            )
            conn.commit()
        finally:
            conn.close()


class InMemoryStore:
    """Process-local store with the same interface, used when no DB is configured."""

    def __init__(self) -> None:
        self._data: dict[str, dict] = {}

    def load(self, key: str) -> Optional[dict]:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    def save(self, key: str, value: dict) -> None:
        self._data[key] = copy.deepcopy(value)
