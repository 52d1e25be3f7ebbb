"""Key-value persistence with string-only values.

Components never talk to a store directly for their own state; they go
through ``safe_get``/``safe_set``/``safe_remove`` (or the JSON helpers),
which log failures and carry on. A failed read looks like a missing key,
a failed write or remove is dropped.
"""
import json
import logging
from contextlib import closing
from typing import Any, Protocol

from hazcollect.db import DEFAULT_DB_PATH, get_connection

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class SqliteStore:
    """Store backed by the ``kv_store`` table. Call ``init_db`` first."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def get(self, key: str) -> str | None:
        with closing(get_connection(self.db_path)) as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"kv_store values must be str, got {type(value).__name__}")
        with closing(get_connection(self.db_path)) as conn:
            conn.execute(
                "INSERT INTO kv_store (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value=?",
                (key, value, value),
            )
            conn.commit()

    def remove(self, key: str) -> None:
        with closing(get_connection(self.db_path)) as conn:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()


class MemoryStore:
    """In-process store; nothing survives a restart."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"store values must be str, got {type(value).__name__}")
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


def safe_get(store: KeyValueStore, key: str) -> str | None:
    try:
        return store.get(key)
    except Exception:
        logger.exception("Error reading %r from store", key)
        return None


def safe_set(store: KeyValueStore, key: str, value: str) -> bool:
    """Write a value, returning False if the store failed."""
    try:
        store.set(key, value)
    except Exception:
        logger.exception("Error writing %r to store", key)
        return False
    return True


def safe_remove(store: KeyValueStore, key: str) -> bool:
    try:
        store.remove(key)
    except Exception:
        logger.exception("Error removing %r from store", key)
        return False
    return True


def read_json(store: KeyValueStore, key: str, default: Any = None) -> Any:
    raw = safe_get(store, key)
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        logger.error("Discarding unreadable JSON stored under %r", key)
        return default


def write_json(store: KeyValueStore, key: str, value: Any) -> bool:
    return safe_set(store, key, json.dumps(value))
