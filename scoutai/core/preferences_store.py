"""Key-value persistence for per-user curation preferences.

Values are JSON strings stored under "{service}-preferences-{user_id}".
"""
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional, Protocol

from scoutai.core.errors import PersistenceError

log = logging.getLogger("scoutai.preferences_store")

SCHEMA_VERSION = 1

SCHEMA_V1 = """
CREATE TABLE IF NOT EXISTS kv (
    namespace TEXT NOT NULL,
    user_id TEXT NOT NULL,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (namespace, user_id)
);
"""


def preferences_key(service: str, user_id: str) -> str:
    return f"{service}-preferences-{user_id}"


def split_key(key: str) -> tuple[str, str]:
    """Inverse of preferences_key: (namespace, user_id)."""
    service, sep, user_id = key.partition("-preferences-")
    if not sep:
        return "", key
    return f"{service}-preferences", user_id


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryKeyValueStore:
    def __init__(self):
        self.data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class SqliteKeyValueStore:
    def __init__(self, db_path: str):
        self.db_path = db_path
        try:
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._init_schema()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open preference store {db_path}: {e}") from e

    def _init_schema(self):
        version = self._conn.execute("PRAGMA user_version").fetchone()[0]
        if version == 0:
            self._conn.executescript(SCHEMA_V1)
            self._conn.execute(f"PRAGMA user_version={SCHEMA_VERSION}")
            self._conn.commit()
            log.info("Initialized preference store at %s", self.db_path)

    def close(self):
        self._conn.close()

    @contextmanager
    def _transaction(self):
        try:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise
        except sqlite3.Error as e:
            raise PersistenceError(f"Preference store write failed: {e}") from e

    def get(self, key: str) -> Optional[str]:
        namespace, user_id = split_key(key)
        try:
            row = self._conn.execute(
                "SELECT value FROM kv WHERE namespace=? AND user_id=?",
                (namespace, user_id),
            ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Preference store read failed: {e}") from e
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        namespace, user_id = split_key(key)
        now = datetime.now(timezone.utc).isoformat()
        with self._transaction() as conn:
            conn.execute(
                """INSERT INTO kv (namespace, user_id, value, updated_at)
                   VALUES (?,?,?,?)
                   ON CONFLICT(namespace, user_id)
                   DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at""",
                (namespace, user_id, value, now),
            )

    def delete(self, key: str) -> None:
        namespace, user_id = split_key(key)
        with self._transaction() as conn:
            conn.execute("DELETE FROM kv WHERE namespace=? AND user_id=?", (namespace, user_id))
