"""Persistent response cache keyed by a digest of the query text."""

from __future__ import annotations

import hashlib
import logging
import sqlite3
import time
from pathlib import Path
from types import TracebackType

from .errors import CacheError

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS responses (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at INTEGER NOT NULL
)
"""


def key_for(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class ResponseCache:
    """Memoised responses with no expiry and no eviction."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path).expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        try:
            self._conn = sqlite3.connect(self.path)
            with self._conn:
                self._conn.execute("PRAGMA journal_mode=WAL")
                self._conn.execute(_CREATE_TABLE)
        except sqlite3.Error as exc:
            self.close()
            raise CacheError(f"Could not open response cache {self.path}: {exc}") from exc
        logger.debug("Response cache at %s", self.path)

    def get(self, text: str) -> str | None:
        row = self._connection().execute(
            "SELECT value FROM responses WHERE key = ?", (key_for(text),)
        ).fetchone()
        return None if row is None else row[0]

    def set(self, text: str, value: str) -> None:
        with self._connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO responses (key, value, updated_at) VALUES (?, ?, ?)",
                (key_for(text), value, int(time.time())),
            )

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Response cache is closed.")
        return self._conn

    def __enter__(self) -> ResponseCache:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
