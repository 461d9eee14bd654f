from __future__ import annotations

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, Optional

LOGGER = logging.getLogger(__name__)


class PropertyStore:
    """Persist small named values (API key, trigger registry) between runs.

    The connection belongs to the thread that opened it; every command and the
    trigger host use the store from a single thread.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        if not path.parent.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(path))
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    @property
    def path(self) -> Path:
        return self._path

    def _ensure_schema(self) -> None:
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS properties (
                    name TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )

    def close(self) -> None:
        self._conn.close()

    def get(self, name: str) -> Optional[str]:
        cursor = self._conn.execute(
            "SELECT value FROM properties WHERE name = ?",
            (name,),
        )
        row = cursor.fetchone()
        if not row:
            return None
        return row["value"]

    def set(self, name: str, value: str) -> None:
        """Store ``value`` under ``name``, replacing any previous value."""

        with self._conn:
            self._conn.execute(
                """
                INSERT INTO properties (name, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(name)
                DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (name, value, time.time()),
            )

    def delete(self, name: str) -> bool:
        with self._conn:
            cursor = self._conn.execute("DELETE FROM properties WHERE name = ?", (name,))
        return cursor.rowcount > 0

    def get_json(self, name: str, default: Any = None) -> Any:
        raw = self.get(name)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            LOGGER.warning("Stored property '%s' is not valid JSON; ignoring", name)
            return default

    def set_json(self, name: str, value: Any) -> None:
        self.set(name, json.dumps(value, ensure_ascii=False))
