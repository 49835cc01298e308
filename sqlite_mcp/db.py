from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Any, Sequence

from .config import MEMORY_DB_PATH

LIST_TABLES_SQL = "SELECT name FROM sqlite_master WHERE type='table'"


class Database:
    """Single shared SQLite handle.

    Every statement runs under one lock, so at most one statement is in flight
    against the connection regardless of how many threads dispatch.
    """

    def __init__(self, db_path: str = MEMORY_DB_PATH):
        self.db_path = db_path
        if db_path != MEMORY_DB_PATH and not db_path.startswith("file:"):
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = self.connect()

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path,
            timeout=5,
            isolation_level=None,
            check_same_thread=False,
            uri=self.db_path.startswith("file:"),
        )
        conn.row_factory = sqlite3.Row
        return conn

    @property
    def closed(self) -> bool:
        return self._conn is None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise sqlite3.ProgrammingError("Cannot operate on a closed database.")
        return self._conn

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        with self._lock:
            cur = self._connection().execute(sql, params)
            try:
                return [dict(row) for row in cur.fetchall()]
            finally:
                cur.close()

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int | None:
        """Run a statement for its side effect and return the affected row count.

        Rows produced by the statement are drained and discarded. ``None`` is
        returned when sqlite reports no meaningful count.
        """
        with self._lock:
            cur = self._connection().execute(sql, params)
            try:
                if cur.description is not None:
                    cur.fetchall()
                return cur.rowcount if cur.rowcount >= 0 else None
            finally:
                cur.close()

    def list_tables(self) -> list[str]:
        return [row["name"] for row in self.fetch_all(LIST_TABLES_SQL)]

    def table_info(self, table_name: str) -> list[dict[str, Any]]:
        # PRAGMA arguments cannot be bound, the name is spliced in verbatim.
        return self.fetch_all(f"PRAGMA table_info({table_name})")

    def ping(self) -> bool:
        try:
            self.fetch_all("SELECT 1")
        except sqlite3.Error:
            return False
        return True

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
