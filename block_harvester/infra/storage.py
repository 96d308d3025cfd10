"""SQLite connection management with the block schema guaranteed."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from threading import Lock
from typing import Dict

from ..errors import StorageFailure

BLOCKS_TABLE = "blocks"


class SQLiteManager:
    """Manage SQLite connections with basic schema guarantees."""

    def __init__(self) -> None:
        self._connections: Dict[Path, sqlite3.Connection] = {}
        self._lock = Lock()

    def connect(self, path: Path) -> sqlite3.Connection:
        with self._lock:
            if path not in self._connections:
                try:
                    path.parent.mkdir(parents=True, exist_ok=True)
                    conn = sqlite3.connect(path, check_same_thread=False)
                    conn.row_factory = sqlite3.Row
                    self._ensure_schema(conn)
                except (OSError, sqlite3.Error) as exc:
                    raise StorageFailure(f"Cannot open block database: {path}", path=str(path)) from exc
                self._connections[path] = conn
            return self._connections[path]

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {BLOCKS_TABLE} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                sequence_number INTEGER UNIQUE NOT NULL,
                timestamp INTEGER NOT NULL,
                item_count INTEGER NOT NULL,
                resource_used INTEGER NOT NULL,
                stored_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        conn.execute(
            f"CREATE INDEX IF NOT EXISTS idx_{BLOCKS_TABLE}_timestamp ON {BLOCKS_TABLE}(timestamp)"
        )
        conn.commit()

    def close(self, path: Path) -> None:
        with self._lock:
            conn = self._connections.pop(path, None)
        if conn is not None:
            conn.close()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


__all__ = ["BLOCKS_TABLE", "SQLiteManager"]
