# repositories/snapshot_repository.py
from __future__ import annotations
import json
import os
import sqlite3
import time
from contextlib import contextmanager
from typing import Any, Optional

from utils.log_config import log_function

ACCOUNTS = "accounts"
ALERTS = "alerts"


class SnapshotRepository:
    """
    Instantáneas JSON del estado en memoria (una fila por nombre).
    Solo dos nombres: 'accounts' y 'alerts'. Cada save sustituye la fila entera.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        parent = os.path.dirname(os.path.abspath(db_path))
        os.makedirs(parent, exist_ok=True)
        self._ensure_table()

    @contextmanager
    def _conn(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _ensure_table(self) -> None:
        with self._conn() as c:
            c.execute("""
            CREATE TABLE IF NOT EXISTS snapshots (
                name        TEXT PRIMARY KEY,
                payload     TEXT NOT NULL,
                updated_at  INTEGER NOT NULL
            )
            """)
            c.commit()

    def save(self, name: str, payload: Any) -> None:
        data = json.dumps(payload, ensure_ascii=False)
        with self._conn() as c:
            c.execute(
                "INSERT OR REPLACE INTO snapshots (name, payload, updated_at) VALUES (?, ?, ?)",
                (name, data, int(time.time())),
            )
            c.commit()

    @log_function
    def load(self, name: str) -> Optional[Any]:
        with self._conn() as c:
            row = c.execute("SELECT payload FROM snapshots WHERE name = ?", (name,)).fetchone()
        if row is None:
            return None
        return json.loads(row["payload"])

    def updated_at(self, name: str) -> Optional[int]:
        with self._conn() as c:
            row = c.execute("SELECT updated_at FROM snapshots WHERE name = ?", (name,)).fetchone()
        return int(row["updated_at"]) if row else None
