import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


SCHEMA = """
CREATE TABLE IF NOT EXISTS app_state (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

STATE_KEY = "state"


class Database:
    """SQLite-backed key-value store holding the application state as one JSON blob."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self):
        self.conn.executescript(SCHEMA)
        self.conn.commit()

    def load(self) -> Optional[dict]:
        """Return the saved state, or None when nothing has been saved yet."""
        row = self.conn.execute(
            "SELECT value FROM app_state WHERE key = ?", (STATE_KEY,)
        ).fetchone()
        if row is None:
            return None
        return json.loads(row["value"])

    def save(self, state: dict):
        self.conn.execute(
            """INSERT INTO app_state (key, value, updated_at) VALUES (?, ?, ?)
               ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at""",
            (STATE_KEY, json.dumps(state), datetime.now(timezone.utc).isoformat()),
        )
        self.conn.commit()

    def last_saved_at(self) -> Optional[str]:
        row = self.conn.execute(
            "SELECT updated_at FROM app_state WHERE key = ?", (STATE_KEY,)
        ).fetchone()
        return row["updated_at"] if row else None

    def reset(self):
        self.conn.execute("DELETE FROM app_state")
        self.conn.commit()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        self.conn.close()
