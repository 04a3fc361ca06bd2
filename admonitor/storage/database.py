"""SQLite connection and schema shared by the message and session stores."""

from __future__ import annotations

import sqlite3
from pathlib import Path

SCHEMA = (
    # messages: one row per ad-reply sender. Deduplicated by
    # sender_display_name among rows whose event_text carries the marker.
    """
    CREATE TABLE IF NOT EXISTS messages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        sender_display_name TEXT NOT NULL,
        sender_handle TEXT,
        recipient_identity TEXT NOT NULL,
        event_text TEXT NOT NULL,
        prior_message TEXT,
        reference_link TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_sender ON messages (sender_display_name)",
    # sessions: rotating session cookies; last_used_at NULL means never used.
    """
    CREATE TABLE IF NOT EXISTS sessions (
        name TEXT PRIMARY KEY,
        token TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        last_used_at TEXT
    )
    """,
)


class Database:
    """Thin SQLite wrapper; opens a short-lived connection per operation."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create the database file and tables if they do not exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as conn:
            for statement in SCHEMA:
                conn.execute(statement)
