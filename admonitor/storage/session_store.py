"""SQLite credential store for rotating session cookies."""

from __future__ import annotations

import logging

from admonitor.core.models import SessionCredential
from admonitor.storage.database import Database
from admonitor.utils.timestamps import now_iso

logger = logging.getLogger(__name__)


class SessionStore:
    """Hands out session credentials, least recently used first."""

    def __init__(self, database: Database) -> None:
        self._db = database

    @classmethod
    def open(cls, db_path: str) -> SessionStore:
        database = Database(db_path)
        database.init_db()
        return cls(database)

    def add_session(self, name: str, token: str) -> None:
        """Insert a session or replace the token of an existing one.

        A replaced token is treated as fresh: its last-used mark is cleared so
        it is handed out before sessions that already failed.
        """
        if not name.strip() or not token.strip():
            raise ValueError("Session name and token are required")

        timestamp = now_iso()
        with self._db.connect() as conn:
            conn.execute(
                """
                INSERT INTO sessions (name, token, created_at, updated_at, last_used_at)
                VALUES (?, ?, ?, ?, NULL)
                ON CONFLICT(name) DO UPDATE SET
                    token = excluded.token,
                    updated_at = excluded.updated_at,
                    last_used_at = NULL
                """,
                (name.strip(), token.strip(), timestamp, timestamp),
            )
        logger.info("Stored session '%s'", name.strip())

    def least_recently_used(self) -> SessionCredential | None:
        """Return the session used longest ago (never-used first) and mark it used."""
        with self._db.connect() as conn:
            row = conn.execute(
                """
                SELECT name, token, last_used_at FROM sessions
                ORDER BY last_used_at IS NOT NULL, last_used_at ASC, created_at ASC
                LIMIT 1
                """
            ).fetchone()
            if row is None:
                return None
            used_at = now_iso()
            conn.execute(
                "UPDATE sessions SET last_used_at = ? WHERE name = ?",
                (used_at, row["name"]),
            )

        logger.info("Handing out session '%s' (last used: %s)", row["name"], row["last_used_at"])
        return SessionCredential(name=row["name"], token=row["token"], last_used_at=used_at)

    def list_sessions(self) -> list[SessionCredential]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT name, token, last_used_at FROM sessions ORDER BY name"
            ).fetchall()
        return [
            SessionCredential(name=row["name"], token=row["token"], last_used_at=row["last_used_at"])
            for row in rows
        ]
