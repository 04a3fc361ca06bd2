"""SQLite persistence gateway for ad-reply records.

Upsert policy, keyed by sender display name among rows whose event text
carries the "replied to an ad" marker:

- existing row: refresh ``reference_link`` only with a non-null value,
  ``sender_handle`` and ``prior_message`` only with non-empty values, bump
  ``updated_at`` -> ``updated``;
- new sender: created only with a reference link and a prior message,
  otherwise ``skipped`` without writing anything.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Protocol

from admonitor.core.errors import MessageValidationError
from admonitor.core.models import (
    EVENT_MARKER,
    AdReplyRecord,
    StoredMessage,
    UpsertResult,
    UpsertStatus,
)
from admonitor.storage.database import Database
from admonitor.utils.timestamps import now_iso

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("sender_display_name", "recipient_identity", "event_text")


class MessageGateway(Protocol):
    """Persistence operations the conversation walker depends on."""

    def upsert(self, record: AdReplyRecord) -> UpsertResult:
        ...


def validate_record(record: AdReplyRecord) -> None:
    """Raise ``MessageValidationError`` naming every missing required field."""
    missing = [name for name in REQUIRED_FIELDS if not (getattr(record, name) or "").strip()]
    if missing:
        raise MessageValidationError(missing)


def _row_to_message(row: sqlite3.Row) -> StoredMessage:
    return StoredMessage(
        id=row["id"],
        sender_display_name=row["sender_display_name"],
        recipient_identity=row["recipient_identity"],
        event_text=row["event_text"],
        sender_handle=row["sender_handle"],
        prior_message=row["prior_message"],
        reference_link=row["reference_link"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class MessageStore:
    """Stores ad-reply records and applies the create/merge/skip policy."""

    def __init__(self, database: Database) -> None:
        self._db = database

    @classmethod
    def open(cls, db_path: str) -> MessageStore:
        database = Database(db_path)
        database.init_db()
        return cls(database)

    def find_by_sender(self, sender_display_name: str) -> StoredMessage | None:
        with self._db.connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM messages
                WHERE sender_display_name = ? AND instr(event_text, ?) > 0
                ORDER BY created_at ASC
                LIMIT 1
                """,
                (sender_display_name, EVENT_MARKER),
            ).fetchone()
        return _row_to_message(row) if row else None

    def upsert(self, record: AdReplyRecord) -> UpsertResult:
        validate_record(record)

        existing = self.find_by_sender(record.sender_display_name)
        if existing is not None:
            return self._update(existing, record)

        if not record.reference_link:
            logger.info("Skipping %s - no ad link provided", record.sender_display_name)
            return UpsertResult(UpsertStatus.SKIPPED, reason="no ad link")
        if not record.prior_message:
            logger.info("Skipping %s - no prior message", record.sender_display_name)
            return UpsertResult(UpsertStatus.SKIPPED, reason="no prior message")

        return self._create(record)

    def _update(self, existing: StoredMessage, record: AdReplyRecord) -> UpsertResult:
        reference_link = record.reference_link or existing.reference_link
        sender_handle = record.sender_handle or existing.sender_handle
        prior_message = record.prior_message or existing.prior_message
        updated_at = now_iso()

        with self._db.connect() as conn:
            conn.execute(
                """
                UPDATE messages
                SET reference_link = ?, sender_handle = ?, prior_message = ?, updated_at = ?
                WHERE id = ?
                """,
                (reference_link, sender_handle, prior_message, updated_at, existing.id),
            )

        if record.reference_link:
            logger.info("Updated ad link for %s: %s", existing.sender_display_name, reference_link)
        else:
            logger.info(
                "Keeping existing ad link for %s: %s",
                existing.sender_display_name,
                existing.reference_link,
            )

        existing.reference_link = reference_link
        existing.sender_handle = sender_handle
        existing.prior_message = prior_message
        existing.updated_at = updated_at
        return UpsertResult(UpsertStatus.UPDATED, record=existing)

    def _create(self, record: AdReplyRecord) -> UpsertResult:
        timestamp = now_iso()
        with self._db.connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO messages (
                    sender_display_name,
                    sender_handle,
                    recipient_identity,
                    event_text,
                    prior_message,
                    reference_link,
                    created_at,
                    updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.sender_display_name,
                    record.sender_handle,
                    record.recipient_identity,
                    record.event_text,
                    record.prior_message,
                    record.reference_link,
                    timestamp,
                    timestamp,
                ),
            )
            message_id = cursor.lastrowid

        logger.info("Message saved: %s (id=%s)", record.sender_display_name, message_id)
        stored = StoredMessage(
            id=message_id,
            sender_display_name=record.sender_display_name,
            recipient_identity=record.recipient_identity,
            event_text=record.event_text,
            sender_handle=record.sender_handle,
            prior_message=record.prior_message,
            reference_link=record.reference_link,
            created_at=timestamp,
            updated_at=timestamp,
        )
        return UpsertResult(UpsertStatus.CREATED, record=stored)

    def list_all(self) -> list[StoredMessage]:
        """All stored records, newest first."""
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM messages ORDER BY created_at DESC, id DESC"
            ).fetchall()
        return [_row_to_message(row) for row in rows]
