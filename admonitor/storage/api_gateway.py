"""Persistence gateway that forwards records to a remote ``/api/message``.

Used when the monitor runs separately from the process that owns the
database. Synchronous; call it through ``asyncio.to_thread`` from async code.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from admonitor.core.errors import MessageGatewayError, MessageValidationError
from admonitor.core.models import AdReplyRecord, StoredMessage, UpsertResult, UpsertStatus

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 30


def _stored_from_json(data: dict[str, Any]) -> StoredMessage:
    return StoredMessage(
        id=data.get("id", 0),
        sender_display_name=data.get("senderDisplayName", ""),
        recipient_identity=data.get("recipientIdentity", ""),
        event_text=data.get("eventText", ""),
        sender_handle=data.get("senderHandle"),
        prior_message=data.get("priorMessage"),
        reference_link=data.get("referenceLink"),
        created_at=data.get("createdAt", ""),
        updated_at=data.get("updatedAt", ""),
    )


class ApiMessageGateway:
    """POSTs ad-reply records to the message API and maps its status codes."""

    def __init__(self, base_url: str, session: requests.Session | None = None) -> None:
        self.endpoint = f"{base_url.rstrip('/')}/api/message"
        self._session = session or requests.Session()

    def upsert(self, record: AdReplyRecord) -> UpsertResult:
        try:
            response = self._session.post(
                self.endpoint,
                json=record.to_payload(),
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            raise MessageGatewayError(f"Failed to reach {self.endpoint}: {exc}") from exc

        if response.status_code == 400:
            body = response.json()
            raise MessageValidationError([body.get("error", "unknown")])
        if response.status_code not in (200, 201):
            raise MessageGatewayError(
                f"Failed to save message: {response.status_code} {response.reason}"
            )

        body = response.json()
        if response.status_code == 201:
            return UpsertResult(UpsertStatus.CREATED, record=_stored_from_json(body))
        if "message" in body and "id" not in body:
            logger.info("API skipped %s: %s", record.sender_display_name, body["message"])
            return UpsertResult(UpsertStatus.SKIPPED, reason=body["message"])
        return UpsertResult(UpsertStatus.UPDATED, record=_stored_from_json(body))
