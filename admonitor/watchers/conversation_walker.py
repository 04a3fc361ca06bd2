"""Conversation walker: visit one conversation and harvest its ad replies.

Opens the most recent inbox entry, loads older history by scrolling, runs the
extraction engine, forwards each record to the persistence gateway, and
always tries to return to the inbox afterwards. A visit never raises.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from admonitor.core.extraction import extract
from admonitor.core.models import AdReplyRecord, ConversationHeader, InboxEntry
from admonitor.storage.message_store import MessageGateway
from admonitor.utils.logging_utils import audit
from admonitor.watchers.inbox_page import InboxPage

logger = logging.getLogger(__name__)

ACTOR = "conversation_walker"


class ConversationWalker:
    def __init__(
        self,
        page: InboxPage,
        gateway: MessageGateway,
        recipient_identity: str,
        logs_path: str | Path | None = None,
    ) -> None:
        self.page = page
        self.gateway = gateway
        self.recipient_identity = recipient_identity
        self.logs_path = logs_path

    async def visit(self, entry: InboxEntry | None = None) -> list[AdReplyRecord]:
        """Process the conversation at the head of the inbox.

        Returns the records extracted from it (empty on any failure).
        """
        label = entry.sender if entry and entry.sender else "latest conversation"
        try:
            return await self._visit(entry, label)
        except Exception:
            logger.exception("Unexpected error visiting %s", label)
            audit(self.logs_path, "errors", ACTOR, "conversation_visit", label, "failure")
            return []

    async def _visit(self, entry: InboxEntry | None, label: str) -> list[AdReplyRecord]:
        opened = await self.page.open_latest_conversation()
        if not opened.ok:
            logger.warning("Could not open conversation with %s (%s)", label, opened.kind)
            return []

        try:
            confirmed = await self.page.wait_for_conversation()
            if not confirmed.ok:
                logger.warning("Conversation with %s did not load (%s)", label, confirmed.kind)
                return []

            scrolled = await self.page.scroll_history()
            if not scrolled.ok:
                logger.debug("Scrolling stopped early (%s), extracting loaded window", scrolled.kind)

            records = await self._extract(entry)
            logger.info("Found %d ad repl%s in conversation with %s", len(records), "y" if len(records) == 1 else "ies", label)
            for record in records:
                await self._save(record)
            return records
        finally:
            await self._return_to_inbox()

    async def _extract(self, entry: InboxEntry | None) -> list[AdReplyRecord]:
        header_result = await self.page.read_header()
        header = header_result.value if header_result.ok and header_result.value else ConversationHeader()
        if not header.display_name and entry and entry.sender:
            header = ConversationHeader(display_name=entry.sender, handle=header.handle)

        nodes = await self.page.read_messages()
        if not nodes.ok:
            logger.warning("Could not read messages (%s)", nodes.kind)
            return []
        return extract(nodes.value or [], header, self.recipient_identity)

    async def _save(self, record: AdReplyRecord) -> None:
        name = record.sender_display_name
        try:
            result = await asyncio.to_thread(self.gateway.upsert, record)
        except Exception as exc:
            logger.error("Failed to save ad reply from %s: %s", name, exc)
            audit(
                self.logs_path, "errors", ACTOR, "ad_reply_save", name, "failure",
                error=str(exc),
            )
            return

        logger.info("Ad reply from %s: %s%s", name, result.status, f" ({result.reason})" if result.reason else "")
        audit(
            self.logs_path, "actions", ACTOR, "ad_reply_save", name, str(result.status),
            sender_handle=record.sender_handle,
            reference_link=record.reference_link,
            reason=result.reason,
        )

    async def _return_to_inbox(self) -> None:
        result = await self.page.return_to_inbox()
        if result.ok:
            logger.debug("Back at inbox via %s", result.value)
        else:
            logger.warning("Could not return to inbox (%s): %s", result.kind, result.detail)
