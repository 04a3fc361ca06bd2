"""Ad-reply message server: HTTP ingestion endpoint plus MCP tools.

Exposes ``POST /api/message`` / ``GET /api/message`` (the remote persistence
gateway used by ``ApiMessageGateway``) and MCP tools that read and write the
same SQLite store.

Usage:
    uv run python -m admonitor.mcp_servers.message_server          # stdio MCP
    uv run python -m admonitor.mcp_servers.message_server --http   # HTTP + MCP
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import uvicorn
from mcp.server.fastmcp import FastMCP
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse

from admonitor.config import load_settings
from admonitor.core.errors import MessageValidationError
from admonitor.core.models import AdReplyRecord, UpsertStatus
from admonitor.storage.message_store import MessageStore
from admonitor.utils.logging_utils import audit, read_recent_logs

# ── Configuration ───────────────────────────────────────────────────

SETTINGS = load_settings()

# Logging MUST go to stderr (stdout is reserved for MCP JSON-RPC)
logging.basicConfig(
    level=getattr(logging, SETTINGS.log_level, logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

_store: MessageStore | None = None


def get_store() -> MessageStore:
    """Open the message store on first use."""
    global _store
    if _store is None:
        _store = MessageStore.open(SETTINGS.db_path)
        logger.info("Message store opened at %s", SETTINGS.db_path)
    return _store


# ── Payload handling ────────────────────────────────────────────────


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def parse_payload(data: dict[str, Any]) -> AdReplyRecord:
    """Build a record from a request body.

    Accepts the camelCase record fields and the legacy aliases
    ``senderUsername``, ``recipientUsername``, ``content`` and
    ``adData.adLink``.
    """
    ad_data = data.get("adData") if isinstance(data.get("adData"), dict) else {}
    return AdReplyRecord(
        sender_display_name=_text(data.get("senderDisplayName")) or _text(data.get("senderUsername")),
        recipient_identity=_text(data.get("recipientIdentity")) or _text(data.get("recipientUsername")),
        event_text=_text(data.get("eventText")) or _text(data.get("content")),
        sender_handle=_text(data.get("senderHandle")) or None,
        prior_message=_text(data.get("priorMessage")) or None,
        reference_link=_text(data.get("referenceLink")) or _text(ad_data.get("adLink")) or None,
    )


def save_message(data: dict[str, Any]) -> tuple[int, dict[str, Any]]:
    """Upsert a request body. Returns ``(status_code, response_body)``.

    Raises:
        MessageValidationError: If a required field is missing.
    """
    record = parse_payload(data)
    result = get_store().upsert(record)
    audit(
        SETTINGS.logs_path, "actions", "message_server", "api_message", record.sender_display_name,
        str(result.status), reason=result.reason,
    )
    if result.status is UpsertStatus.SKIPPED or result.record is None:
        return 200, {"message": f"Skipped - {result.reason}"}
    status_code = 201 if result.status is UpsertStatus.CREATED else 200
    return status_code, result.record.to_dict()


def list_messages() -> list[dict[str, Any]]:
    return [message.to_dict() for message in get_store().list_all()]


# ── HTTP endpoint ───────────────────────────────────────────────────


async def message_endpoint(request: Request) -> JSONResponse:
    """``GET`` lists all records newest first; ``POST`` upserts one."""
    if request.method == "GET":
        try:
            messages = await asyncio.to_thread(list_messages)
        except Exception:
            logger.exception("Error fetching messages")
            return JSONResponse({"error": "Internal server error"}, status_code=500)
        return JSONResponse(messages)

    try:
        data = await request.json()
    except ValueError:
        return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
    if not isinstance(data, dict):
        return JSONResponse({"error": "Request body must be a JSON object"}, status_code=400)

    try:
        status_code, body = await asyncio.to_thread(save_message, data)
    except MessageValidationError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)
    except Exception:
        logger.exception("Error saving message")
        return JSONResponse({"error": "Internal server error"}, status_code=500)
    return JSONResponse(body, status_code=status_code)


# ── Lifespan ────────────────────────────────────────────────────────


@dataclass
class AppContext:
    """Shared state injected into MCP tool handlers."""

    store: MessageStore


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Open the message store on server startup."""
    store = await asyncio.to_thread(get_store)
    logger.info("Message server started (db=%s)", SETTINGS.db_path)
    try:
        yield AppContext(store=store)
    finally:
        logger.info("Message server shutting down")


# ── Server ──────────────────────────────────────────────────────────

mcp = FastMCP(
    "ad-reply-messages",
    instructions=(
        "Ad-reply records captured from the monitored inbox. "
        "list_ad_replies reads them, save_ad_reply upserts one, "
        "recent_monitor_activity shows the monitor's audit log, "
        "monitor_status its live state."
    ),
    lifespan=app_lifespan,
)

mcp.custom_route("/api/message", methods=["GET", "POST"])(message_endpoint)


def create_app() -> Starlette:
    """ASGI app serving ``/api/message`` and the streamable HTTP MCP endpoint."""
    return mcp.streamable_http_app()


# ── Tool: save_ad_reply ─────────────────────────────────────────────


@mcp.tool()
async def save_ad_reply(
    sender_display_name: str,
    event_text: str,
    recipient_identity: str = "",
    prior_message: str = "",
    reference_link: str = "",
    sender_handle: str = "",
) -> str:
    """Save an ad reply, merging into an existing record for the same sender.

    New senders are only stored when both a reference link and a prior
    message are given.

    Args:
        sender_display_name: Display name of the person who replied.
        event_text: The "... replied to an ad" line.
        recipient_identity: Account that received the reply (defaults to config).
        prior_message: The message the sender wrote before the ad reply.
        reference_link: Link to the ad or post.
        sender_handle: Sender's username, without the @.
    """
    ctx = mcp.get_context()
    app: AppContext = ctx.request_context.lifespan_context
    record = AdReplyRecord(
        sender_display_name=sender_display_name.strip(),
        recipient_identity=recipient_identity.strip() or SETTINGS.recipient_identity,
        event_text=event_text.strip(),
        sender_handle=sender_handle.strip().lstrip("@") or None,
        prior_message=prior_message.strip() or None,
        reference_link=reference_link.strip() or None,
    )
    try:
        result = await asyncio.to_thread(app.store.upsert, record)
    except MessageValidationError as exc:
        return f"Error: {exc}"

    if result.status is UpsertStatus.SKIPPED:
        return f"Skipped - {result.reason}"
    assert result.record is not None
    return f"Ad reply {result.status} (id {result.record.id}) for {result.record.sender_display_name}"


# ── Tool: list_ad_replies ───────────────────────────────────────────


@mcp.tool()
async def list_ad_replies(limit: int = 20) -> str:
    """List stored ad replies, newest first.

    Args:
        limit: Maximum number of records (1-200, default 20).
    """
    ctx = mcp.get_context()
    app: AppContext = ctx.request_context.lifespan_context
    limit = max(1, min(200, limit))
    messages = (await asyncio.to_thread(app.store.list_all))[:limit]
    if not messages:
        return "No ad replies stored yet."

    lines = [f"{len(messages)} ad repl{'y' if len(messages) == 1 else 'ies'}:\n"]
    for i, msg in enumerate(messages, 1):
        handle = f" (@{msg.sender_handle})" if msg.sender_handle else ""
        lines.append(f"{i}. {msg.sender_display_name}{handle} | {msg.created_at}")
        lines.append(f"   Prior message: {(msg.prior_message or '')[:200]}")
        lines.append(f"   Link: {msg.reference_link or '-'}")
        lines.append("")
    return "\n".join(lines)


# ── Tool: recent_monitor_activity ───────────────────────────────────


@mcp.tool()
async def recent_monitor_activity(count: int = 10, errors: bool = False) -> str:
    """Show the monitor's most recent audit log entries.

    Args:
        count: Number of entries (1-50, default 10).
        errors: Read the error log instead of the action log.
    """
    count = max(1, min(50, count))
    log_dir = Path(SETTINGS.logs_path) / ("errors" if errors else "actions")
    entries = await asyncio.to_thread(read_recent_logs, log_dir, count)
    if not entries:
        return f"No {'error' if errors else 'action'} log entries."

    lines = []
    for entry in entries:
        lines.append(
            f"{entry.get('timestamp', '?')} {entry.get('actor', '?')} "
            f"{entry.get('action_type', '?')} {entry.get('target', '?')}: {entry.get('result', '?')}"
        )
    return "\n".join(lines)


# ── Tool: monitor_status ────────────────────────────────────────────

_status_source: Callable[[], dict[str, Any]] | None = None


def register_status_source(source: Callable[[], dict[str, Any]] | None) -> None:
    """Attach the in-process monitor's status snapshot (``--serve`` mode)."""
    global _status_source
    _status_source = source


@mcp.tool()
async def monitor_status() -> str:
    """Report whether the inbox monitor is running, its retry count and last seen inbox head."""
    if _status_source is None:
        return "Monitor is not running in this process."

    status = _status_source()
    lines = [
        f"State: {status['state']} ({'running' if status['running'] else 'not running'})",
        f"Session: {status['session'] or '-'}",
        f"Retries: {status['retry_count']}/{status['max_retries']}",
        f"Last seen: {status['last_seen'] or '-'}",
        f"Poll interval: {status['poll_interval']:.0f}s",
    ]
    if status["stop_requested"]:
        lines.append("Stop requested")
    return "\n".join(lines)


# ── Entry Point ─────────────────────────────────────────────────────


def main() -> None:
    """CLI entry point for the message server."""
    if "--http" in sys.argv:
        uvicorn.run(create_app(), host=SETTINGS.host, port=SETTINGS.port)
        return

    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
