"""Tests for the message server (admonitor.mcp_servers.message_server)."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from starlette.applications import Starlette
from starlette.routing import Route
from starlette.testclient import TestClient

from admonitor.core.models import AdReplyRecord
from admonitor.mcp_servers import message_server
from admonitor.mcp_servers.message_server import message_endpoint, parse_payload
from admonitor.storage.message_store import MessageStore
from admonitor.utils.logging_utils import audit

PAYLOAD = {
    "senderDisplayName": "Alice",
    "senderHandle": "alice_h",
    "recipientIdentity": "shop_owner",
    "eventText": "Alice replied to an ad",
    "priorMessage": "hi there",
    "referenceLink": "https://www.instagram.com/p/ABC/",
}


@pytest.fixture
def store(tmp_path: Path) -> MessageStore:
    return MessageStore.open(str(tmp_path / "messages.db"))


@pytest.fixture
def client(store: MessageStore):
    app = Starlette(routes=[Route("/api/message", message_endpoint, methods=["GET", "POST"])])
    with (
        patch("admonitor.mcp_servers.message_server.get_store", return_value=store),
        patch("admonitor.mcp_servers.message_server.audit"),
    ):
        yield TestClient(app)


# ── Payload parsing ─────────────────────────────────────────────────


class TestParsePayload:
    def test_record_fields(self) -> None:
        record = parse_payload(PAYLOAD)

        assert record == AdReplyRecord(
            sender_display_name="Alice",
            recipient_identity="shop_owner",
            event_text="Alice replied to an ad",
            sender_handle="alice_h",
            prior_message="hi there",
            reference_link="https://www.instagram.com/p/ABC/",
        )

    def test_legacy_aliases(self) -> None:
        record = parse_payload({
            "senderUsername": "Alice",
            "recipientUsername": "shop_owner",
            "content": "Alice replied to an ad",
            "priorMessage": "hi there",
            "adData": {"adLink": "https://www.instagram.com/p/LEGACY/"},
        })

        assert record.sender_display_name == "Alice"
        assert record.recipient_identity == "shop_owner"
        assert record.event_text == "Alice replied to an ad"
        assert record.reference_link == "https://www.instagram.com/p/LEGACY/"

    def test_blank_optionals_become_none(self) -> None:
        record = parse_payload({**PAYLOAD, "senderHandle": "", "referenceLink": None})

        assert record.sender_handle is None
        assert record.reference_link is None


# ── HTTP endpoint ───────────────────────────────────────────────────


class TestMessageEndpoint:
    def test_create_returns_201(self, client: TestClient) -> None:
        response = client.post("/api/message", json=PAYLOAD)

        assert response.status_code == 201
        body = response.json()
        assert body["id"] > 0
        assert body["senderDisplayName"] == "Alice"

    def test_update_returns_200_with_record(self, client: TestClient) -> None:
        client.post("/api/message", json=PAYLOAD)

        response = client.post("/api/message", json={**PAYLOAD, "referenceLink": None})

        assert response.status_code == 200
        assert response.json()["referenceLink"] == "https://www.instagram.com/p/ABC/"

    def test_first_record_without_link_is_skipped(self, client: TestClient) -> None:
        response = client.post("/api/message", json={**PAYLOAD, "referenceLink": None})

        assert response.status_code == 200
        assert response.json() == {"message": "Skipped - no ad link"}

    def test_missing_fields_return_400(self, client: TestClient) -> None:
        response = client.post("/api/message", json={"senderDisplayName": "Alice"})

        assert response.status_code == 400
        assert "recipient_identity" in response.json()["error"]

    def test_invalid_json_returns_400(self, client: TestClient) -> None:
        response = client.post(
            "/api/message", content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400

    def test_non_object_body_returns_400(self, client: TestClient) -> None:
        response = client.post("/api/message", json=["not", "an", "object"])

        assert response.status_code == 400

    def test_store_failure_returns_500(self, client: TestClient, store: MessageStore) -> None:
        with patch.object(store, "upsert", side_effect=RuntimeError("disk full")):
            response = client.post("/api/message", json=PAYLOAD)

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}

    def test_get_lists_newest_first(self, client: TestClient) -> None:
        client.post("/api/message", json=PAYLOAD)
        client.post(
            "/api/message",
            json={**PAYLOAD, "senderDisplayName": "Bob", "eventText": "Bob replied to an ad"},
        )

        response = client.get("/api/message")

        assert response.status_code == 200
        assert [m["senderDisplayName"] for m in response.json()] == ["Bob", "Alice"]


# ── MCP tools ───────────────────────────────────────────────────────


@pytest.fixture
def mock_context(store: MessageStore) -> MagicMock:
    ctx = MagicMock()
    ctx.request_context.lifespan_context = message_server.AppContext(store=store)
    return ctx


class TestTools:
    async def test_save_ad_reply_creates(self, mock_context: MagicMock, store: MessageStore) -> None:
        with patch("admonitor.mcp_servers.message_server.mcp") as mock_mcp:
            mock_mcp.get_context.return_value = mock_context

            result = await message_server.save_ad_reply(
                sender_display_name="Alice",
                event_text="Alice replied to an ad",
                recipient_identity="shop_owner",
                prior_message="hi there",
                reference_link="https://www.instagram.com/p/ABC/",
                sender_handle="@alice_h",
            )

        assert "created" in result
        assert store.list_all()[0].sender_handle == "alice_h"

    async def test_save_ad_reply_reports_skip(self, mock_context: MagicMock) -> None:
        with patch("admonitor.mcp_servers.message_server.mcp") as mock_mcp:
            mock_mcp.get_context.return_value = mock_context

            result = await message_server.save_ad_reply(
                sender_display_name="Alice",
                event_text="Alice replied to an ad",
                prior_message="hi there",
            )

        assert result == "Skipped - no ad link"

    async def test_save_ad_reply_validation_error(self, mock_context: MagicMock) -> None:
        with patch("admonitor.mcp_servers.message_server.mcp") as mock_mcp:
            mock_mcp.get_context.return_value = mock_context

            result = await message_server.save_ad_reply(sender_display_name="Alice", event_text="")

        assert result.startswith("Error: Missing required fields")

    async def test_list_ad_replies(self, mock_context: MagicMock, store: MessageStore) -> None:
        store.upsert(parse_payload(PAYLOAD))

        with patch("admonitor.mcp_servers.message_server.mcp") as mock_mcp:
            mock_mcp.get_context.return_value = mock_context
            result = await message_server.list_ad_replies()

        assert "Alice (@alice_h)" in result
        assert "https://www.instagram.com/p/ABC/" in result

    async def test_list_ad_replies_empty(self, mock_context: MagicMock) -> None:
        with patch("admonitor.mcp_servers.message_server.mcp") as mock_mcp:
            mock_mcp.get_context.return_value = mock_context
            result = await message_server.list_ad_replies()

        assert result == "No ad replies stored yet."

    async def test_recent_monitor_activity(self, tmp_path: Path) -> None:
        settings = replace(message_server.SETTINGS, logs_path=str(tmp_path / "logs"))
        audit(settings.logs_path, "actions", "conversation_walker", "ad_reply_save", "Alice", "created")

        with patch("admonitor.mcp_servers.message_server.SETTINGS", settings):
            actions = await message_server.recent_monitor_activity()
            errors = await message_server.recent_monitor_activity(errors=True)

        assert "conversation_walker ad_reply_save Alice: created" in actions
        assert errors == "No error log entries."

    async def test_monitor_status_without_monitor(self) -> None:
        message_server.register_status_source(None)

        assert await message_server.monitor_status() == "Monitor is not running in this process."

    async def test_monitor_status_reports_snapshot(self) -> None:
        snapshot = {
            "running": True,
            "state": "active",
            "session": "backup-1",
            "retry_count": 0,
            "max_retries": 5,
            "last_seen": "Alice: Alice replied to an ad (2m)",
            "poll_interval": 5.0,
            "stop_requested": False,
        }
        message_server.register_status_source(lambda: snapshot)
        try:
            result = await message_server.monitor_status()
        finally:
            message_server.register_status_source(None)

        assert "State: active (running)" in result
        assert "Session: backup-1" in result
        assert "Retries: 0/5" in result
        assert "Last seen: Alice: Alice replied to an ad (2m)" in result
