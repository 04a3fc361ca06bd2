"""Tests for the inbox document steps (admonitor.watchers.inbox_page)."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from admonitor.config import MonitorTimings
from admonitor.core.errors import InitializationError
from admonitor.core.models import FailureKind
from admonitor.watchers.inbox_page import InboxPage, classify_error

INBOX_URL = "https://www.instagram.com/direct/inbox/"
THREAD_URL = "https://www.instagram.com/direct/t/1234567890/"


@pytest.fixture
def page(provider: MagicMock, timings: MonitorTimings) -> InboxPage:
    return InboxPage(provider, INBOX_URL, timings)


class TestClassifyError:
    def test_timeouts(self) -> None:
        assert classify_error(PlaywrightTimeoutError("Timeout 10000ms exceeded")) is FailureKind.TIMEOUT
        assert classify_error(TimeoutError()) is FailureKind.TIMEOUT

    def test_detached(self) -> None:
        error = PlaywrightError("Target page, context or browser has been closed")
        assert classify_error(error) is FailureKind.DETACHED

    def test_navigation(self) -> None:
        assert classify_error(PlaywrightError("net::ERR_NAME_NOT_RESOLVED")) is FailureKind.NAVIGATION

    def test_other(self) -> None:
        assert classify_error(RuntimeError("boom")) is FailureKind.ERROR


class TestOpenInbox:
    async def test_confirms_inbox_location(self, page: InboxPage, provider: MagicMock) -> None:
        await page.open_inbox()

        provider.navigate.assert_awaited_once_with(INBOX_URL, 1000)

    async def test_login_wall_raises(self, page: InboxPage, provider: MagicMock) -> None:
        provider.current_url.return_value = "https://www.instagram.com/accounts/login/"

        with pytest.raises(InitializationError, match="accounts/login"):
            await page.open_inbox()


class TestReadInbox:
    async def test_maps_rows_to_entries(self, page: InboxPage, provider: MagicMock, script_router) -> None:
        provider.evaluate.side_effect = script_router({
            "{ rows, senders": [
                {"sender": "Alice", "preview": "Alice replied to an ad", "time": "2m"},
                {"sender": "", "preview": "", "time": ""},
            ],
        })

        result = await page.read_inbox()

        assert result.ok
        assert result.value is not None
        assert result.value[0].sender == "Alice"
        assert result.value[0].time_label == "2m"
        assert result.value[1].is_actionable is False

    async def test_detached_page_is_failure(self, page: InboxPage, provider: MagicMock) -> None:
        provider.evaluate.side_effect = PlaywrightError("Execution context was destroyed")

        result = await page.read_inbox()

        assert not result.ok
        assert result.kind is FailureKind.DETACHED


class TestConversationSteps:
    async def test_open_without_row_is_not_found(
        self, page: InboxPage, provider: MagicMock, script_router
    ) -> None:
        provider.evaluate.side_effect = script_router({"{ rows }": False})

        result = await page.open_latest_conversation()

        assert not result.ok
        assert result.kind is FailureKind.NOT_FOUND

    async def test_wait_for_conversation_confirms_marker(self, page: InboxPage, provider: MagicMock) -> None:
        provider.current_url.side_effect = [INBOX_URL, THREAD_URL]

        result = await page.wait_for_conversation()

        assert result.ok
        assert result.value == THREAD_URL

    async def test_wait_for_conversation_times_out(self, page: InboxPage) -> None:
        result = await page.wait_for_conversation()

        assert not result.ok
        assert result.kind is FailureKind.TIMEOUT

    async def test_scroll_runs_configured_steps(
        self, page: InboxPage, provider: MagicMock, timings: MonitorTimings
    ) -> None:
        provider.evaluate.return_value = True

        result = await page.scroll_history()

        assert result.value == timings.scroll_steps
        assert provider.evaluate.await_count == timings.scroll_steps
        arg = provider.evaluate.await_args.args[1]
        assert arg["distance"] == timings.scroll_distance_px

    async def test_read_header_strips_at(self, page: InboxPage, provider: MagicMock, script_router) -> None:
        provider.evaluate.side_effect = script_router({"{ names": {"displayName": "Alice", "handle": "@alice_h"}})

        result = await page.read_header()

        assert result.value is not None
        assert result.value.display_name == "Alice"
        assert result.value.handle == "alice_h"

    async def test_read_messages_builds_nodes(self, page: InboxPage, provider: MagicMock, script_router) -> None:
        provider.evaluate.side_effect = script_router({
            "{ nodes": [
                {"text": "hi there", "links": []},
                {
                    "text": "Alice replied to an ad",
                    "links": [{"href": "/p/ABC/", "text": "View ad", "ariaLabel": "", "target": ""}],
                },
            ],
        })

        result = await page.read_messages()

        assert result.value is not None
        assert result.value[1].links[0].href == "/p/ABC/"
        assert result.value[1].links[0].text == "View ad"


class TestReturnToInbox:
    async def test_uses_back_affordance(self, page: InboxPage, provider: MagicMock, script_router) -> None:
        provider.evaluate.side_effect = script_router({"{ selectors }": 'a[href="/direct/inbox/"]'})

        result = await page.return_to_inbox()

        assert result.value == 'a[href="/direct/inbox/"]'
        provider.navigate.assert_not_awaited()

    async def test_falls_back_to_navigation(self, page: InboxPage, provider: MagicMock) -> None:
        provider.evaluate.return_value = None

        result = await page.return_to_inbox()

        assert result.value == "navigation"
        provider.navigate.assert_awaited_once_with(INBOX_URL, 1000)

    async def test_navigation_failure(self, page: InboxPage, provider: MagicMock) -> None:
        provider.navigate.side_effect = PlaywrightTimeoutError("Timeout 1000ms exceeded")

        result = await page.return_to_inbox()

        assert not result.ok
        assert result.kind is FailureKind.TIMEOUT
