"""Inbox page queries: the document steps the monitor performs.

Each step runs a small script in the live document and returns a
``StepResult``. A step never raises; timeouts, missing elements, and detached
pages come back as ``StepResult.failure(kind)`` for the caller to act on.
Selectors are tried in cascade order since the remote markup changes often.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from admonitor.config import MonitorTimings
from admonitor.core.errors import InitializationError
from admonitor.core.models import (
    ConversationHeader,
    FailureKind,
    InboxEntry,
    MessageNode,
    StepResult,
)
from admonitor.watchers.document import DocumentProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")

INBOX_MARKER = "/direct"
CONVERSATION_MARKER = "/direct/t/"
INBOX_ENTRY_LIMIT = 5
MESSAGE_NODE_LIMIT = 200
LOCATION_POLL_SECONDS = 0.25

# Selectors for the direct-message UI, most specific first
SELECTORS: dict[str, list[str]] = {
    "inbox_rows": [
        'div[aria-label="Chats"] div[role="listitem"]',
        'div[role="list"] div[role="listitem"]',
        'div[role="listitem"]',
    ],
    "row_sender": [
        'span[dir="auto"] span',
        'span[dir="auto"]',
    ],
    "row_preview": [
        'span[dir="auto"] span',
        'span[dir="auto"]',
    ],
    "row_time": ["abbr", "time"],
    "message_pane": [
        'div[role="main"] div[role="grid"]',
        'div[role="main"] div[aria-label*="Messages"]',
        'div[role="main"]',
    ],
    "header_name": [
        'div[role="main"] header h2 span',
        'div[role="main"] header span[dir="auto"]',
        'div[role="main"] a[role="link"] span[dir="auto"]',
    ],
    "header_link": [
        'div[role="main"] header a[href^="/"]',
        'div[role="main"] a[role="link"][href^="/"]',
    ],
    "message_nodes": [
        'div[role="main"] div[role="row"]',
        'div[role="main"] div[role="gridcell"]',
    ],
    "message_fallback": [
        'div[role="main"] div[dir="auto"]',
        'div[role="main"] span[dir="auto"]',
    ],
    "back_button": [
        'a[href="/direct/inbox/"]',
        'a[href*="/direct/inbox"]',
        'div[role="button"][aria-label*="Back"]',
        'button[aria-label*="Back"]',
        'svg[aria-label="Back"]',
        'button[aria-label*="Close"]',
    ],
}

_READ_INBOX_SCRIPT = """
({ rows, senders, previews, times, limit }) => {
  let found = [];
  for (const selector of rows) {
    found = Array.from(document.querySelectorAll(selector));
    if (found.length > 0) break;
  }
  const firstText = (root, selectors, skip) => {
    for (const selector of selectors) {
      for (const el of root.querySelectorAll(selector)) {
        const text = (el.textContent || '').trim();
        if (text && text !== skip) return text;
      }
    }
    return '';
  };
  return found.slice(0, limit).map((row) => {
    const button = row.querySelector('div[role="button"]');
    if (!button) return { sender: '', preview: '', time: '' };
    const sender = firstText(button, senders, null);
    const preview = firstText(button, previews, sender);
    let time = '';
    for (const selector of times) {
      const el = button.querySelector(selector);
      if (el) {
        time = (el.getAttribute('aria-label') || el.getAttribute('datetime') || el.textContent || '').trim();
        break;
      }
    }
    return { sender, preview, time };
  });
}
"""

_OPEN_FIRST_SCRIPT = """
({ rows }) => {
  for (const selector of rows) {
    const row = document.querySelector(selector);
    if (!row) continue;
    const button = row.querySelector('div[role="button"]');
    if (!button) return false;
    button.click();
    return true;
  }
  return false;
}
"""

_SCROLL_SCRIPT = """
({ panes, distance }) => {
  for (const selector of panes) {
    const pane = document.querySelector(selector);
    if (pane) {
      pane.scrollTop = Math.max(0, pane.scrollTop - distance);
      return true;
    }
  }
  window.scrollBy(0, -distance);
  return false;
}
"""

_READ_HEADER_SCRIPT = """
({ names, links }) => {
  let displayName = '';
  for (const selector of names) {
    const el = document.querySelector(selector);
    const text = el ? (el.textContent || '').trim() : '';
    if (text) { displayName = text; break; }
  }
  let handle = '';
  for (const selector of links) {
    for (const el of document.querySelectorAll(selector)) {
      const parts = (el.getAttribute('href') || '').split('/').filter(Boolean);
      if (parts.length === 1) { handle = parts[0]; break; }
    }
    if (handle) break;
  }
  return { displayName, handle };
}
"""

_READ_MESSAGES_SCRIPT = """
({ nodes, fallback, limit }) => {
  const collect = (selectors) => {
    for (const selector of selectors) {
      const found = Array.from(document.querySelectorAll(selector));
      if (found.length > 0) return found;
    }
    return [];
  };
  let found = collect(nodes);
  if (found.length === 0) found = collect(fallback);
  return found.slice(-limit).map((node) => ({
    text: (node.innerText || node.textContent || '').trim(),
    links: Array.from(node.querySelectorAll('a[href]')).map((a) => ({
      href: a.getAttribute('href') || '',
      text: (a.textContent || '').trim(),
      ariaLabel: a.getAttribute('aria-label') || '',
      target: a.getAttribute('target') || '',
    })),
  }));
}
"""

_CLICK_FIRST_MATCH_SCRIPT = """
({ selectors }) => {
  for (const selector of selectors) {
    const el = document.querySelector(selector);
    if (!el) continue;
    const target = el.closest('a, button, [role="button"]') || el;
    target.click();
    return selector;
  }
  return null;
}
"""


def classify_error(exc: BaseException) -> FailureKind:
    """Map a provider exception onto a step failure kind."""
    if isinstance(exc, (TimeoutError, PlaywrightTimeoutError)):
        return FailureKind.TIMEOUT
    message = str(exc).lower()
    if any(
        fragment in message
        for fragment in ("detached", "target closed", "has been closed", "context was destroyed")
    ):
        return FailureKind.DETACHED
    if "net::" in message or "navigat" in message:
        return FailureKind.NAVIGATION
    return FailureKind.ERROR


class InboxPage:
    """Document steps over a ``DocumentProvider`` pointed at the inbox."""

    def __init__(self, provider: DocumentProvider, inbox_url: str, timings: MonitorTimings) -> None:
        self.provider = provider
        self.inbox_url = inbox_url
        self.timings = timings

    async def _attempt(self, step: str, operation: Awaitable[T]) -> StepResult[T]:
        try:
            return StepResult.success(await operation)
        except Exception as exc:
            kind = classify_error(exc)
            logger.warning("Step '%s' failed (%s): %s", step, kind, exc)
            return StepResult.failure(kind, str(exc))

    async def open_inbox(self) -> None:
        """Navigate to the inbox and confirm it loaded.

        Raises:
            InitializationError: If the page ends up anywhere but the inbox,
                typically the login wall of a rejected session.
        """
        await self.provider.navigate(self.inbox_url, self.timings.navigation_timeout_ms)
        # The inbox hydrates after network idle
        await asyncio.sleep(self.timings.page_render_delay)
        location = self.provider.current_url()
        if INBOX_MARKER not in location:
            msg = f"Inbox not reached, landed on {location or 'an empty page'}"
            raise InitializationError(msg)
        logger.info("Inbox loaded: %s", location)

    async def read_inbox(self) -> StepResult[list[InboxEntry]]:
        arg = {
            "rows": SELECTORS["inbox_rows"],
            "senders": SELECTORS["row_sender"],
            "previews": SELECTORS["row_preview"],
            "times": SELECTORS["row_time"],
            "limit": INBOX_ENTRY_LIMIT,
        }
        result = await self._attempt("read_inbox", self.provider.evaluate(_READ_INBOX_SCRIPT, arg))
        if not result.ok:
            return result
        return StepResult.success([InboxEntry.from_dict(row) for row in result.value or []])

    async def open_latest_conversation(self) -> StepResult[bool]:
        """Click the first inbox row, re-resolved in the live document."""
        result = await self._attempt(
            "open_conversation",
            self.provider.evaluate(_OPEN_FIRST_SCRIPT, {"rows": SELECTORS["inbox_rows"]}),
        )
        if result.ok and not result.value:
            return StepResult.failure(FailureKind.NOT_FOUND, "no clickable inbox row")
        return result

    async def wait_for_conversation(self) -> StepResult[str]:
        """Poll the location until it carries the conversation marker."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timings.selector_timeout_ms / 1000
        while True:
            location = self.provider.current_url()
            if CONVERSATION_MARKER in location:
                return StepResult.success(location)
            if loop.time() >= deadline:
                return StepResult.failure(FailureKind.TIMEOUT, f"still at {location}")
            await asyncio.sleep(LOCATION_POLL_SECONDS)

    async def scroll_history(self) -> StepResult[int]:
        """Scroll the message pane upward to load older messages."""
        arg = {"panes": SELECTORS["message_pane"], "distance": self.timings.scroll_distance_px}
        steps = 0
        for _ in range(self.timings.scroll_steps):
            result = await self._attempt("scroll", self.provider.evaluate(_SCROLL_SCRIPT, arg))
            if not result.ok:
                return StepResult.failure(result.kind or FailureKind.ERROR, result.detail)
            steps += 1
            await asyncio.sleep(self.timings.scroll_delay)
        return StepResult.success(steps)

    async def read_header(self) -> StepResult[ConversationHeader]:
        arg = {"names": SELECTORS["header_name"], "links": SELECTORS["header_link"]}
        result = await self._attempt("read_header", self.provider.evaluate(_READ_HEADER_SCRIPT, arg))
        if not result.ok:
            return result
        return StepResult.success(ConversationHeader.from_dict(result.value))

    async def read_messages(self) -> StepResult[list[MessageNode]]:
        arg = {
            "nodes": SELECTORS["message_nodes"],
            "fallback": SELECTORS["message_fallback"],
            "limit": MESSAGE_NODE_LIMIT,
        }
        result = await self._attempt(
            "read_messages", self.provider.evaluate(_READ_MESSAGES_SCRIPT, arg)
        )
        if not result.ok:
            return result
        nodes: list[dict[str, Any]] = result.value or []
        return StepResult.success([MessageNode.from_dict(node) for node in nodes])

    async def return_to_inbox(self) -> StepResult[str]:
        """Use a back affordance if one exists, else navigate to the inbox URL.

        Returns the route taken: the matched selector or ``"navigation"``.
        """
        clicked = await self._attempt(
            "back_button",
            self.provider.evaluate(_CLICK_FIRST_MATCH_SCRIPT, {"selectors": SELECTORS["back_button"]}),
        )
        if clicked.ok and clicked.value:
            return StepResult.success(clicked.value)

        navigated = await self._attempt(
            "navigate_inbox",
            self.provider.navigate(self.inbox_url, self.timings.navigation_timeout_ms),
        )
        if not navigated.ok:
            return StepResult.failure(navigated.kind or FailureKind.NAVIGATION, navigated.detail)
        return StepResult.success("navigation")
