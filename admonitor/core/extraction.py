"""Heuristic extraction of ad-reply events from a conversation snapshot.

The conversation DOM has no stable schema, so everything here works on plain
text and anchor attributes captured by the document layer:

1. find message nodes containing the event marker ("replied to an ad");
2. walk back at most ``PRIOR_MESSAGE_LOOKBACK`` nodes for the message the
   user sent before the event, skipping timestamps and UI chrome;
3. look for the ad's permalink in the matched node, then in the
   ``LINK_WINDOW`` nodes around it, trying ``LINK_PREDICATES`` in order;
4. merge hits per ``(display_name, handle)`` with last-write-wins.

All functions are pure and tolerate false negatives; ``extract`` never raises.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from urllib.parse import urljoin, urlparse

from admonitor.core.models import (
    EVENT_MARKER,
    LINK_LABEL,
    AdReplyRecord,
    ConversationHeader,
    Link,
    MessageNode,
)

logger = logging.getLogger(__name__)

PRIOR_MESSAGE_LOOKBACK = 10
LINK_WINDOW = 2
MAX_DISPLAY_NAME_LENGTH = 50

PLATFORM_BASE_URL = "https://www.instagram.com/"

# ── Text classification ─────────────────────────────────────────────

_MONTHS = r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?"
_DAYS = r"(?:mon|tue|wed|thu|fri|sat|sun)[a-z]*\.?"
_CLOCK = r"\d{1,2}:\d{2}(?::\d{2})?\s*(?:[ap]\.?m\.?)?"

TIMESTAMP_PATTERNS = [
    re.compile(rf"^(?:(?:today|yesterday)\s+(?:at\s+)?)?{_CLOCK}$", re.IGNORECASE),
    re.compile(rf"^{_DAYS}\s+{_CLOCK}$", re.IGNORECASE),
    re.compile(rf"^{_MONTHS}\s+\d{{1,2}},?(?:\s+\d{{4}},?)?(?:\s+{_CLOCK})?$", re.IGNORECASE),
    re.compile(rf"^\d{{1,2}}/\d{{1,2}}/\d{{2,4}},?(?:\s+{_CLOCK})?$", re.IGNORECASE),
]

CHROME_PATTERNS = [
    re.compile(r"^active(?:\s+(?:now|today|yesterday))?$", re.IGNORECASE),
    re.compile(r"^(?:active\s+)?(?:\d+|an?|one)\s*[a-z]+\s+ago$", re.IGNORECASE),
    re.compile(
        r"^\d+\s*(?:s|m|h|d|w|y|sec|secs|min|mins|minutes?|hr|hrs|hours?|days?|wk|weeks?|years?)$",
        re.IGNORECASE,
    ),
    re.compile(r"^seen(?:\s+.{0,40})?$", re.IGNORECASE),
    re.compile(r"^(?:sent|delivered|(?:is\s+)?typing\.{0,3})$", re.IGNORECASE),
]

UI_HINTS = frozenset({
    "enter",
    "search",
    "clip",
    "audio call",
    "video call",
    "conversation",
    "conversation information",
    "view profile",
    "message...",
    "reply",
    "like",
    "more",
    "unsend",
    "forward",
    "react",
    "double tap to like",
    "replied to you",
    "you replied",
    "send message",
    "primary",
    "general",
    "requests",
})

# Noise that leaks into the text preceding the marker when the event line is
# concatenated with header chrome.
_NAME_NOISE = [
    re.compile(r"\b(?:Audio call|Video call|Active now|Conversation|Enter|Search|Clip|Active)\b"),
    re.compile(rf"\bToday at {_CLOCK}", re.IGNORECASE),
    re.compile(r"\b\d{1,2}m\s*ago\b"),
    re.compile(r"\bago\b"),
    re.compile(_CLOCK, re.IGNORECASE),
]
_NAME_RUN = re.compile(r"[^\W\d_][\w.~]*(?:\s+[^\W\d_][\w.~]*)*")

_EVENT_LINE = re.compile(rf"([^\n]*?{re.escape(EVENT_MARKER)})")
_PERMALINK_IN_TEXT = re.compile(
    r"https://(?:www\.)?instagram\.com/(?:p|reel|tv)/[A-Za-z0-9_-]+/?"
)


def is_bare_timestamp(text: str) -> bool:
    stripped = text.strip()
    return any(pattern.match(stripped) for pattern in TIMESTAMP_PATTERNS)


def is_system_chrome(text: str) -> bool:
    """True for presence indicators, relative-time labels, and UI hint text."""
    stripped = text.strip()
    if stripped.casefold() in UI_HINTS:
        return True
    return any(pattern.match(stripped) for pattern in CHROME_PATTERNS)


def is_candidate_prior_message(text: str) -> bool:
    stripped = text.strip()
    if not stripped:
        return False
    if EVENT_MARKER in stripped or LINK_LABEL in stripped:
        return False
    return not (is_bare_timestamp(stripped) or is_system_chrome(stripped))


def event_line(text: str) -> str:
    """Return the line of ``text`` that carries the marker, cut right after it."""
    match = _EVENT_LINE.search(text)
    if not match:
        return text.strip()
    return " ".join(match.group(1).split())


def display_name_from_event(line: str) -> str:
    """Best-effort sender name from "<name> replied to an ad".

    Used only when the conversation header could not be read.
    """
    prefix, _, _ = line.partition(EVENT_MARKER)
    name = prefix
    for pattern in _NAME_NOISE:
        name = pattern.sub(" ", name)
    name = " ".join(name.split())

    if len(name) > MAX_DISPLAY_NAME_LENGTH:
        match = _NAME_RUN.search(name)
        name = match.group(0).strip() if match else ""

    return name


# ── Link predicates ─────────────────────────────────────────────────

LinkPredicate = Callable[[Link], bool]

_PERMALINK = re.compile(r"^https?://(?:www\.)?instagram\.com/(?:p|reel|tv)/[A-Za-z0-9_-]+/?", re.IGNORECASE)
_PERMALINK_PATH = re.compile(r"^/(?:p|reel|tv)/[A-Za-z0-9_-]+/?$")


def is_content_permalink(link: Link) -> bool:
    """Canonical absolute permalink to a post or reel."""
    return bool(_PERMALINK.match(link.href))


def is_permalink_path(link: Link) -> bool:
    """Post/reel path, possibly relative or on a mirror host."""
    return bool(_PERMALINK_PATH.match(urlparse(link.href).path or ""))


def is_view_ad_anchor(link: Link) -> bool:
    """Anchor labelled as the ad link ("View ad")."""
    label = f"{link.text} {link.aria_label}".casefold()
    href = link.href.strip()
    if not href or href.startswith(("#", "javascript:")):
        return False
    return LINK_LABEL.casefold() in label


def is_external_link(link: Link) -> bool:
    """Any absolute link opened in a new tab."""
    return link.href.startswith(("http://", "https://")) and link.target == "_blank"


LINK_PREDICATES: tuple[tuple[str, LinkPredicate], ...] = (
    ("content_permalink", is_content_permalink),
    ("permalink_path", is_permalink_path),
    ("view_ad_anchor", is_view_ad_anchor),
    ("external_link", is_external_link),
)


def _resolve(href: str) -> str:
    if href.startswith(("http://", "https://")):
        return href
    return urljoin(PLATFORM_BASE_URL, href)


def find_link_in_node(node: MessageNode) -> str | None:
    for name, predicate in LINK_PREDICATES:
        for link in node.links:
            if predicate(link):
                logger.debug("Reference link matched by %s: %s", name, link.href)
                return _resolve(link.href)
    return None


def find_reference_link(nodes: Sequence[MessageNode], index: int) -> str | None:
    """Search the matched node, then its neighbours at +1, -1, +2, -2."""
    positions = [index]
    for distance in range(1, LINK_WINDOW + 1):
        positions.extend((index + distance, index - distance))

    for position in positions:
        if 0 <= position < len(nodes):
            link = find_link_in_node(nodes[position])
            if link:
                return link

    match = _PERMALINK_IN_TEXT.search(nodes[index].text)
    return match.group(0) if match else None


def find_prior_message(nodes: Sequence[MessageNode], index: int) -> str | None:
    """Nearest qualifying message before ``index``, at most 10 nodes back."""
    stop = max(index - PRIOR_MESSAGE_LOOKBACK, 0)
    for position in range(index - 1, stop - 1, -1):
        text = nodes[position].text
        if is_candidate_prior_message(text):
            return text.strip()
    return None


# ── Engine ──────────────────────────────────────────────────────────

_MERGED_FIELDS = ("sender_handle", "event_text", "prior_message", "reference_link")


def _merge(existing: AdReplyRecord, incoming: AdReplyRecord) -> None:
    for name in _MERGED_FIELDS:
        value = getattr(incoming, name)
        if value:
            setattr(existing, name, value)


def _extract(
    nodes: Sequence[MessageNode],
    header: ConversationHeader,
    recipient_identity: str,
) -> list[AdReplyRecord]:
    matches = [i for i, node in enumerate(nodes) if EVENT_MARKER in node.text]
    if not matches:
        return []

    logger.debug("Found %d event marker(s) in %d nodes", len(matches), len(nodes))
    accumulator: dict[tuple[str, str | None], AdReplyRecord] = {}

    for index in matches:
        line = event_line(nodes[index].text)
        display_name = header.display_name.strip() or display_name_from_event(line)
        if not display_name:
            logger.debug("No sender name for event at node %d, skipping", index)
            continue

        candidate = AdReplyRecord(
            sender_display_name=display_name,
            sender_handle=header.handle,
            recipient_identity=recipient_identity,
            event_text=line,
            prior_message=find_prior_message(nodes, index),
            reference_link=find_reference_link(nodes, index),
        )

        existing = accumulator.get(candidate.key)
        if existing is None:
            accumulator[candidate.key] = candidate
        else:
            _merge(existing, candidate)

    records = [
        record
        for record in accumulator.values()
        if record.sender_display_name and record.prior_message
    ]
    dropped = len(accumulator) - len(records)
    if dropped:
        logger.info("Dropped %d ad reply(ies) without a prior message", dropped)
    return records


def extract(
    snapshot: Sequence[MessageNode],
    header: ConversationHeader,
    recipient_identity: str,
) -> list[AdReplyRecord]:
    """Turn a conversation snapshot into deduplicated ad-reply records.

    Returns records in the order their key was first matched. Any error while
    reading the snapshot yields an empty list.
    """
    try:
        return _extract(snapshot, header, recipient_identity)
    except Exception:
        logger.exception("Ad reply extraction failed, returning no records")
        return []
