"""Tests for ad-reply extraction (admonitor.core.extraction)."""

from __future__ import annotations

import pytest

from admonitor.core.extraction import (
    LINK_PREDICATES,
    PRIOR_MESSAGE_LOOKBACK,
    display_name_from_event,
    event_line,
    extract,
    find_prior_message,
    find_reference_link,
    is_bare_timestamp,
    is_candidate_prior_message,
    is_content_permalink,
    is_external_link,
    is_permalink_path,
    is_system_chrome,
    is_view_ad_anchor,
)
from admonitor.core.models import ConversationHeader, Link, MessageNode

RECIPIENT = "shop_owner"
ALICE = ConversationHeader(display_name="Alice", handle="alice_h")


def nodes(*texts: str) -> list[MessageNode]:
    return [MessageNode(text=text) for text in texts]


# ── Scenarios ───────────────────────────────────────────────────────


class TestAliceScenarios:
    def test_reply_without_link(self) -> None:
        snapshot = nodes("hello", "hi there", "Alice replied to an ad", "View ad")

        records = extract(snapshot, ALICE, RECIPIENT)

        assert len(records) == 1
        record = records[0]
        assert record.sender_display_name == "Alice"
        assert record.sender_handle == "alice_h"
        assert record.prior_message == "hi there"
        assert record.event_text == "Alice replied to an ad"
        assert record.reference_link is None
        assert record.recipient_identity == RECIPIENT

    def test_reply_with_permalink_path_in_matched_node(self) -> None:
        snapshot = [
            MessageNode("hello"),
            MessageNode("hi there"),
            MessageNode(
                "Alice replied to an ad",
                links=(Link(href="/p/ABC123/", text="View ad"),),
            ),
            MessageNode("View ad"),
        ]

        records = extract(snapshot, ALICE, RECIPIENT)

        assert len(records) == 1
        assert records[0].reference_link == "https://www.instagram.com/p/ABC123/"


# ── Properties ──────────────────────────────────────────────────────


class TestExtractProperties:
    def test_idempotent(self) -> None:
        snapshot = [
            MessageNode("Do you ship abroad?"),
            MessageNode(
                "Alice replied to an ad",
                links=(Link(href="https://www.instagram.com/reel/XYZ/"),),
            ),
        ]

        first = extract(snapshot, ALICE, RECIPIENT)
        second = extract(snapshot, ALICE, RECIPIENT)

        assert first == second
        assert {r.key for r in first} == {("Alice", "alice_h")}

    def test_no_marker_yields_nothing(self) -> None:
        assert extract(nodes("hello", "how much?"), ALICE, RECIPIENT) == []

    def test_empty_snapshot_yields_nothing(self) -> None:
        assert extract([], ALICE, RECIPIENT) == []

    def test_multiple_events_merge_last_write_wins(self) -> None:
        snapshot = [
            MessageNode("first question"),
            MessageNode(
                "Alice replied to an ad",
                links=(Link(href="https://www.instagram.com/p/OLD/"),),
            ),
            MessageNode("second question"),
            MessageNode(
                "Alice replied to an ad",
                links=(Link(href="https://www.instagram.com/p/NEW/"),),
            ),
        ]

        records = extract(snapshot, ALICE, RECIPIENT)

        assert len(records) == 1
        assert records[0].prior_message == "second question"
        assert records[0].reference_link == "https://www.instagram.com/p/NEW/"

    def test_later_null_link_does_not_erase_earlier(self) -> None:
        snapshot = [
            MessageNode("first question"),
            MessageNode(
                "Alice replied to an ad",
                links=(Link(href="https://www.instagram.com/p/KEEP/"),),
            ),
            MessageNode("filler one"),
            MessageNode("filler two"),
            MessageNode("filler three"),
            MessageNode("second question"),
            MessageNode("Alice replied to an ad"),
        ]

        records = extract(snapshot, ALICE, RECIPIENT)

        assert records[0].reference_link == "https://www.instagram.com/p/KEEP/"
        assert records[0].prior_message == "second question"

    def test_record_without_prior_message_is_dropped(self) -> None:
        snapshot = nodes("10:42 AM", "Active now", "Alice replied to an ad")
        assert extract(snapshot, ALICE, RECIPIENT) == []

    def test_lookback_is_bounded(self) -> None:
        qualifying = ["too far back"]
        filler = ["Active now"] * PRIOR_MESSAGE_LOOKBACK
        snapshot = nodes(*qualifying, *filler, "Alice replied to an ad")

        assert extract(snapshot, ALICE, RECIPIENT) == []

    def test_lookback_reaches_exactly_ten_nodes(self) -> None:
        filler = ["Active now"] * (PRIOR_MESSAGE_LOOKBACK - 1)
        snapshot = nodes("just in range", *filler, "Alice replied to an ad")

        records = extract(snapshot, ALICE, RECIPIENT)

        assert records[0].prior_message == "just in range"

    def test_header_name_missing_falls_back_to_event_line(self) -> None:
        snapshot = nodes("is it available?", "Bob Stone replied to an ad")

        records = extract(snapshot, ConversationHeader(), RECIPIENT)

        assert records[0].sender_display_name == "Bob Stone"
        assert records[0].sender_handle is None

    def test_malformed_snapshot_returns_empty(self) -> None:
        assert extract([None], ALICE, RECIPIENT) == []  # type: ignore[list-item]


# ── Text helpers ────────────────────────────────────────────────────


class TestTextHelpers:
    @pytest.mark.parametrize("text", ["10:42", "10:42 AM", "Today at 9:05 PM", "Mon 14:00", "Feb 3, 2026", "3/2/26"])
    def test_bare_timestamps(self, text: str) -> None:
        assert is_bare_timestamp(text)

    def test_message_with_time_is_not_bare_timestamp(self) -> None:
        assert not is_bare_timestamp("meet at 10:42?")

    @pytest.mark.parametrize("text", ["Active now", "Active 5m ago", "2h", "Seen", "Typing...", "Audio call"])
    def test_system_chrome(self, text: str) -> None:
        assert is_system_chrome(text)

    def test_candidate_excludes_marker_and_label(self) -> None:
        assert not is_candidate_prior_message("Alice replied to an ad")
        assert not is_candidate_prior_message("View ad")
        assert not is_candidate_prior_message("   ")
        assert is_candidate_prior_message("How much for two?")

    def test_event_line_cut_after_marker(self) -> None:
        text = "Alice\nAlice replied to an ad · Learn more\n10:42"
        assert event_line(text) == "Alice replied to an ad"

    def test_display_name_strips_chrome(self) -> None:
        assert display_name_from_event("Active now Alice replied to an ad") == "Alice"


# ── Link discovery ──────────────────────────────────────────────────


class TestLinkPredicates:
    def test_predicate_order(self) -> None:
        assert [name for name, _ in LINK_PREDICATES] == [
            "content_permalink",
            "permalink_path",
            "view_ad_anchor",
            "external_link",
        ]

    def test_content_permalink(self) -> None:
        assert is_content_permalink(Link(href="https://www.instagram.com/p/ABC/"))
        assert not is_content_permalink(Link(href="https://example.com/p/ABC/"))

    def test_permalink_path(self) -> None:
        assert is_permalink_path(Link(href="/reel/XYZ/"))
        assert not is_permalink_path(Link(href="/alice_h/"))

    def test_view_ad_anchor(self) -> None:
        assert is_view_ad_anchor(Link(href="https://l.example.com/x", aria_label="View ad"))
        assert not is_view_ad_anchor(Link(href="#", text="View ad"))

    def test_external_link(self) -> None:
        assert is_external_link(Link(href="https://shop.example.com", target="_blank"))
        assert not is_external_link(Link(href="https://shop.example.com"))

    def test_permalink_wins_over_external_in_same_node(self) -> None:
        node = MessageNode(
            "Alice replied to an ad",
            links=(
                Link(href="https://shop.example.com", target="_blank"),
                Link(href="https://www.instagram.com/p/WIN/"),
            ),
        )
        assert find_reference_link([node], 0) == "https://www.instagram.com/p/WIN/"

    def test_neighbour_search_order(self) -> None:
        snapshot = [
            MessageNode("a", links=(Link(href="https://www.instagram.com/p/MINUS2/"),)),
            MessageNode("b", links=(Link(href="https://www.instagram.com/p/MINUS1/"),)),
            MessageNode("Alice replied to an ad"),
            MessageNode("d", links=(Link(href="https://www.instagram.com/p/PLUS1/"),)),
        ]
        assert find_reference_link(snapshot, 2) == "https://www.instagram.com/p/PLUS1/"

    def test_window_is_two_nodes(self) -> None:
        snapshot = [
            MessageNode("Alice replied to an ad"),
            MessageNode("x"),
            MessageNode("y"),
            MessageNode("z", links=(Link(href="https://www.instagram.com/p/FAR/"),)),
        ]
        assert find_reference_link(snapshot, 0) is None

    def test_permalink_in_text_fallback(self) -> None:
        node = MessageNode("Alice replied to an ad https://www.instagram.com/p/TXT/")
        assert find_reference_link([node], 0) == "https://www.instagram.com/p/TXT/"

    def test_find_prior_message_skips_chrome(self) -> None:
        snapshot = nodes("the real question", "10:41", "Seen", "Alice replied to an ad")
        assert find_prior_message(snapshot, 3) == "the real question"
