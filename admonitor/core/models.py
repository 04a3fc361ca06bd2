"""Data types shared by the detector, extraction engine, watchers, and stores.

Snapshots (inbox entries, message nodes, headers) are transient values read
from the live document once per poll or visit. ``AdReplyRecord`` is what gets
persisted; ``StoredMessage`` is what the store hands back.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Generic, TypeVar

EVENT_MARKER = "replied to an ad"
LINK_LABEL = "View ad"

T = TypeVar("T")


# ── Document snapshots ──────────────────────────────────────────────


@dataclass(frozen=True)
class InboxEntry:
    """Summary of one conversation row in the inbox list."""

    sender: str = ""
    preview: str = ""
    time_label: str = ""

    @property
    def is_actionable(self) -> bool:
        return bool(self.sender.strip() or self.preview.strip())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InboxEntry:
        return cls(
            sender=(data.get("sender") or "").strip(),
            preview=(data.get("preview") or "").strip(),
            time_label=(data.get("time") or data.get("time_label") or "").strip(),
        )


@dataclass(frozen=True)
class Link:
    """An anchor found inside a message node."""

    href: str
    text: str = ""
    aria_label: str = ""
    target: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Link:
        return cls(
            href=data.get("href") or "",
            text=(data.get("text") or "").strip(),
            aria_label=(data.get("ariaLabel") or data.get("aria_label") or "").strip(),
            target=data.get("target") or "",
        )


@dataclass(frozen=True)
class MessageNode:
    """A message-bearing element: its flattened text plus the links inside it."""

    text: str
    links: tuple[Link, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MessageNode:
        return cls(
            text=data.get("text") or "",
            links=tuple(Link.from_dict(link) for link in data.get("links") or []),
        )


@dataclass(frozen=True)
class ConversationHeader:
    """Display name and handle of the conversation's counterparty."""

    display_name: str = ""
    handle: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ConversationHeader:
        data = data or {}
        handle = (data.get("handle") or "").strip().lstrip("@")
        return cls(
            display_name=(data.get("displayName") or data.get("display_name") or "").strip(),
            handle=handle or None,
        )


InboxSnapshot = list[InboxEntry]
ConversationSnapshot = list[MessageNode]


# ── Records ─────────────────────────────────────────────────────────


@dataclass
class AdReplyRecord:
    """One "<name> replied to an ad" event, ready for the persistence gateway."""

    sender_display_name: str
    recipient_identity: str
    event_text: str
    sender_handle: str | None = None
    prior_message: str | None = None
    reference_link: str | None = None

    @property
    def key(self) -> tuple[str, str | None]:
        return (self.sender_display_name, self.sender_handle)

    def to_payload(self) -> dict[str, Any]:
        """JSON body accepted by ``POST /api/message``."""
        return {
            "senderDisplayName": self.sender_display_name,
            "senderHandle": self.sender_handle,
            "recipientIdentity": self.recipient_identity,
            "eventText": self.event_text,
            "priorMessage": self.prior_message,
            "referenceLink": self.reference_link,
        }


@dataclass
class StoredMessage:
    """A persisted ad-reply record as returned by the message store."""

    id: int
    sender_display_name: str
    recipient_identity: str
    event_text: str
    sender_handle: str | None
    prior_message: str | None
    reference_link: str | None
    created_at: str
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "senderDisplayName": self.sender_display_name,
            "senderHandle": self.sender_handle,
            "recipientIdentity": self.recipient_identity,
            "eventText": self.event_text,
            "priorMessage": self.prior_message,
            "referenceLink": self.reference_link,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


class UpsertStatus(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


@dataclass
class UpsertResult:
    status: UpsertStatus
    record: StoredMessage | None = None
    reason: str = ""


@dataclass(frozen=True)
class SessionCredential:
    """A session cookie value handed out by the credential store."""

    name: str
    token: str
    last_used_at: str | None = None

    def __repr__(self) -> str:
        # Never leak the token into logs
        return f"SessionCredential(name={self.name!r}, last_used_at={self.last_used_at!r})"


# ── Results ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ChangeResult:
    """Outcome of comparing the head inbox entry with the last one seen."""

    changed: bool
    entry: InboxEntry | None = None
    fingerprint: str = ""
    bootstrap: bool = False

    @classmethod
    def unchanged(cls) -> ChangeResult:
        return cls(changed=False)


class FailureKind(StrEnum):
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    DETACHED = "detached"
    NAVIGATION = "navigation"
    ERROR = "error"


@dataclass(frozen=True)
class StepResult(Generic[T]):
    """Outcome of one document interaction: ``success(value)`` or ``failure(kind)``."""

    ok: bool
    value: T | None = None
    kind: FailureKind | None = None
    detail: str = ""

    @classmethod
    def success(cls, value: T | None = None) -> StepResult[T]:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, kind: FailureKind, detail: str = "") -> StepResult[T]:
        return cls(ok=False, kind=kind, detail=detail)
