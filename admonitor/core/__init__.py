"""Pure core: data types, change detection, and ad-reply extraction."""

from admonitor.core.change_detector import detect, fingerprint
from admonitor.core.extraction import extract
from admonitor.core.models import AdReplyRecord, ConversationHeader, InboxEntry, Link, MessageNode

__all__ = [
    "detect",
    "fingerprint",
    "extract",
    "AdReplyRecord",
    "ConversationHeader",
    "InboxEntry",
    "Link",
    "MessageNode",
]
