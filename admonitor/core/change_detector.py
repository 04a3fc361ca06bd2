"""Head-of-inbox change detection.

Only the most recent inbox entry is compared. The inbox is sorted by recency,
so a new message always surfaces at the top; two arrivals inside one poll
interval surface only the later one.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from admonitor.core.models import ChangeResult, InboxEntry

logger = logging.getLogger(__name__)


def fingerprint(entry: InboxEntry) -> str:
    """Summarize an inbox entry's sender, preview, and time label."""
    return f"{entry.sender}: {entry.preview} ({entry.time_label})"


def detect(snapshot: Sequence[InboxEntry], last_seen: str) -> ChangeResult:
    """Decide whether the head of ``snapshot`` differs from ``last_seen``.

    An empty ``last_seen`` means nothing has been observed yet: any actionable
    head entry is reported as changed with ``bootstrap=True``. Storing the
    returned fingerprint is the caller's job.
    """
    if not snapshot:
        return ChangeResult.unchanged()

    head = snapshot[0]
    if not head.is_actionable:
        logger.debug("Head inbox entry has no sender or preview, ignoring")
        return ChangeResult.unchanged()

    current = fingerprint(head)
    if not last_seen:
        logger.info("First inbox observation: %s", head.sender or "(unknown sender)")
        return ChangeResult(changed=True, entry=head, fingerprint=current, bootstrap=True)

    if current == last_seen:
        return ChangeResult.unchanged()

    logger.info("Inbox head changed: %s", head.sender or "(unknown sender)")
    return ChangeResult(changed=True, entry=head, fingerprint=current)
