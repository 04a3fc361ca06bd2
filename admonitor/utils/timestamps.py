"""ISO 8601 timestamp utilities for the ad-reply monitor.

Stored records, credentials, and audit log entries all use the same UTC
string format so they sort lexically.
"""

from datetime import UTC, datetime


def now_iso() -> str:
    """Get the current UTC timestamp in ISO 8601 format.

    Microseconds are kept so two writes within the same second still order
    correctly in ``ORDER BY created_at``.

    Returns:
        Current timestamp as ISO 8601 string (YYYY-MM-DDTHH:MM:SS.ffffffZ).

    Examples:
        >>> ts = now_iso()
        >>> ts  # e.g., "2026-02-04T14:30:22.123456Z"
    """
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def today_iso() -> str:
    """Get today's UTC date (YYYY-MM-DD), used to name daily audit log files."""
    return datetime.now(UTC).strftime("%Y-%m-%d")
