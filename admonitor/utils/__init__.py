"""Shared utilities for the ad-reply monitor."""

from admonitor.utils.logging_utils import audit, correlation_id, log_action, read_recent_logs
from admonitor.utils.timestamps import now_iso, today_iso

__all__ = [
    "audit",
    "correlation_id",
    "log_action",
    "read_recent_logs",
    "now_iso",
    "today_iso",
]
