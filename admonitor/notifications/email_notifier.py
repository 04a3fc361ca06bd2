"""Operator notification channel: "session invalid" emails over Gmail.

Best-effort by contract: ``notify`` reports success or failure and never
raises, so a broken mail setup cannot stall credential rotation.
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path

from admonitor.notifications.gmail_client import GmailClient
from admonitor.utils.logging_utils import audit

logger = logging.getLogger(__name__)

SUBJECT = "Invalid Session ID – Action Required"


def redact_email(address: str) -> str:
    """Redact an email address for logging: ``john@example.com`` → ``j***@example.com``."""
    match = re.match(r"^([^@])", address)
    if match and "@" in address:
        local, domain = address.split("@", 1)
        return f"{local[0]}***@{domain}"
    return "***"


def build_message(reason: str, update_url: str = "") -> tuple[str, str]:
    """Return ``(plain_text, html)`` bodies for the session alert."""
    lines = [
        "Your current session ID is invalid or expired.",
        f"Reason: {reason}",
    ]
    html_parts = [
        "<p>Your current session ID is invalid or expired.</p>",
        f"<p>Reason: {reason}</p>",
    ]
    if update_url:
        lines.append(f"Please enter a new session ID here: {update_url}")
        html_parts.append(f'<a href="{update_url}">Update Session ID</a>')
    lines.append("The system will retry automatically after the session is updated.")
    html_parts.append("<p>The system will retry automatically after the session is updated.</p>")
    return "\n".join(lines), "\n".join(html_parts)


class EmailNotifier:
    """Sends session alerts; in dry-run mode only logs them."""

    def __init__(
        self,
        gmail: GmailClient,
        update_url: str = "",
        dry_run: bool = True,
        logs_path: str | Path | None = None,
    ) -> None:
        self.gmail = gmail
        self.update_url = update_url
        self.dry_run = dry_run
        self.logs_path = logs_path

    async def notify(self, recipient: str | None, reason: str) -> bool:
        if not recipient or "@" not in recipient:
            logger.warning("No valid operator email configured, alert not sent: %s", reason)
            audit(self.logs_path, "errors", "email_notifier", "operator_alert", "***", "no_recipient", reason=reason)
            return False

        redacted = redact_email(recipient)
        if self.dry_run:
            logger.info("[DRY RUN] Would email %s: %s", redacted, reason)
            audit(self.logs_path, "actions", "email_notifier", "operator_alert", redacted, "dry_run", reason=reason)
            return True

        body, html = build_message(reason, self.update_url)
        try:
            result = await asyncio.to_thread(self.gmail.send_message, recipient, SUBJECT, body, html)
            message_id = result["message_id"]
        except Exception as exc:
            # Any send-path failure, including DNS and token errors
            logger.error("Failed to send operator alert to %s: %s", redacted, exc)
            audit(
                self.logs_path, "errors", "email_notifier", "operator_alert", redacted, "failure",
                reason=reason, error=f"{type(exc).__name__}: {exc}",
            )
            return False

        logger.info("Operator alert sent to %s (message %s)", redacted, message_id)
        audit(
            self.logs_path,
            "actions",
            "email_notifier",
            "operator_alert",
            redacted,
            "success",
            reason=reason,
            message_id=message_id,
        )
        return True
