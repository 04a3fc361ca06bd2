"""Operator notification channel."""

from admonitor.notifications.email_notifier import EmailNotifier
from admonitor.notifications.gmail_client import GmailClient

__all__ = ["EmailNotifier", "GmailClient"]
