"""Inbox monitor that captures "replied to an ad" events from direct messages."""

__version__ = "0.1.0"
