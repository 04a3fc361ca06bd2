"""Watchers that drive the live inbox and keep a monitoring run alive."""

from admonitor.watchers.base_watcher import BaseWatcher
from admonitor.watchers.inbox_watcher import InboxWatcher, MonitorState
from admonitor.watchers.recovery import MonitorHandle, RecoveryController

__all__ = ["BaseWatcher", "InboxWatcher", "MonitorState", "MonitorHandle", "RecoveryController"]
