"""Persistence gateways and the session credential store."""

from admonitor.storage.api_gateway import ApiMessageGateway
from admonitor.storage.database import Database
from admonitor.storage.message_store import MessageGateway, MessageStore
from admonitor.storage.session_store import SessionStore

__all__ = ["ApiMessageGateway", "Database", "MessageGateway", "MessageStore", "SessionStore"]
