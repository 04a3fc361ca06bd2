"""Inbox watcher: the polling state machine of one monitoring run.

IDLE -> INITIALIZING -> ACTIVE -> STOPPED. Initialization launches the
browser, injects the session cookie, and confirms the inbox loaded. While
ACTIVE the watcher polls the head of the inbox and, when it changes, hands
the conversation to the ``ConversationWalker``. One conversation at a time.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from enum import StrEnum

from admonitor.config import MonitorSettings
from admonitor.core.change_detector import detect
from admonitor.core.errors import InitializationError, MonitorError
from admonitor.core.models import InboxEntry, SessionCredential
from admonitor.storage.message_store import MessageGateway
from admonitor.utils.logging_utils import audit
from admonitor.watchers.base_watcher import BaseWatcher
from admonitor.watchers.conversation_walker import ConversationWalker
from admonitor.watchers.document import DocumentProvider
from admonitor.watchers.inbox_page import InboxPage

ProviderFactory = Callable[[], Awaitable[DocumentProvider]]


class MonitorState(StrEnum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    ACTIVE = "active"
    STOPPED = "stopped"


class InboxWatcher(BaseWatcher):
    """Watches the inbox head and walks conversations that changed."""

    def __init__(
        self,
        settings: MonitorSettings,
        credential: SessionCredential,
        gateway: MessageGateway,
        provider_factory: ProviderFactory,
    ):
        timings = settings.timings
        super().__init__(check_interval=timings.poll_interval, error_cooldown=timings.error_cooldown)
        self.settings = settings
        self.timings = timings
        self.credential = credential
        self.gateway = gateway
        self.logs_path = settings.logs_path
        self._provider_factory = provider_factory
        self._provider: DocumentProvider | None = None
        self._walker: ConversationWalker | None = None
        self.page: InboxPage | None = None
        self.state = MonitorState.IDLE
        self.last_seen = ""

    async def initialize(self) -> None:
        """Bring the run to ACTIVE.

        Raises:
            InitializationError: If the browser, the cookie, or the inbox
                could not be brought up. The state returns to IDLE.
        """
        if self.state is MonitorState.ACTIVE:
            self.logger.debug("Already active, nothing to initialize")
            return
        if self.state is MonitorState.STOPPED:
            msg = "Cannot initialize a stopped run"
            raise InitializationError(msg)

        self.state = MonitorState.INITIALIZING
        self.logger.info("Initializing with session '%s'", self.credential.name)
        try:
            self._provider = await self._provider_factory()
            await self._provider.set_credential_cookie(
                self.settings.cookie_name,
                self.credential.token,
                self.settings.cookie_domain,
            )
            self.page = InboxPage(self._provider, self.settings.target_url, self.timings)
            await self.page.open_inbox()
        except Exception as exc:
            self.logger.error("Initialization failed with session '%s': %s", self.credential.name, exc)
            audit(
                self.logs_path, "errors", "inbox_watcher", "initialize", self.credential.name, "failure",
                error=str(exc),
            )
            await self._release_provider()
            self.state = MonitorState.IDLE
            if isinstance(exc, InitializationError):
                raise
            raise InitializationError(str(exc)) from exc

        self._walker = ConversationWalker(
            self.page,
            self.gateway,
            self.settings.recipient_identity,
            logs_path=self.logs_path,
        )
        self.state = MonitorState.ACTIVE
        self.logger.info("Monitoring active on %s", self.settings.target_url)

    async def is_healthy(self) -> bool:
        return self._provider is not None and self._provider.is_usable()

    async def check_for_updates(self) -> list[InboxEntry]:
        """Read the inbox and return the head entry if it changed."""
        if self.page is None:
            msg = "Watcher is not initialized"
            raise MonitorError(msg)

        snapshot = await self.page.read_inbox()
        if not snapshot.ok:
            msg = f"Could not read inbox ({snapshot.kind}): {snapshot.detail}"
            raise MonitorError(msg)

        change = detect(snapshot.value or [], self.last_seen)
        if not change.changed or change.entry is None:
            return []

        # Recorded before the visit so a failed visit is not retried every poll
        self.last_seen = change.fingerprint
        return [change.entry]

    async def process_item(self, item: InboxEntry) -> None:
        if self.stop_requested or self._walker is None:
            return
        await self._walker.visit(item)
        await self.wait(self.timings.settle_delay)

    async def run(self) -> None:
        """Poll until a stop request or until the page becomes unusable."""
        if self.state is not MonitorState.ACTIVE:
            msg = f"Cannot run from state {self.state}"
            raise InitializationError(msg)
        try:
            await super().run()
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Enter STOPPED and release the browser. Safe to call twice."""
        self.request_stop()
        await self._release_provider()
        if self.state is not MonitorState.STOPPED:
            self.state = MonitorState.STOPPED
            self.logger.info("Monitoring run stopped")

    async def _release_provider(self) -> None:
        provider, self._provider = self._provider, None
        self.page = None
        self._walker = None
        if provider is None:
            return
        try:
            await provider.close()
        except Exception:
            self.logger.exception("Error closing browser")
