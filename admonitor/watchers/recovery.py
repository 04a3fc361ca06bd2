"""Recovery controller: keeps exactly one monitoring run alive.

Retries failed initializations with a fixed backoff, and after too many
consecutive failures notifies the operator once, rotates to the next stored
session credential, and starts over. The only way out of ``run()`` is an
explicit stop request.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from admonitor.config import MonitorSettings
from admonitor.core.errors import CredentialUnavailableError, InitializationError
from admonitor.core.models import SessionCredential
from admonitor.notifications.email_notifier import EmailNotifier
from admonitor.storage.session_store import SessionStore
from admonitor.utils.logging_utils import audit, correlation_id
from admonitor.watchers.inbox_watcher import InboxWatcher, MonitorState

WatcherFactory = Callable[[SessionCredential], InboxWatcher]

ACTOR = "recovery_controller"


@dataclass
class MonitorHandle:
    """Ownership token for the one live monitoring run."""

    watcher: InboxWatcher
    credential: SessionCredential
    token: str = field(default_factory=correlation_id)


class RecoveryController:
    def __init__(
        self,
        settings: MonitorSettings,
        session_store: SessionStore,
        notifier: EmailNotifier,
        watcher_factory: WatcherFactory,
    ) -> None:
        self.timings = settings.timings
        self.operator_email = settings.operator_email
        self.logs_path: str | Path | None = settings.logs_path
        self.session_store = session_store
        self.notifier = notifier
        self._watcher_factory = watcher_factory
        self._handle: MonitorHandle | None = None
        self._stop_event = asyncio.Event()
        self.retry_count = 0
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def handle(self) -> MonitorHandle | None:
        return self._handle

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def status(self) -> dict[str, Any]:
        """Snapshot of the supervised run for status reporting."""
        handle = self._handle
        state = handle.watcher.state if handle is not None else MonitorState.IDLE
        return {
            "running": state is MonitorState.ACTIVE,
            "state": str(state),
            "session": handle.credential.name if handle is not None else None,
            "retry_count": self.retry_count,
            "max_retries": self.timings.max_retries,
            "last_seen": handle.watcher.last_seen if handle is not None else "",
            "poll_interval": self.timings.poll_interval,
            "stop_requested": self.stop_requested,
        }

    def request_stop(self) -> None:
        """Ask the controller and the live run to stop at the next safe point."""
        self.logger.info("Stop requested")
        self._stop_event.set()
        if self._handle is not None:
            self._handle.watcher.request_stop()

    async def start(self, credential: SessionCredential) -> MonitorHandle:
        """Create a new run for ``credential``, stopping any existing one first."""
        if self._handle is not None:
            await self.stop(self._handle)
        handle = MonitorHandle(watcher=self._watcher_factory(credential), credential=credential)
        self._handle = handle
        self.logger.debug("Run %s created with session '%s'", handle.token, credential.name)
        return handle

    async def stop(self, handle: MonitorHandle) -> None:
        """Stop the run behind ``handle`` and release ownership if it is current."""
        if handle is not self._handle:
            self.logger.warning("Stopping stale run %s", handle.token)
        await handle.watcher.stop()
        if handle is self._handle:
            self._handle = None

    async def _wait(self, seconds: float) -> None:
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except TimeoutError:
            pass

    async def run(self, initial_credential: SessionCredential | None = None) -> None:
        """Supervise monitoring runs until a stop is requested."""
        credential = initial_credential or await self._acquire_credential()
        self.retry_count = 0

        while credential is not None and not self.stop_requested:
            handle = await self.start(credential)
            if self.stop_requested:
                break
            try:
                await handle.watcher.initialize()
            except InitializationError as exc:
                credential = await self._on_initialization_failure(handle, exc)
                continue

            self.retry_count = 0
            await handle.watcher.run()
            await self.stop(handle)
            if self.stop_requested:
                break
            self.logger.warning(
                "Monitoring run ended without a stop request, restarting in %.0fs",
                self.timings.init_backoff,
            )
            await self._wait(self.timings.init_backoff)

        if self._handle is not None:
            await self.stop(self._handle)
        self.logger.info("Recovery controller stopped")

    async def _on_initialization_failure(
        self, handle: MonitorHandle, exc: InitializationError
    ) -> SessionCredential | None:
        """Count the failure; return the credential to try next (None to stop)."""
        credential = handle.credential
        self.retry_count += 1
        if self.retry_count < self.timings.max_retries:
            self.logger.warning(
                "Initialization failed (attempt %d/%d), retrying in %.0fs",
                self.retry_count,
                self.timings.max_retries,
                self.timings.init_backoff,
            )
            await self._wait(self.timings.init_backoff)
            return credential

        self.logger.error(
            "Session '%s' failed %d times in a row, rotating credentials",
            credential.name,
            self.retry_count,
        )
        await self.stop(handle)
        reason = f"Session '{credential.name}' failed to initialize {self.retry_count} times: {exc}"
        try:
            notified = await self.notifier.notify(self.operator_email, reason)
        except Exception:
            self.logger.exception("Operator notification failed, rotating anyway")
            notified = False
        audit(
            self.logs_path, "actions", ACTOR, "retries_exhausted", credential.name,
            "notified" if notified else "notify_failed",
            retries=self.retry_count,
        )

        await self._wait(self.timings.rotation_cooldown)
        if self.stop_requested:
            return None
        self.retry_count = 0
        return await self._acquire_credential()

    async def _next_credential(self) -> SessionCredential:
        """Take the least recently used credential from the store.

        Raises:
            CredentialUnavailableError: If the store is empty or unreadable.
        """
        try:
            credential = await asyncio.to_thread(self.session_store.least_recently_used)
        except sqlite3.Error as exc:
            msg = f"Session store unavailable: {exc}"
            raise CredentialUnavailableError(msg) from exc
        if credential is None:
            msg = "No session credential stored"
            raise CredentialUnavailableError(msg)
        return credential

    async def _acquire_credential(self) -> SessionCredential | None:
        """Poll the store until a credential is available or a stop is requested."""
        while not self.stop_requested:
            try:
                credential = await self._next_credential()
            except CredentialUnavailableError as exc:
                self.logger.error(
                    "%s, checking again in %.0fs",
                    exc,
                    self.timings.credential_retry_delay,
                )
                audit(self.logs_path, "errors", ACTOR, "credential_acquire", "session_store", "unavailable")
                await self._wait(self.timings.credential_retry_delay)
                continue

            self.logger.info("Using session '%s'", credential.name)
            audit(self.logs_path, "actions", ACTOR, "credential_acquire", credential.name, "success")
            return credential
        return None
