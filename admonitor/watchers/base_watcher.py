"""Abstract base class for polling watchers."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any


class BaseWatcher(ABC):
    """Base class for watchers that poll an external source on a fixed interval.

    Subclasses must implement:
        - check_for_updates() -> list of new items
        - process_item(item) -> handle one item

    A stop request is honoured at safe points only: between iterations,
    between items, and during waits. Work already in progress is never
    interrupted.
    """

    def __init__(self, check_interval: float = 5.0, error_cooldown: float = 10.0):
        self.check_interval = check_interval
        self.error_cooldown = error_cooldown
        self.logger = logging.getLogger(self.__class__.__name__)
        self._stop_event = asyncio.Event()

    @abstractmethod
    async def check_for_updates(self) -> list[Any]:
        """Return list of new items to process."""

    @abstractmethod
    async def process_item(self, item: Any) -> None:
        """Handle one item returned by check_for_updates()."""

    async def is_healthy(self) -> bool:
        """Whether the source can still be polled. The loop ends when this is False."""
        return True

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def request_stop(self) -> None:
        self._stop_event.set()

    async def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``. Returns True if woken early by a stop request."""
        if seconds <= 0:
            return self.stop_requested
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except TimeoutError:
            return False
        return True

    async def poll_once(self) -> int:
        """Run a single check and process its items. Returns the item count."""
        items = await self.check_for_updates()
        for item in items:
            if self.stop_requested:
                break
            await self.process_item(item)
        return len(items)

    async def run(self) -> None:
        """Main polling loop. Override for custom behavior."""
        self.logger.info("Starting %s (interval: %.1fs)", self.__class__.__name__, self.check_interval)
        while not self.stop_requested:
            if not await self.is_healthy():
                self.logger.warning("%s source is no longer usable, leaving loop", self.__class__.__name__)
                break
            try:
                await self.poll_once()
            except Exception:
                self.logger.exception("Error in %s polling cycle", self.__class__.__name__)
                await self.wait(self.error_cooldown)
                continue
            await self.wait(self.check_interval)
        self.logger.info("%s loop exited", self.__class__.__name__)
