"""Document provider: the live browser page the monitor reads and drives.

The core only needs a handful of primitives (navigate, inject the session
cookie, evaluate a script, check the page is still usable, close), captured
by ``DocumentProvider``. ``PlaywrightDocumentProvider`` is the Chromium
implementation.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)

# Use a real Chrome user-agent to avoid browser detection
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/133.0.0.0 Safari/537.36"
)

BROWSER_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-gpu",
]

# Console noise the remote page emits on every load
_IGNORED_CONSOLE_FRAGMENTS = ("Permissions-Policy header", "Origin trial controlled feature")


class DocumentProvider(Protocol):
    """Capability the monitor uses to reach the live document."""

    async def navigate(self, url: str, timeout_ms: int, wait_until: str = "networkidle") -> None:
        ...

    async def set_credential_cookie(self, name: str, value: str, domain: str) -> None:
        ...

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        ...

    def current_url(self) -> str:
        ...

    def is_usable(self) -> bool:
        ...

    async def close(self) -> None:
        ...


class PlaywrightDocumentProvider:
    """Chromium page driven through Playwright's async API."""

    def __init__(
        self,
        headless: bool = True,
        user_agent: str = DEFAULT_USER_AGENT,
        viewport: dict[str, int] | None = None,
    ) -> None:
        self.headless = headless
        self.user_agent = user_agent
        self.viewport = viewport or {"width": 1280, "height": 720}
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._page: Any = None

    async def launch(self) -> None:
        """Start Playwright, a fresh browser context, and one page."""
        from playwright.async_api import async_playwright

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.headless,
            args=BROWSER_ARGS,
        )
        self._context = await self._browser.new_context(
            user_agent=self.user_agent,
            viewport=self.viewport,
        )
        self._page = await self._context.new_page()
        self._page.on("console", self._on_console)
        self._page.on("pageerror", self._on_page_error)
        logger.info("Browser launched (headless: %s)", self.headless)

    def _on_console(self, message: Any) -> None:
        text = message.text
        if not any(fragment in text for fragment in _IGNORED_CONSOLE_FRAGMENTS):
            logger.debug("Page console: %s", text)

    def _on_page_error(self, error: Any) -> None:
        logger.debug("Page error: %s", error)

    async def navigate(self, url: str, timeout_ms: int, wait_until: str = "networkidle") -> None:
        assert self._page is not None
        logger.debug("Navigating to %s ...", url)
        await self._page.goto(url, wait_until=wait_until, timeout=timeout_ms)

    async def set_credential_cookie(self, name: str, value: str, domain: str) -> None:
        assert self._context is not None
        await self._context.add_cookies([
            {
                "name": name,
                "value": value,
                "domain": domain,
                "path": "/",
                "secure": True,
                "httpOnly": True,
            }
        ])
        logger.debug("Session cookie '%s' injected for %s", name, domain)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        assert self._page is not None
        return await self._page.evaluate(script, arg)

    def current_url(self) -> str:
        return self._page.url if self._page is not None else ""

    def is_usable(self) -> bool:
        return self._page is not None and not self._page.is_closed()

    async def close(self) -> None:
        """Close the browser and stop Playwright; safe to call twice.

        Every step runs even if an earlier one fails (a crashed page often
        fails ``context.close()``); the error is re-raised afterwards.
        """
        context, browser, driver = self._context, self._browser, self._playwright
        self._context = self._browser = self._playwright = self._page = None
        try:
            if context:
                await context.close()
        finally:
            try:
                if browser:
                    await browser.close()
            finally:
                if driver:
                    await driver.stop()


async def launch_playwright(headless: bool = True) -> PlaywrightDocumentProvider:
    """Provider factory used by the monitor for each monitoring run."""
    provider = PlaywrightDocumentProvider(headless=headless)
    try:
        await provider.launch()
    except Exception:
        await provider.close()
        raise
    return provider
