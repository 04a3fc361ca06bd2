"""Shared fixtures: near-zero timings and a fake document provider."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from admonitor.config import MonitorSettings, MonitorTimings

FAST_TIMINGS = MonitorTimings(
    poll_interval=0.01,
    settle_delay=0,
    error_cooldown=0.01,
    init_backoff=0,
    max_retries=5,
    rotation_cooldown=0,
    credential_retry_delay=0.01,
    navigation_timeout_ms=1000,
    selector_timeout_ms=50,
    page_render_delay=0,
    scroll_steps=3,
    scroll_delay=0,
)


@pytest.fixture
def timings() -> MonitorTimings:
    return FAST_TIMINGS


@pytest.fixture
def settings(tmp_path: Path) -> MonitorSettings:
    return MonitorSettings(
        target_url="https://www.instagram.com/direct/inbox/",
        recipient_identity="shop_owner",
        operator_email="ops@example.com",
        db_path=str(tmp_path / "admonitor.db"),
        logs_path=str(tmp_path / "logs"),
        timings=FAST_TIMINGS,
    )


@pytest.fixture
def provider() -> MagicMock:
    """A DocumentProvider double sitting on the inbox."""
    fake = MagicMock()
    fake.navigate = AsyncMock()
    fake.set_credential_cookie = AsyncMock()
    fake.evaluate = AsyncMock(return_value=None)
    fake.close = AsyncMock()
    fake.is_usable.return_value = True
    fake.current_url.return_value = "https://www.instagram.com/direct/inbox/"
    return fake


@pytest.fixture
def script_router():
    """Build ``evaluate`` side effects that answer by script signature.

    Keys are fragments of a script's parameter list (e.g. ``"{ rows }"``);
    values are returned, called with the script argument when callable, or
    raised when they are exceptions.
    """

    def _build(responses: dict[str, Any]):
        async def _evaluate(script: str, arg: Any = None) -> Any:
            for fragment, response in responses.items():
                if fragment in script:
                    if isinstance(response, BaseException):
                        raise response
                    return response(arg) if callable(response) else response
            return None

        return _evaluate

    return _build
