"""Environment-driven configuration.

Values come from ``config/.env`` (project convention) and the process
environment. Polling and recovery timings live in ``MonitorTimings`` so tests
and deployments can tune them without touching the state machines.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_TARGET_URL = "https://www.instagram.com/direct/inbox/"
DEFAULT_ENV_PATH = Path(__file__).resolve().parents[1] / "config" / ".env"


@dataclass(frozen=True)
class MonitorTimings:
    """Fixed waits and limits of the monitor, in seconds unless noted."""

    poll_interval: float = 5.0
    settle_delay: float = 2.0
    error_cooldown: float = 10.0
    init_backoff: float = 30.0
    max_retries: int = 5
    rotation_cooldown: float = 120.0
    credential_retry_delay: float = 300.0
    navigation_timeout_ms: int = 30_000
    selector_timeout_ms: int = 10_000
    page_render_delay: float = 5.0
    scroll_steps: int = 15
    scroll_delay: float = 0.2
    scroll_distance_px: int = 100


@dataclass(frozen=True)
class MonitorSettings:
    target_url: str = DEFAULT_TARGET_URL
    recipient_identity: str = "Current User"
    operator_email: str | None = None
    session_update_url: str = ""
    session_id: str | None = None
    cookie_name: str = "sessionid"
    cookie_domain: str = ".instagram.com"
    db_path: str = "data/admonitor.db"
    logs_path: str = "logs"
    message_api_url: str | None = None
    headless: bool = True
    dry_run: bool = True
    gmail_credentials_path: str = "config/credentials.json"
    gmail_token_path: str = "config/token.json"
    host: str = "127.0.0.1"
    port: int = 3000
    log_level: str = "INFO"
    timings: MonitorTimings = field(default_factory=MonitorTimings)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_optional(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def load_timings() -> MonitorTimings:
    defaults = MonitorTimings()
    return MonitorTimings(
        poll_interval=float(os.getenv("POLL_INTERVAL", defaults.poll_interval)),
        settle_delay=float(os.getenv("SETTLE_DELAY", defaults.settle_delay)),
        error_cooldown=float(os.getenv("ERROR_COOLDOWN", defaults.error_cooldown)),
        init_backoff=float(os.getenv("INIT_BACKOFF", defaults.init_backoff)),
        max_retries=int(os.getenv("MAX_RETRIES", defaults.max_retries)),
        rotation_cooldown=float(os.getenv("ROTATION_COOLDOWN", defaults.rotation_cooldown)),
        credential_retry_delay=float(
            os.getenv("CREDENTIAL_RETRY_DELAY", defaults.credential_retry_delay)
        ),
    )


def load_settings(env_path: str | Path | None = None) -> MonitorSettings:
    """Load ``.env`` (if present) and build settings from the environment."""
    load_dotenv(env_path or DEFAULT_ENV_PATH)

    return MonitorSettings(
        target_url=os.getenv("TARGET_URL", DEFAULT_TARGET_URL),
        recipient_identity=os.getenv("RECIPIENT_USERNAME", "Current User"),
        operator_email=_env_optional("OPERATOR_EMAIL"),
        session_update_url=os.getenv("SESSION_UPDATE_URL", ""),
        session_id=_env_optional("SESSIONID"),
        db_path=os.getenv("DB_PATH", "data/admonitor.db"),
        logs_path=os.getenv("LOGS_PATH", "logs"),
        message_api_url=_env_optional("MESSAGE_API_URL"),
        headless=_env_bool("HEADLESS", True),
        dry_run=_env_bool("DRY_RUN", True),
        gmail_credentials_path=os.getenv("GMAIL_CREDENTIALS_PATH", "config/credentials.json"),
        gmail_token_path=os.getenv("GMAIL_TOKEN_PATH", "config/token.json"),
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "3000")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        timings=load_timings(),
    )
