"""Command-line entry point for the ad-reply monitor.

Usage:
    # Supervised monitor (retries, credential rotation, operator alerts)
    uv run python -m admonitor

    # Monitor plus the HTTP/MCP message server
    uv run python -m admonitor --serve

    # Message server only
    uv run python -m admonitor --api-only

    # Single initialize + poll cycle
    uv run python -m admonitor --once

    # Store a session credential for rotation
    uv run python -m admonitor --add-session backup-1 <sessionid>

    # Gmail OAuth flow for operator alerts
    uv run python -m admonitor --auth-only
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Callable
from functools import partial

import uvicorn

from admonitor.config import MonitorSettings, load_settings
from admonitor.core.errors import CredentialUnavailableError, MonitorError
from admonitor.core.models import SessionCredential
from admonitor.notifications import EmailNotifier, GmailClient
from admonitor.storage import ApiMessageGateway, MessageGateway, MessageStore, SessionStore
from admonitor.watchers.document import launch_playwright
from admonitor.watchers.inbox_watcher import InboxWatcher
from admonitor.watchers.recovery import RecoveryController

logger = logging.getLogger(__name__)

ENV_SESSION_NAME = "env"


def build_gateway(settings: MonitorSettings) -> MessageGateway:
    """Remote ``/api/message`` when MESSAGE_API_URL is set, else the local store."""
    if settings.message_api_url:
        logger.info("Forwarding ad replies to %s", settings.message_api_url)
        return ApiMessageGateway(settings.message_api_url)
    return MessageStore.open(settings.db_path)


def build_notifier(settings: MonitorSettings) -> EmailNotifier:
    gmail = GmailClient(
        credentials_path=settings.gmail_credentials_path,
        token_path=settings.gmail_token_path,
    )
    return EmailNotifier(
        gmail,
        update_url=settings.session_update_url,
        dry_run=settings.dry_run,
        logs_path=settings.logs_path,
    )


def build_watcher(
    settings: MonitorSettings, credential: SessionCredential, gateway: MessageGateway
) -> InboxWatcher:
    provider_factory = partial(launch_playwright, headless=settings.headless)
    return InboxWatcher(settings, credential, gateway, provider_factory)


def build_controller(settings: MonitorSettings) -> RecoveryController:
    gateway = build_gateway(settings)
    return RecoveryController(
        settings,
        SessionStore.open(settings.db_path),
        build_notifier(settings),
        watcher_factory=lambda credential: build_watcher(settings, credential, gateway),
    )


def initial_credential(settings: MonitorSettings) -> SessionCredential | None:
    """The SESSIONID from the environment, if configured."""
    if settings.session_id:
        return SessionCredential(name=ENV_SESSION_NAME, token=settings.session_id)
    return None


def build_server(settings: MonitorSettings) -> uvicorn.Server:
    # Imported here: the server module configures logging and settings on import
    from admonitor.mcp_servers.message_server import create_app

    config = uvicorn.Config(
        create_app(),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
    return uvicorn.Server(config)


def _install_signal_handlers(callback: Callable[[], None]) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, callback)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            logger.debug("Signal handler for %s not supported", sig)


async def run_monitor(settings: MonitorSettings, serve: bool = False) -> None:
    """Run the supervised monitor until SIGINT/SIGTERM."""
    controller = build_controller(settings)
    server = build_server(settings) if serve else None

    def _stop() -> None:
        controller.request_stop()
        if server is not None:
            server.should_exit = True

    _install_signal_handlers(_stop)

    if server is None:
        await controller.run(initial_credential(settings))
        return

    from admonitor.mcp_servers.message_server import register_status_source

    async def _serve() -> None:
        await server.serve()
        controller.request_stop()

    register_status_source(controller.status)
    logger.info("Message server listening on http://%s:%d/api/message", settings.host, settings.port)
    try:
        await asyncio.gather(controller.run(initial_credential(settings)), _serve())
    finally:
        register_status_source(None)


async def run_api(settings: MonitorSettings) -> None:
    server = build_server(settings)
    logger.info("Message server listening on http://%s:%d/api/message", settings.host, settings.port)
    await server.serve()


async def run_once(settings: MonitorSettings) -> int:
    """Initialize once, poll once, and shut down. Returns the number of changes seen."""
    credential = initial_credential(settings)
    if credential is None:
        credential = await asyncio.to_thread(SessionStore.open(settings.db_path).least_recently_used)
    if credential is None:
        msg = "No session credential: set SESSIONID or use --add-session"
        raise CredentialUnavailableError(msg)

    watcher = build_watcher(settings, credential, build_gateway(settings))
    try:
        await watcher.initialize()
        return await watcher.poll_once()
    finally:
        await watcher.stop()


# ── CLI Entry Point ─────────────────────────────────────────────────


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Ad-reply monitor - captures 'replied to an ad' events from the DM inbox"
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--serve",
        action="store_true",
        help="Also host the /api/message HTTP endpoint and MCP server",
    )
    mode.add_argument(
        "--api-only",
        action="store_true",
        help="Host only the message server, without monitoring",
    )
    mode.add_argument(
        "--once",
        action="store_true",
        help="Run a single check and exit",
    )
    mode.add_argument(
        "--add-session",
        nargs=2,
        metavar=("NAME", "TOKEN"),
        help="Store a session credential for rotation and exit",
    )
    mode.add_argument(
        "--auth-only",
        action="store_true",
        help="Authorize Gmail for operator alerts and exit",
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Path to the .env file (default: config/.env)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the ad-reply monitor."""
    args = _parse_args(argv)
    settings = load_settings(args.env_file)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    if args.add_session:
        name, token = args.add_session
        SessionStore.open(settings.db_path).add_session(name, token)
        logger.info("Session '%s' stored in %s", name, settings.db_path)
        return

    if args.auth_only:
        build_notifier(settings).gmail.authorize_interactive()
        logger.info("Authentication complete. Token saved.")
        return

    if args.api_only:
        asyncio.run(run_api(settings))
        return

    if args.once:
        logger.info("Running single inbox check...")
        try:
            count = asyncio.run(run_once(settings))
        except MonitorError as exc:
            logger.error("Check failed: %s", exc)
            sys.exit(1)
        logger.info("Check complete. %d inbox change(s) processed.", count)
        return

    logger.info(
        "Starting ad-reply monitor (interval: %.0fs, headless: %s, dry_run: %s)",
        settings.timings.poll_interval,
        settings.headless,
        settings.dry_run,
    )
    asyncio.run(run_monitor(settings, serve=args.serve))


if __name__ == "__main__":
    main()
