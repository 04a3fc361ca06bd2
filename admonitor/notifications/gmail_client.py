"""Send-only Gmail API client for operator alerts.

Blocking (google-api-python-client); the notifier calls it through
``asyncio.to_thread()``.
"""

from __future__ import annotations

import base64
import logging
import time
from email.message import EmailMessage
from pathlib import Path
from typing import Any

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/gmail.send"]

SEND_ATTEMPTS = 3
BASE_DELAY_SECONDS = 1.0
TRANSIENT_STATUSES = frozenset({429, 500, 502, 503})


def load_token(token_path: Path) -> Credentials | None:
    """Read the stored OAuth token, refreshing and re-saving it when expired."""
    if not token_path.exists():
        return None
    creds = Credentials.from_authorized_user_file(str(token_path), SCOPES)
    if creds.expired and creds.refresh_token:
        logger.info("Gmail token expired, refreshing")
        creds.refresh(Request())
        token_path.write_text(creds.to_json(), encoding="utf-8")
    return creds if creds.valid else None


def encode_alert(to: str, subject: str, body: str, html: str | None = None) -> str:
    """Build the base64url ``raw`` payload the Gmail send endpoint expects."""
    message = EmailMessage()
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)
    if html:
        message.add_alternative(html, subtype="html")
    return base64.urlsafe_b64encode(message.as_bytes()).decode()


def _status_of(exc: HttpError) -> int:
    return getattr(exc.resp, "status", 0)


class GmailClient:
    """Sends alert emails from the authorized account."""

    def __init__(
        self,
        credentials_path: str = "config/credentials.json",
        token_path: str = "config/token.json",
    ) -> None:
        self.credentials_path = Path(credentials_path)
        self.token_path = Path(token_path)
        self.service: Any = None

    def authenticate(self) -> None:
        """Build the API service from the saved token.

        Raises:
            FileNotFoundError: If there is no usable token.
        """
        creds = load_token(self.token_path)
        if creds is None:
            msg = f"No valid Gmail token at {self.token_path}. Run with --auth-only to authorize."
            raise FileNotFoundError(msg)
        self.service = build("gmail", "v1", credentials=creds)
        logger.debug("Gmail service ready")

    def authorize_interactive(self) -> None:
        """Run the browser consent flow once and store the resulting token."""
        if not self.credentials_path.exists():
            msg = f"No credentials file at {self.credentials_path}"
            raise FileNotFoundError(msg)

        flow = InstalledAppFlow.from_client_secrets_file(str(self.credentials_path), SCOPES)
        creds = flow.run_local_server(port=0)
        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        self.token_path.write_text(creds.to_json(), encoding="utf-8")
        self.service = build("gmail", "v1", credentials=creds)
        logger.info("Gmail token saved to %s", self.token_path)

    def send_message(self, to: str, subject: str, body: str, html: str | None = None) -> dict[str, str]:
        """Send one email; ``html`` is attached as an alternative part.

        A 401 rebuilds the service from the token and tries again; 429/5xx
        and network errors back off exponentially. Anything else propagates.

        Returns:
            ``{"message_id": ..., "thread_id": ...}``
        """
        if self.service is None:
            self.authenticate()
        raw = encode_alert(to, subject, body, html)

        for attempt in range(1, SEND_ATTEMPTS + 1):
            last_try = attempt == SEND_ATTEMPTS
            try:
                sent = self.service.users().messages().send(userId="me", body={"raw": raw}).execute()
                return {"message_id": sent["id"], "thread_id": sent.get("threadId", "")}
            except HttpError as exc:
                status = _status_of(exc)
                if last_try or (status != 401 and status not in TRANSIENT_STATUSES):
                    raise
                if status == 401:
                    logger.warning("Gmail rejected the token (attempt %d), re-authenticating", attempt)
                    self.service = None
                    self.authenticate()
                    continue
                self._back_off(attempt, f"HTTP {status}")
            except (ConnectionError, TimeoutError) as exc:
                if last_try:
                    raise
                self._back_off(attempt, str(exc))

        raise RuntimeError("unreachable")  # pragma: no cover

    @staticmethod
    def _back_off(attempt: int, cause: str) -> None:
        delay = BASE_DELAY_SECONDS * 2 ** (attempt - 1)
        logger.warning("Gmail send failed (%s, attempt %d), retrying in %.1fs", cause, attempt, delay)
        time.sleep(delay)
