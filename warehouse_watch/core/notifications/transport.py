"""
Email Transport

SMTP delivery with a per-day outbound message quota.

The transport owns the quota counter: it counts sends per UTC day and reports
what is left. Callers only read the remaining quota. With a state file the count
is shared by every run on the same day; without one it lasts for this process.
"""

import json
import os
import smtplib
import ssl
import threading
from datetime import date, datetime, timezone
from email.mime.text import MIMEText
from pathlib import Path
from typing import List, Optional, Protocol, runtime_checkable

from warehouse_watch.app.config import Settings, settings as default_settings
from warehouse_watch.core.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationError(Exception):
    """Base exception for notification errors"""
    pass


class NotificationProviderError(NotificationError):
    """Raised when the mail provider rejects or cannot deliver a message"""
    pass


@runtime_checkable
class MailTransport(Protocol):
    """Interface of the outbound notification service."""

    def send(self, to: List[str], subject: str, body: str) -> None:
        ...

    def remaining_daily_quota(self) -> int:
        ...


class SmtpMailTransport:
    """
    Plain-text email over SMTP.

    Supports:
    - STARTTLS or plain connections
    - Optional SMTP login
    - A daily send quota reset at UTC midnight
    """

    def __init__(
        self,
        smtp_host: Optional[str],
        from_address: Optional[str],
        smtp_port: int = 587,
        smtp_username: Optional[str] = None,
        smtp_password: Optional[str] = None,
        use_tls: bool = True,
        daily_quota: int = 100,
        timeout_seconds: int = 30,
        quota_state_path: Optional[str] = None
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_username = smtp_username
        self.smtp_password = smtp_password
        self.use_tls = use_tls
        self.from_address = from_address
        self.daily_quota = daily_quota
        self.timeout_seconds = timeout_seconds
        self.quota_state_path = Path(quota_state_path) if quota_state_path else None

        self._lock = threading.Lock()
        self._quota_day: date = self._today()
        self._sent_today = self._read_state(self._quota_day)

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "SmtpMailTransport":
        """Build a transport from the email_* settings."""
        config = config or default_settings
        return cls(
            smtp_host=config.email_smtp_host,
            from_address=config.email_from_address,
            smtp_port=config.email_smtp_port,
            smtp_username=config.email_smtp_username,
            smtp_password=config.email_smtp_password,
            use_tls=config.email_smtp_use_tls,
            daily_quota=config.email_daily_quota,
            quota_state_path=config.email_quota_state_path
        )

    @staticmethod
    def _today() -> date:
        return datetime.now(timezone.utc).date()

    def _read_state(self, day: date) -> int:
        """Sends already recorded in the state file for `day` (0 if absent or another day)."""
        if self.quota_state_path is None or not self.quota_state_path.exists():
            return 0
        try:
            state = json.loads(self.quota_state_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(
                f"Ignoring unreadable quota state file {self.quota_state_path}: {e}",
                extra={"quota_state_path": str(self.quota_state_path)}
            )
            return 0
        if state.get("day") != day.isoformat():
            return 0
        return int(state.get("sent", 0))

    def _write_state(self) -> None:
        if self.quota_state_path is None:
            return
        tmp_path = self.quota_state_path.with_suffix(".tmp")
        try:
            self.quota_state_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(
                json.dumps({"day": self._quota_day.isoformat(), "sent": self._sent_today}),
                encoding="utf-8"
            )
            os.replace(tmp_path, self.quota_state_path)
        except OSError as e:
            # The mail already went out; only later runs lose this send from their count
            logger.warning(
                f"Could not save quota state to {self.quota_state_path}: {e}",
                extra={"quota_state_path": str(self.quota_state_path)}
            )

    def _roll_quota_day(self) -> None:
        today = self._today()
        if today != self._quota_day:
            self._quota_day = today
            self._sent_today = 0
        # Other runs on the same day may have sent since we last looked
        self._sent_today = max(self._sent_today, self._read_state(self._quota_day))

    def remaining_daily_quota(self) -> int:
        with self._lock:
            self._roll_quota_day()
            return max(self.daily_quota - self._sent_today, 0)

    def send(self, to: List[str], subject: str, body: str) -> None:
        """
        Send a plain-text email.

        Raises:
            NotificationProviderError: Missing SMTP configuration or SMTP failure
        """
        if not self.smtp_host or not self.from_address:
            raise NotificationProviderError("SMTP host and from address must be configured")

        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = self.from_address
        msg["To"] = ", ".join(to)

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout_seconds) as server:
                if self.use_tls:
                    server.starttls(context=ssl.create_default_context())

                if self.smtp_username and self.smtp_password:
                    server.login(self.smtp_username, self.smtp_password)

                server.send_message(msg, to_addrs=to)

        except smtplib.SMTPException as e:
            raise NotificationProviderError(f"SMTP error: {str(e)}") from e
        except OSError as e:
            raise NotificationProviderError(f"Email send error: {str(e)}") from e

        with self._lock:
            self._roll_quota_day()
            self._sent_today += 1
            self._write_state()

        logger.info(
            f"Email sent successfully to {len(to)} recipient(s)",
            extra={"recipient_count": len(to), "subject": subject}
        )
