"""
Alert Notifier

Sends a check report to its recipients, unless the daily quota is used up.
"""

from typing import List, Optional

from warehouse_watch.app.config import settings
from warehouse_watch.core.checks.models import NotifyOutcome
from warehouse_watch.core.notifications.transport import MailTransport, NotificationError
from warehouse_watch.core.utils.logging import get_logger, safe_error_log

logger = get_logger(__name__)


class Notifier:
    """
    Best-effort alert delivery.

    A skipped or failed alert never raises; the outcome says what happened.
    No retries and no queueing of skipped alerts.
    """

    def __init__(
        self,
        transport: MailTransport,
        config_source: str = "",
        subject_prefix: Optional[str] = None,
        app_name: Optional[str] = None,
        dry_run: bool = False
    ):
        """
        Initialize notifier.

        Args:
            transport: Outbound mail service
            config_source: Where the checks came from, quoted in the body trailer
            subject_prefix: Prepended to the check title (defaults to settings)
            app_name: Sender name used in the trailer (defaults to settings)
            dry_run: Build messages but never hand them to the transport
        """
        self.transport = transport
        self.config_source = config_source
        self.subject_prefix = subject_prefix if subject_prefix is not None else settings.email_subject_prefix
        self.app_name = app_name or settings.app_name
        self.dry_run = dry_run

    def build_subject(self, title: str) -> str:
        return f"{self.subject_prefix} {title}" if self.subject_prefix else title

    def build_body(self, report: str) -> str:
        trailer = f"Sent by {self.app_name} from check config: {self.config_source or '<unknown>'}"
        return f"{report}\n\n{trailer}"

    def notify(self, title: str, body: str, recipients: List[str]) -> NotifyOutcome:
        """
        Send the formatted report for one check.

        Args:
            title: Check title
            body: Formatted query result
            recipients: Destination addresses

        Returns:
            NotifyOutcome describing whether the message went out
        """
        if not recipients:
            logger.warning(f"No recipients for alert '{title}', skipping", extra={"check": title})
            return NotifyOutcome.SKIPPED_NO_RECIPIENTS

        subject = self.build_subject(title)

        if self.dry_run:
            logger.info(
                f"Dry run: would send '{subject}' to {len(recipients)} recipient(s)",
                extra={"check": title}
            )
            return NotifyOutcome.SKIPPED_DRY_RUN

        remaining = self.transport.remaining_daily_quota()
        if remaining <= 0:
            logger.warning(
                f"Daily email quota exhausted, alert '{title}' not sent",
                extra={"check": title, "remaining_quota": remaining}
            )
            return NotifyOutcome.SKIPPED_QUOTA_EXHAUSTED

        try:
            self.transport.send(recipients, subject, self.build_body(body))
        except NotificationError as e:
            safe_error_log(logger, f"Failed to send alert '{title}'", e, check=title)
            return NotifyOutcome.SEND_FAILED

        return NotifyOutcome.SENT
