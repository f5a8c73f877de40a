"""
Notification System

Email alerts for checks that returned rows.

Usage:
    transport = SmtpMailTransport.from_settings()
    notifier = Notifier(transport, config_source="configs/checks/checks.yml")
    outcome = notifier.notify("Dup check", report, ["ops@example.com"])
"""

from .transport import (
    MailTransport,
    SmtpMailTransport,
    NotificationError,
    NotificationProviderError,
)
from .notifier import Notifier

__all__ = [
    "MailTransport",
    "SmtpMailTransport",
    "NotificationError",
    "NotificationProviderError",
    "Notifier",
]
