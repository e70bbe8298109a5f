"""Alert delivery: notifier protocol, message rendering, SMTP implementation."""

from crypto_alerter.notify.base import AlertMessage, Notifier, format_price
from crypto_alerter.notify.smtp import EmailNotifier

__all__ = [
    "AlertMessage",
    "EmailNotifier",
    "Notifier",
    "format_price",
]
