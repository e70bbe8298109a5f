"""SMTP email notifier.

smtplib is blocking, so every SMTP call runs in a worker thread. One
connection is opened lazily and reused for the lifetime of the notifier;
use it as ``async with EmailNotifier(config) as notifier:`` so the connection
is closed when the check finishes.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from collections.abc import Callable
from email.message import EmailMessage

from crypto_alerter.core.config import EmailConfig
from crypto_alerter.core.exceptions import NotificationError
from crypto_alerter.notify.base import AlertMessage

logger = logging.getLogger(__name__)


class EmailNotifier:
    """Sends alert emails through an SMTP relay.

    Parameters
    ----------
    config : EmailConfig
        Relay address, credentials, sender and dry-run switch.
    smtp_factory : Callable[..., smtplib.SMTP]
        Connection constructor, ``smtplib.SMTP`` by default.
    """

    def __init__(
        self,
        config: EmailConfig,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ) -> None:
        self._config = config
        self._smtp_factory = smtp_factory
        self._smtp: smtplib.SMTP | None = None

    async def __aenter__(self) -> EmailNotifier:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Quit the SMTP session if one is open."""
        smtp, self._smtp = self._smtp, None
        if smtp is None:
            return
        try:
            await asyncio.to_thread(smtp.quit)
        except (smtplib.SMTPException, OSError) as e:
            logger.debug("Ignoring error while closing SMTP session: %s", e)

    async def notify(
        self,
        recipient: str,
        asset_name: str,
        asset_symbol: str,
        previous_price: float,
        current_price: float,
        percentage_change: float,
    ) -> bool:
        """Email a price-rise alert. Returns False instead of raising on failure."""
        try:
            rendered = AlertMessage.build(
                asset_name, asset_symbol, previous_price, current_price, percentage_change
            )
            # Header injection (CR/LF in the recipient) raises ValueError here.
            message = self._compose(recipient, rendered)
        except ValueError as e:
            logger.error("Cannot build alert email for %r: %s", recipient, e)
            return False

        if self._config.dry_run:
            logger.info(
                "[dry run] Would email %s: %s", recipient, rendered.subject
            )
            return True

        try:
            await asyncio.to_thread(self._send, message)
        except NotificationError as e:
            logger.error("Error sending email to %s: %s", recipient, e)
            await self.close()
            return False

        logger.info("Alert email sent to %s for %s", recipient, asset_name)
        return True

    def _compose(self, recipient: str, rendered: AlertMessage) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._config.from_address
        message["To"] = recipient
        message["Subject"] = rendered.subject
        message.set_content(rendered.text)
        message.add_alternative(rendered.html, subtype="html")
        return message

    def _send(self, message: EmailMessage) -> None:
        """Deliver one message, opening the SMTP session on first use."""
        try:
            self._connection().send_message(message)
        except (smtplib.SMTPException, OSError, ValueError) as e:
            raise NotificationError(
                f"SMTP delivery failed: {e}",
                context={"recipient": message["To"]},
            ) from e

    def _connection(self) -> smtplib.SMTP:
        if self._smtp is not None:
            return self._smtp

        cfg = self._config
        smtp = self._smtp_factory(cfg.smtp_host, cfg.smtp_port, timeout=cfg.timeout)
        try:
            if cfg.use_tls:
                smtp.starttls(context=ssl.create_default_context())
            if cfg.username and cfg.password:
                smtp.login(cfg.username, cfg.password)
        except (smtplib.SMTPException, OSError):
            smtp.close()
            raise
        self._smtp = smtp
        return smtp
