"""SMTP delivery of notifications."""

from __future__ import annotations

import asyncio
import smtplib
import ssl
from email.errors import MessageError
from email.headerregistry import Address
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Iterable

import structlog

from ..config import SmtpConfig
from ..engine.compose import Notification
from ..errors import DeliveryError

MAX_PARALLEL_SENDS = 2


class Mailer:
    """Send notifications through one SMTP server.

    Each message uses its own SMTP session so a failure only affects that
    message; failed messages are returned to the caller as unsent.
    """

    def __init__(
        self,
        smtp: SmtpConfig,
        default_to: str,
        *,
        parallel: int = MAX_PARALLEL_SENDS,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.smtp = smtp
        self.default_to = default_to
        self.parallel = parallel
        self.from_address = smtp.from_address or default_to
        self.logger = logger or structlog.get_logger("feedmailer.mailer")

    def build_message(self, notification: Notification) -> EmailMessage:
        message = EmailMessage()
        username, _, domain = self.from_address.partition("@")
        message["From"] = Address(display_name=notification.sender, username=username, domain=domain)
        message["To"] = notification.to or self.default_to
        message["Subject"] = notification.subject
        message["Date"] = formatdate(localtime=True)
        message["Message-ID"] = make_msgid(domain=domain or None)
        message.set_content(notification.body, subtype="html")
        return message

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.smtp.ssl:
            server: smtplib.SMTP = smtplib.SMTP_SSL(
                self.smtp.server, self.smtp.port, timeout=self.smtp.timeout, context=context
            )
        else:
            server = smtplib.SMTP(self.smtp.server, self.smtp.port, timeout=self.smtp.timeout)
        try:
            if self.smtp.starttls and not self.smtp.ssl:
                server.starttls(context=context)
            if self.smtp.username and self.smtp.password:
                server.login(self.smtp.username, self.smtp.password)
        except BaseException:
            server.close()
            raise
        return server

    def send(self, notification: Notification) -> None:
        """Deliver synchronously, raising :class:`DeliveryError` on any failure."""

        try:
            # building fails on malformed headers, that counts as a delivery failure
            message = self.build_message(notification)
            with self._connect() as server:
                server.send_message(message)
        except (smtplib.SMTPException, OSError, ValueError, MessageError) as exc:
            raise DeliveryError(f"{notification.subject}: {exc}") from exc

    async def send_all(self, notifications: Iterable[Notification]) -> list[Notification]:
        """Send everything, at most ``parallel`` at once; return what failed."""

        slots = asyncio.Semaphore(self.parallel)

        async def _send(notification: Notification) -> Notification | None:
            async with slots:
                try:
                    await asyncio.to_thread(self.send, notification)
                except DeliveryError as exc:
                    self.logger.warning("delivery_failed", subject=notification.subject, error=str(exc))
                    return notification
            return None

        results = await asyncio.gather(*(_send(item) for item in notifications))
        return [item for item in results if item is not None]


__all__ = ["MAX_PARALLEL_SENDS", "Mailer"]
