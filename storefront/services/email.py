import asyncio
import enum
import logging
import smtplib
from dataclasses import dataclass
from email.mime.text import MIMEText
from typing import Protocol

from storefront.core.config import Settings

logger = logging.getLogger(__name__)


class DeliveryStatus(str, enum.Enum):
    sent = "sent"
    failed = "failed"
    not_configured = "not_configured"


@dataclass(frozen=True)
class DeliveryResult:
    status: DeliveryStatus
    error: str | None = None

    @property
    def delivered(self) -> bool:
        return self.status is DeliveryStatus.sent


class EmailDispatcher(Protocol):
    async def send(self, to_email: str, subject: str, body: str) -> DeliveryResult: ...

    async def check(self) -> bool: ...


class SmtpEmailDispatcher:
    def __init__(self, settings: Settings):
        self._settings = settings

    def _connect(self) -> smtplib.SMTP:
        s = self._settings
        # Respect timeout to avoid hanging the request on a dead relay
        timeout = float(s.SMTP_TIMEOUT_SECONDS)
        if s.SMTP_SSL:
            server = smtplib.SMTP_SSL(s.SMTP_HOST, s.SMTP_PORT, timeout=timeout)
        else:
            server = smtplib.SMTP(s.SMTP_HOST, s.SMTP_PORT, timeout=timeout)
            if s.SMTP_TLS:
                server.starttls()
        server.login(s.SMTP_USER, s.SMTP_PASSWORD)
        return server

    @staticmethod
    def _close(server: smtplib.SMTP) -> None:
        try:
            server.quit()
        except smtplib.SMTPException:
            server.close()

    def _send_sync(self, to_email: str, subject: str, body: str) -> None:
        msg = MIMEText(body)
        msg["Subject"] = subject
        msg["From"] = self._settings.MAIL_FROM
        msg["To"] = to_email

        server = self._connect()
        try:
            server.send_message(msg)
        finally:
            self._close(server)

    def _check_sync(self) -> None:
        self._close(self._connect())

    async def send(self, to_email: str, subject: str, body: str) -> DeliveryResult:
        # Offload synchronous SMTP work to a thread so we don't block the event loop
        try:
            await asyncio.to_thread(self._send_sync, to_email, subject, body)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("Email to %s failed", to_email, exc_info=True)
            return DeliveryResult(DeliveryStatus.failed, error=type(e).__name__)
        return DeliveryResult(DeliveryStatus.sent)

    async def check(self) -> bool:
        try:
            await asyncio.to_thread(self._check_sync)
        except (smtplib.SMTPException, OSError):
            logger.warning("SMTP connection could not be verified; outgoing mail may fail", exc_info=True)
            return False
        logger.info("SMTP connection ready")
        return True


class LoggingEmailDispatcher:
    """Stand-in used when no transport is configured: the message goes to the log."""

    async def send(self, to_email: str, subject: str, body: str) -> DeliveryResult:
        logger.info("[DEV EMAIL] To: %s Subject: %s\n%s", to_email, subject, body)
        return DeliveryResult(DeliveryStatus.not_configured)

    async def check(self) -> bool:
        logger.info("SMTP not configured; verification links will be written to the log")
        return False


def build_email_dispatcher(settings: Settings) -> EmailDispatcher:
    if settings.smtp_configured:
        return SmtpEmailDispatcher(settings)
    return LoggingEmailDispatcher()
