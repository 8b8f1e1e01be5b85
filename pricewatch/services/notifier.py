import asyncio
import smtplib
from email.message import EmailMessage
from typing import Optional, Protocol

import structlog

from pricewatch.core.config import settings
from pricewatch.core.errors import NotificationError

log = structlog.get_logger("notifier")


class Notifier(Protocol):
    async def send(self, destination: str, subject: str, body: str) -> None:
        """Deliver one message; raises NotificationError on failure."""
        ...


class LogNotifier:
    """Writes notifications to the log instead of sending them (no SMTP configured)."""

    async def send(self, destination: str, subject: str, body: str) -> None:
        log.info("notification", to=destination, subject=subject, body=body)


class SmtpNotifier:
    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        starttls: bool = True,
        timeout_s: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username or f"pricewatch@{host}"
        self.starttls = starttls
        self.timeout_s = timeout_s

    def _build(self, destination: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = destination
        msg["Subject"] = subject
        msg.set_content(body)
        return msg

    def _deliver(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout_s) as smtp:
            if self.starttls:
                smtp.starttls()
            if self.username and self.password:
                smtp.login(self.username, self.password)
            smtp.send_message(msg)

    async def send(self, destination: str, subject: str, body: str) -> None:
        msg = self._build(destination, subject, body)
        try:
            # smtplib blocks; keep it off the event loop
            await asyncio.wait_for(asyncio.to_thread(self._deliver, msg), timeout=self.timeout_s)
        except asyncio.TimeoutError as e:
            raise NotificationError(destination, "timed out") from e
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(destination, str(e) or e.__class__.__name__) from e
        log.info("email_sent", to=destination, subject=subject)


def build_notifier() -> Notifier:
    if not settings.SMTP_HOST:
        return LogNotifier()
    return SmtpNotifier(
        host=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        username=settings.SMTP_USER,
        password=settings.SMTP_PASSWORD,
        sender=settings.SMTP_FROM,
        starttls=settings.SMTP_STARTTLS,
        timeout_s=settings.NOTIFY_TIMEOUT_SECONDS,
    )
