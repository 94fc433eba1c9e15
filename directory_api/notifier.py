"""Outbound email for account verification.

SMTP delivery runs in a worker thread; when mail is disabled the message is
only logged, which keeps local and test environments free of a mail server.
"""

import asyncio
import smtplib
from email.message import EmailMessage
from string import Template

from .config import settings
from .errors import DeliveryError
from .logger import logger

VERIFY_EMAIL_SUBJECT = "Welcome to Directory App - Verify your account"

VERIFY_EMAIL_TEMPLATE = Template("""\
<!DOCTYPE html>
<html>
  <body>
    <h2>Hello $name,</h2>
    <p>Thanks for signing up. Please confirm your email address to activate your account.</p>
    <p><a href="$url">Verify my account</a></p>
    <p>If you did not create this account you can ignore this message.</p>
  </body>
</html>
""")


def verification_url(token: str) -> str:
    """Link to the token confirmation endpoint."""
    return f"{settings.APP_HOST.rstrip('/')}{settings.API_PREFIX}/tokenVerifications?token={token}"


def render_verification_email(name: str, token: str) -> str:
    return VERIFY_EMAIL_TEMPLATE.substitute(name=name, url=verification_url(token))


class SmtpNotifier:
    """Sends HTML email through the configured SMTP relay."""

    def __init__(
        self,
        host: str = settings.SMTP_HOST,
        port: int = settings.SMTP_PORT,
        username: str | None = settings.SMTP_USER,
        password: str | None = settings.SMTP_PASSWORD,
        use_tls: bool = settings.SMTP_USE_TLS,
        sender: str = settings.MAIL_FROM,
        timeout: int = settings.SMTP_TIMEOUT,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender
        self.timeout = timeout

    def _build_message(self, to: str, subject: str, html_body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML capable email client.")
        message.add_alternative(html_body, subtype="html")
        return message

    def _send_sync(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password or "")
            smtp.send_message(message)

    async def send(self, to: str, subject: str, html_body: str) -> None:
        """Deliver one message. Raises DeliveryError on any transport failure."""
        message = self._build_message(to, subject, html_body)
        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"Failed to deliver email to {to}: {e}") from e
        logger.info(f"Email sent to {to}: {subject}")


class LogNotifier:
    """Logs messages instead of sending them (MAIL_ENABLED=false)."""

    async def send(self, to: str, subject: str, html_body: str) -> None:
        logger.info(f"Mail disabled - would send to {to}: {subject}")


def build_notifier():
    """Pick the notifier implementation from settings."""
    if settings.MAIL_ENABLED:
        return SmtpNotifier()
    return LogNotifier()
