"""SMTP alert notifier for integration health alerts."""

import smtplib
from email.message import EmailMessage
from typing import Final

from src.config.logging_config import get_logger
from src.domain.exceptions import NotificationError

logger = get_logger(__name__)

SUBJECT_PREFIX: Final[str] = "Telegram Integration Alert"


class EmailNotifier:
    """Sends plain-text alert emails over SMTP SSL."""

    def __init__(
        self,
        *,
        recipient: str | None,
        sender: str | None,
        password: str | None,
        smtp_host: str = "smtp.gmail.com",
        smtp_port: int = 465,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._recipient = recipient
        self._sender = sender
        self._password = password
        self._smtp_host = smtp_host
        self._smtp_port = smtp_port
        self._timeout_seconds = timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self._recipient and self._sender and self._password)

    def send_alert(self, subject: str, body: str) -> bool:
        """Send an alert email.

        Returns:
            False when email is not configured (nothing sent), True when sent

        Raises:
            NotificationError: On SMTP failures
        """
        if not self.configured:
            logger.info("alert_email_skipped_unconfigured", subject=subject)
            return False

        msg = EmailMessage()
        msg["Subject"] = f"{SUBJECT_PREFIX}: {subject}"
        msg["From"] = self._sender
        msg["To"] = self._recipient
        msg.set_content(body)

        try:
            with smtplib.SMTP_SSL(
                self._smtp_host, self._smtp_port, timeout=self._timeout_seconds
            ) as smtp:
                smtp.login(str(self._sender), str(self._password))
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"Failed to send alert email: {exc}") from exc

        logger.info("alert_email_sent", subject=subject, recipient=self._recipient)
        return True
