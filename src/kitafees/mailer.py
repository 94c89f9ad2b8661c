"""E-mail delivery for reminder notices."""

import logging
import os
import smtplib
from abc import ABC, abstractmethod
from email.mime.text import MIMEText
from typing import Optional

from kitafees.domain.errors import ExternalError

logger = logging.getLogger(__name__)


class EmailSender(ABC):
    """Collaborator that delivers plain-text e-mails."""

    @abstractmethod
    def is_enabled(self) -> bool:
        """Whether e-mails can actually be sent."""
        pass

    @abstractmethod
    def send_text_email(self, to_email: str, subject: str, body: str) -> None:
        """Send a plain-text e-mail.

        Raises:
            ExternalError: If delivery fails
        """
        pass


class DisabledEmailSender(EmailSender):
    """Sender used when no SMTP server is configured."""

    def is_enabled(self) -> bool:
        return False

    def send_text_email(self, to_email: str, subject: str, body: str) -> None:
        raise ExternalError("E-mail is not configured")


class SMTPEmailSender(EmailSender):
    """Send e-mails through an SMTP server with STARTTLS."""

    def __init__(
        self,
        host: str,
        user: str,
        password: str,
        port: int = 587,
        from_email: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_email = from_email or user
        self.use_tls = use_tls
        self.timeout = timeout

    @classmethod
    def from_env(cls) -> Optional["SMTPEmailSender"]:
        """Build a sender from KITAFEES_SMTP_* variables; None if incomplete."""
        host = os.getenv("KITAFEES_SMTP_HOST", "")
        user = os.getenv("KITAFEES_SMTP_USER", "")
        password = os.getenv("KITAFEES_SMTP_PASSWORD", "")
        if not host or not user or not password:
            return None
        return cls(
            host=host,
            user=user,
            password=password,
            port=int(os.getenv("KITAFEES_SMTP_PORT", "587")),
            from_email=os.getenv("KITAFEES_SMTP_FROM") or None,
            use_tls=os.getenv("KITAFEES_SMTP_TLS", "true").lower() not in ("0", "false", "no"),
        )

    def is_enabled(self) -> bool:
        return True

    def send_text_email(self, to_email: str, subject: str, body: str) -> None:
        msg = MIMEText(body, "plain", "utf-8")
        msg["From"] = self.from_email
        msg["To"] = to_email
        msg["Subject"] = subject

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                server.login(self.user, self.password)
                server.send_message(msg)
        except smtplib.SMTPAuthenticationError as e:
            raise ExternalError("SMTP authentication failed") from e
        except smtplib.SMTPRecipientsRefused as e:
            raise ExternalError(f"Invalid recipient: {to_email}") from e
        except (smtplib.SMTPException, OSError) as e:
            raise ExternalError(f"SMTP error: {type(e).__name__}") from e
        logger.info("Sent e-mail '%s' to %s", subject, to_email)


def create_email_sender() -> EmailSender:
    """SMTP sender from the environment, or a disabled sender."""
    sender = SMTPEmailSender.from_env()
    if sender is None:
        logger.debug("SMTP not configured; e-mail disabled")
        return DisabledEmailSender()
    return sender
