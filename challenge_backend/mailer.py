"""
Outgoing email: SMTP delivery plus an in-memory outbox for tests.
"""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from html import escape
from typing import List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised when a message could not be handed to the mail server."""


class EmailClient(Protocol):
    def send(self, to: str, subject: str, html: str) -> None:
        ...


@dataclass
class SentEmail:
    to: str
    subject: str
    html: str


@dataclass
class InMemoryEmailClient:
    """Collects messages instead of sending them."""

    outbox: List[SentEmail] = field(default_factory=list)

    def send(self, to: str, subject: str, html: str) -> None:
        logger.info("Email to %s: %s", to, subject)
        self.outbox.append(SentEmail(to=to, subject=subject, html=html))


@dataclass
class SmtpEmailClient:
    host: str
    port: int
    sender: str
    user: Optional[str] = None
    password: Optional[str] = None
    use_ssl: bool = True
    timeout: float = 10.0

    def send(self, to: str, subject: str, html: str) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html, subtype="html")

        smtp_cls = smtplib.SMTP_SSL if self.use_ssl else smtplib.SMTP
        try:
            with smtp_cls(self.host, self.port, timeout=self.timeout) as server:
                if not self.use_ssl:
                    server.starttls()
                if self.user:
                    server.login(self.user, self.password or "")
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise EmailDeliveryError(str(exc)) from exc
        logger.info("Email sent to %s: %s", to, subject)


def _wrap(body: str) -> str:
    return f"<html><body>{body}</body></html>"


def welcome_email(username: str) -> Tuple[str, str]:
    return (
        "Coding Challenge - Account Creation Successful",
        _wrap(
            f"<p>Hi {escape(username)},</p>"
            "<p>Your account creation was successful!</p>"
            "<p>Welcome to the Coding Challenge</p>"
        ),
    )


def password_reset_email(username: str, email: str, link: str) -> Tuple[str, str]:
    return (
        "Coding Challenge - Account Password Reset",
        _wrap(
            f"<p>Hello {escape(username)},</p>"
            "<p>We've received a request to reset the password for the account "
            f"associated with: {escape(email)}.</p>"
            "<p>You can reset your password by clicking the link below:</p>"
            f'<p><a href="{escape(link)}">Reset Password</a></p>'
            "<p>If that doesn't work, copy and paste the following link in your browser:</p>"
            f"<p>{escape(link)}</p>"
        ),
    )


def password_changed_email(username: str) -> Tuple[str, str]:
    return (
        "Coding Challenge - Password Change Successful",
        _wrap(
            f"<p>Hi {escape(username)},</p>"
            "<p>Your password has been changed successfully</p>"
        ),
    )
