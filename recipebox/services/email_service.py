"""
Email service - account notifications.
Currently supports: Mock (development, tests) and SMTP (production ready).
"""
import asyncio
import logging
import smtplib
import uuid
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import List, Optional

from recipebox.config import Settings, settings as default_settings
from recipebox.core.exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)


class EmailService(ABC):
    """
    Base email service interface.
    Every send returns the provider's message id or raises EmailDeliveryError.
    """

    def __init__(self, settings: Settings = default_settings):
        self.settings = settings

    @abstractmethod
    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        html: Optional[str] = None
    ) -> str:
        """Send an email."""

    async def send_welcome(self, to: str, name: str) -> str:
        """Sent after registration when email verification is disabled."""
        subject = "Welcome to Recipebox"
        body = f"""
Hi {name},

Welcome to Recipebox! Your account is ready.

Start collecting and sharing your favourite recipes at {self.settings.FRONTEND_URL}

Happy cooking,
The Recipebox Team
        """

        html = f"""
        <html>
        <body>
            <h2>Welcome to Recipebox, {name}!</h2>
            <p>Your account is ready.</p>
            <p><a href="{self.settings.FRONTEND_URL}">Start cooking</a></p>
        </body>
        </html>
        """

        return await self.send_email(to, subject, body, html)

    async def send_verification(self, to: str, name: str, token: str) -> str:
        """Send email verification link."""
        verify_link = f"{self.settings.FRONTEND_URL}/verify-email?token={token}"
        hours = self.settings.EMAIL_VERIFICATION_TOKEN_EXPIRE_HOURS

        subject = "Verify your Recipebox email"
        body = f"""
Hi {name},

Please verify your email by opening the link below:

{verify_link}

This link expires in {hours} hours.

If you didn't create an account, please ignore this email.

The Recipebox Team
        """

        html = f"""
        <html>
        <body>
            <h2>Confirm your email</h2>
            <p>Hi {name}, please verify your email by clicking the button below:</p>
            <p>
                <a href="{verify_link}"
                   style="background-color: #E4572E; color: white; padding: 14px 25px;
                          text-decoration: none; display: inline-block; border-radius: 4px;">
                    Verify Email
                </a>
            </p>
            <p>Or copy this link: {verify_link}</p>
            <p><small>This link expires in {hours} hours.</small></p>
        </body>
        </html>
        """

        return await self.send_email(to, subject, body, html)

    async def send_password_reset(self, to: str, name: str, code: str) -> str:
        """Send the 6-digit password reset code."""
        minutes = self.settings.PASSWORD_RESET_CODE_EXPIRE_MINUTES

        subject = "Your Recipebox password reset code"
        body = f"""
Hi {name},

Use this code to reset your password:

{code}

The code expires in {minutes} minutes.

If you didn't request this, you can ignore this email.

The Recipebox Team
        """

        html = f"""
        <html>
        <body>
            <h2>Password Reset Request</h2>
            <p>Hi {name}, use this code to reset your password:</p>
            <p style="font-size: 28px; letter-spacing: 6px;"><strong>{code}</strong></p>
            <p><small>The code expires in {minutes} minutes.</small></p>
        </body>
        </html>
        """

        return await self.send_email(to, subject, body, html)

    async def send_password_changed(self, to: str, name: str) -> str:
        subject = "Your Recipebox password was changed"
        body = f"""
Hi {name},

The password for your Recipebox account was just changed and you have been
signed out on your other devices.

If this wasn't you, reset your password immediately and contact {self.settings.EMAIL_REPLY_TO}.

The Recipebox Team
        """

        html = f"""
        <html>
        <body>
            <h2>Password changed</h2>
            <p>Hi {name}, the password for your Recipebox account was just changed.</p>
            <p>If this wasn't you, reset your password immediately and contact
               <a href="mailto:{self.settings.EMAIL_REPLY_TO}">{self.settings.EMAIL_REPLY_TO}</a>.</p>
        </body>
        </html>
        """

        return await self.send_email(to, subject, body, html)


class MockEmailService(EmailService):
    """
    Mock email service for development.
    Logs emails instead of sending and keeps them for inspection.
    """

    def __init__(self, settings: Settings = default_settings):
        super().__init__(settings)
        self.sent_emails: List[dict] = []

    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        html: Optional[str] = None
    ) -> str:
        """Mock send - logs and stores the message."""
        message_id = f"mock-{uuid.uuid4()}"
        self.sent_emails.append({
            "id": message_id,
            "to": to,
            "subject": subject,
            "body": body,
            "html": html
        })
        logger.info(f"Mock email {message_id} to {to}: {subject}")
        return message_id

    def get_last_email(self) -> Optional[dict]:
        """Get the last sent email (for testing)."""
        return self.sent_emails[-1] if self.sent_emails else None

    def emails_to(self, to: str) -> List[dict]:
        return [email for email in self.sent_emails if email["to"] == to]


class SMTPEmailService(EmailService):
    """
    SMTP email service for production.
    Configure with environment variables:
    - SMTP_HOST
    - SMTP_PORT
    - SMTP_USER
    - SMTP_PASSWORD
    - EMAIL_FROM
    - EMAIL_REPLY_TO
    """

    def __init__(self, settings: Settings = default_settings):
        super().__init__(settings)
        self.host = settings.SMTP_HOST
        self.port = settings.SMTP_PORT
        self.user = settings.SMTP_USER
        self.password = settings.SMTP_PASSWORD
        self.from_email = settings.EMAIL_FROM
        self.reply_to = settings.EMAIL_REPLY_TO

    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        html: Optional[str] = None
    ) -> str:
        """Send email via SMTP without blocking the event loop."""
        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = self.from_email
        msg['To'] = to
        if self.reply_to:
            msg['Reply-To'] = self.reply_to
        msg['Message-ID'] = make_msgid(domain=self.from_email.split("@")[-1])

        # Add plain text
        msg.attach(MIMEText(body, 'plain'))

        # Add HTML if provided
        if html:
            msg.attach(MIMEText(html, 'html'))

        try:
            await asyncio.to_thread(self._deliver, to, msg)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(to, str(e)) from e

        logger.info(f"Email sent to {to}: {subject}")
        return msg['Message-ID']

    def _deliver(self, to: str, msg: MIMEMultipart) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=30) as server:
            server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.sendmail(self.from_email, to, msg.as_string())


def build_email_service(settings: Settings = default_settings) -> EmailService:
    """Pick the SMTP service when a host is configured, else the mock."""
    if settings.SMTP_HOST:
        logger.info("Using SMTP email service")
        return SMTPEmailService(settings)
    logger.info("Using mock email service (emails are logged, not sent)")
    return MockEmailService(settings)
