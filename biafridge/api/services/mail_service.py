"""Mail transport for invite, verification and password-reset emails.

A single sender is resolved at startup from settings: SMTP when an SMTP host
and credentials are configured, SendGrid when an API key is, otherwise a
logging sender that reports non-delivery. Delivery failures are logged and
reported as ``False``; they never raise into the calling operation.
"""

import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr
from html import escape
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from biafridge.api.config import Settings

logger = logging.getLogger(__name__)


class MailSender:
    """Interface: ``await send(to, subject, html, from_name=None) -> bool``."""

    name = "base"

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        from_name: Optional[str] = None,
    ) -> bool:
        raise NotImplementedError


class LoggingMailSender(MailSender):
    """Used when no transport is configured. Logs and reports non-delivery."""

    name = "log"

    async def send(self, to, subject, html, from_name=None) -> bool:
        logger.info(f"Mail transport not configured; not sending '{subject}' to {to}")
        return False


class SmtpMailSender(MailSender):
    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        from_address: str,
        secure: bool = False,
        timeout: int = 15,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_address = from_address
        self.secure = secure
        self.timeout = timeout

    def _build_message(self, to: str, subject: str, html: str, from_name: Optional[str]) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = formataddr((from_name, self.from_address)) if from_name else self.from_address
        message["To"] = to
        message.set_content("This message requires an HTML-capable mail client.")
        message.add_alternative(html, subtype="html")
        return message

    def _deliver(self, message: EmailMessage) -> None:
        context = ssl.create_default_context()
        if self.secure:
            with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=context) as server:
                server.login(self.user, self.password)
                server.send_message(message)
            return

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            server.ehlo()
            if server.has_extn("starttls"):
                server.starttls(context=context)
                server.ehlo()
            server.login(self.user, self.password)
            server.send_message(message)

    async def send(self, to, subject, html, from_name=None) -> bool:
        message = self._build_message(to, subject, html, from_name)
        try:
            # smtplib is blocking
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to} via {self.host}:{self.port}: {e}")
            return False
        logger.info(f"Email '{subject}' sent to {to} via SMTP")
        return True


class SendGridMailSender(MailSender):
    name = "sendgrid"

    def __init__(self, api_key: str, from_email: str, default_from_name: Optional[str] = None):
        self.client = SendGridAPIClient(api_key)
        self.from_email = from_email
        self.default_from_name = default_from_name

    async def send(self, to, subject, html, from_name=None) -> bool:
        message = Mail(
            from_email=(self.from_email, from_name or self.default_from_name),
            to_emails=to,
            subject=subject,
            html_content=html,
        )
        try:
            response = await asyncio.to_thread(self.client.send, message)
        except Exception as e:
            # python-http-client raises HTTPError subclasses for non-2xx replies
            logger.error(f"SendGrid email error for {to}: {e}")
            return False

        if 200 <= response.status_code < 300:
            logger.info(f"Email '{subject}' sent to {to} via SendGrid")
            return True
        logger.error(f"SendGrid email failed for {to}: status={response.status_code}")
        return False


def resolve_mail_sender(settings: Settings) -> MailSender:
    """Pick the mail transport once, at startup."""
    if settings.SMTP_HOST and settings.SMTP_USER and settings.SMTP_PASS:
        logger.info(f"Mail transport: SMTP {settings.SMTP_HOST}:{settings.SMTP_PORT}")
        return SmtpMailSender(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            user=settings.SMTP_USER,
            password=settings.SMTP_PASS,
            from_address=settings.MAIL_FROM or settings.SMTP_USER,
            secure=settings.SMTP_SECURE,
        )

    if settings.SENDGRID_API_KEY:
        logger.info("Mail transport: SendGrid")
        return SendGridMailSender(
            api_key=settings.SENDGRID_API_KEY,
            from_email=settings.MAIL_FROM or settings.SENDGRID_FROM_EMAIL,
            default_from_name=settings.SENDGRID_FROM_NAME,
        )

    logger.warning("No mail transport configured; emails will be logged only")
    return LoggingMailSender()


# ============================================================================
# LINKS & TEMPLATES
# ============================================================================

def frontend_link(settings: Settings, path: str, token: str) -> str:
    """
    Build a frontend URL like ``{FRONTEND_URL}/Fridge-app/invite/accept?token=...``

    Trailing slashes are stripped and the base path is appended only when the
    configured URL does not already end with it.
    """
    base = settings.FRONTEND_URL.rstrip("/")
    base_path = settings.FRONTEND_BASE_PATH.rstrip("/")
    if base_path and not base.endswith(base_path):
        base = f"{base}{base_path}"
    return f"{base}/{path.lstrip('/')}?token={token}"


def _layout(heading: str, body: str, button_label: str, link: str, footer: str) -> str:
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #6200ee;">{heading}</h2>
  {body}
  <p style="text-align: center; margin: 30px 0;">
    <a href="{link}" style="background-color: #6200ee; color: white; padding: 12px 24px; text-decoration: none; border-radius: 4px;">{button_label}</a>
  </p>
  <p style="color: #666; font-size: 13px;">Or copy this link into your browser:<br>{link}</p>
  <p style="color: #999; font-size: 12px;">{footer}</p>
</div>
"""


def fridge_invite_email(inviter_name: str, fridge_name: str, link: str, expiry_hours: int) -> tuple[str, str]:
    subject = f"{inviter_name} invited you to share a fridge"
    body = (
        f"<p><strong>{escape(inviter_name)}</strong> invited you to share "
        f"<strong>{escape(fridge_name)}</strong> on Bia Fridge.</p>"
    )
    footer = f"This invite expires in {expiry_hours} hours."
    return subject, _layout("You're invited!", body, "Accept invite", link, footer)


def account_invite_email(inviter_name: str, fridge_name: str, link: str, expiry_hours: int) -> tuple[str, str]:
    subject = f"{inviter_name} invited you to Bia Fridge"
    body = (
        f"<p><strong>{escape(inviter_name)}</strong> wants to share "
        f"<strong>{escape(fridge_name)}</strong> with you. Create your account to join.</p>"
    )
    footer = f"This invite expires in {expiry_hours} hours."
    return subject, _layout("Join Bia Fridge", body, "Create account", link, footer)


def verification_email(name: str, link: str, expiry_hours: int) -> tuple[str, str]:
    body = f"<p>Hi {escape(name)}, please confirm your email address to finish signing up.</p>"
    footer = f"This link expires in {expiry_hours} hours."
    return "Verify your email", _layout("Welcome to Bia Fridge", body, "Verify email", link, footer)


def password_reset_email(name: str, link: str) -> tuple[str, str]:
    body = f"<p>Hi {escape(name)}, we received a request to reset your password.</p>"
    return "Reset your password", _layout("Password reset", body, "Reset password", link,
                                           "If you did not request this, you can ignore this email.")
