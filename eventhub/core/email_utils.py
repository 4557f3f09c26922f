# eventhub/core/email_utils.py

import smtplib
import ssl
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Dict, Any, Tuple
import logging
from datetime import datetime
from starlette.concurrency import run_in_threadpool
from jinja2 import Environment, FileSystemLoader, select_autoescape

from eventhub.config import settings

logger = logging.getLogger(__name__)

# =========================
# Jinja2 Template Setup
# =========================
template_env = Environment(
    loader=FileSystemLoader(settings.EMAIL_TEMPLATE_DIR),
    autoescape=select_autoescape(['html', 'xml'])
)
template_env.globals['current_year'] = datetime.now().year


def render_template(template_name: str, context: Dict[str, Any]) -> str:
    """Renders `<template_name>.html` from the email template directory."""
    try:
        template = template_env.get_template(f"{template_name}.html")
        return template.render(context)
    except Exception as e:
        logger.error(f"Error rendering email template '{template_name}.html': {e}", exc_info=True)
        raise RuntimeError(f"Failed to render email template: {template_name}") from e


# =========================
# Notifier
# =========================

class EmailNotifier:
    """
    Sends multipart (plain text + HTML) emails through the SMTP server configured in settings.

    Delivery errors are raised to the caller as RuntimeError; nothing is retried.
    """

    def __init__(
        self,
        server: str = settings.MAIL_SERVER,
        port: int = settings.MAIL_PORT,
        username: str = settings.MAIL_USERNAME,
        password: str = settings.MAIL_PASSWORD,
        from_address: str = settings.MAIL_FROM,
        use_tls: bool = settings.MAIL_TLS,
    ):
        self.server = server
        self.port = port
        self.username = username
        self.password = password
        self.from_address = from_address
        self.use_tls = use_tls

    def _build_message(self, to_email: str, subject: str, text_body: str, html_body: str) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = self.from_address
        message["To"] = to_email
        # Clients render the last part they support, so HTML goes last.
        message.attach(MIMEText(text_body, "plain"))
        message.attach(MIMEText(html_body, "html"))
        return message

    def _send_sync(self, to_email: str, message: MIMEMultipart) -> None:
        context = ssl.create_default_context()
        server = None
        try:
            if self.use_tls: # STARTTLS
                server = smtplib.SMTP(self.server, self.port)
                server.ehlo()
                server.starttls(context=context)
                server.ehlo()
            else:
                server = smtplib.SMTP_SSL(self.server, self.port, context=context)

            if self.username and self.password:
                server.login(self.username, self.password)

            server.sendmail(self.from_address, to_email, message.as_string())
            logger.info(f"Email successfully sent to {to_email}")

        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP Authentication Error for {to_email}: Check username/password. Details: {e}", exc_info=True)
            raise
        except smtplib.SMTPConnectError as e:
            logger.error(f"SMTP Connection Error for {to_email}: Check server/port/firewall. Details: {e}", exc_info=True)
            raise
        except smtplib.SMTPServerDisconnected as e:
            logger.error(f"SMTP Server Disconnected for {to_email}: Incorrect TLS/SSL settings or port. Details: {e}", exc_info=True)
            raise
        except smtplib.SMTPException as e:
            logger.error(f"General SMTP Error for {to_email}: {e}", exc_info=True)
            raise
        finally:
            if server:
                server.quit()

    async def send_email(self, to_email: str, subject: str, text_body: str, html_body: str) -> None:
        """
        Sends an email without blocking the event loop.

        Args:
            to_email (str): Recipient's email address.
            subject (str): Subject of the email.
            text_body (str): Plain-text alternative.
            html_body (str): HTML body.
        """
        logger.debug(f"Attempting to send email to {to_email} with subject: {subject}")
        message = self._build_message(to_email, subject, text_body, html_body)
        try:
            await run_in_threadpool(self._send_sync, to_email, message)
        except (smtplib.SMTPException, OSError) as e:
            raise RuntimeError(f"Failed to send email to {to_email}: {e}") from e


# --- Message Builders ---

def build_login_otp_email(full_name: str, otp_code: str) -> Tuple[str, str, str]:
    """
    Returns (subject, text_body, html_body) for a login verification code.
    """
    subject = f"{settings.APP_NAME} - Your login verification code"
    text_body = (
        f"Hi {full_name},\n\n"
        f"Your login verification code is {otp_code}. "
        f"It expires in {settings.OTP_EXPIRATION_MINUTES} minutes.\n\n"
        "If you did not try to sign in, you can ignore this email."
    )
    html_body = render_template("login_otp", {
        "full_name": full_name,
        "otp_code": otp_code,
        "app_name": settings.APP_NAME,
        "expiry_minutes": settings.OTP_EXPIRATION_MINUTES,
    })
    return subject, text_body, html_body

def build_password_reset_email(full_name: str, token: str) -> Tuple[str, str, str]:
    """
    Returns (subject, text_body, html_body) for a password reset link.
    """
    reset_link = f"{settings.CLIENT_URL}/api/auth/verify-reset?token={token}"
    subject = "Password Reset Request"
    text_body = f"Click this link to reset your password: {reset_link}"
    html_body = render_template("password_reset", {
        "full_name": full_name,
        "reset_link": reset_link,
        "app_name": settings.APP_NAME,
        "expiry_minutes": settings.PASSWORD_RESET_TOKEN_EXPIRE_MINUTES,
    })
    return subject, text_body, html_body
