"""
Outgoing e-mail over SMTP.

Mail is best effort: when SMTP is not configured the message is logged and
skipped, and delivery failures are logged without failing the request that
triggered them.
"""

import asyncio
import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from app.core.config import settings
from app.core.retry import is_transient_smtp_error, retry_with_backoff

logger = logging.getLogger(__name__)


def _build_message(to_address: str, subject: str, text_body: str, html_body: Optional[str]) -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = settings.mail_from
    msg["To"] = to_address
    msg.attach(MIMEText(text_body, "plain"))
    if html_body:
        msg.attach(MIMEText(html_body, "html"))
    return msg


def _send_sync(msg: MIMEMultipart) -> None:
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=15) as server:
        if settings.smtp_use_tls:
            server.starttls()
        server.login(settings.smtp_username, settings.smtp_password)
        server.send_message(msg)


@retry_with_backoff(base_delay=1.0, exceptions=(smtplib.SMTPException, OSError), should_retry=is_transient_smtp_error)
async def _deliver(msg: MIMEMultipart) -> None:
    await asyncio.to_thread(_send_sync, msg)


async def send_email(
    to_address: str,
    subject: str,
    text_body: str,
    html_body: Optional[str] = None,
) -> bool:
    """
    Send an e-mail.

    Returns:
        True when handed to the SMTP server, False when skipped or failed
    """
    if not settings.smtp_configured:
        logger.warning(
            "SMTP not configured, e-mail skipped",
            extra={"to": to_address, "subject": subject},
        )
        return False

    try:
        await _deliver(_build_message(to_address, subject, text_body, html_body))
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("E-mail delivery failed", extra={"to": to_address, "error": str(exc)})
        return False

    logger.info("E-mail sent", extra={"to": to_address, "subject": subject})
    return True


async def send_otp_email(to_address: str, otp: str, purpose: str = "verification") -> bool:
    if purpose == "reset":
        subject = "Your password reset code"
        minutes = settings.reset_otp_expiry_minutes
    else:
        subject = "Verify your account"
        minutes = settings.otp_expiry_minutes
    text_body = f"Your code is {otp}. It expires in {minutes} minutes."
    html_body = f"<p>Your code is <strong>{otp}</strong>.</p><p>It expires in {minutes} minutes.</p>"
    return await send_email(to_address, subject, text_body, html_body)


async def send_invite_email(to_address: str, inviter_name: str, link: str) -> bool:
    subject = f"{inviter_name} invited you to join their family tree"
    text_body = (
        f"{inviter_name} invited you to join their family on Family Tree.\n\n"
        f"Accept the invite: {link}\n\n"
        f"This link expires in {settings.invite_expiry_hours} hours."
    )
    safe_name = html.escape(inviter_name)
    safe_link = html.escape(link, quote=True)
    html_body = (
        f"<p>{safe_name} invited you to join their family on Family Tree.</p>"
        f'<p><a href="{safe_link}">Accept the invite</a></p>'
        f"<p>This link expires in {settings.invite_expiry_hours} hours.</p>"
    )
    return await send_email(to_address, subject, text_body, html_body)
