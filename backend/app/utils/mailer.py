"""
Outgoing email.

WHAT: OTP, sale and contact-form emails over SMTP
WHY: Account verification and seller alerts happen outside the app
HOW: smtplib with STARTTLS; failures are logged and never retried
"""

import smtplib
from email.message import EmailMessage
from typing import Iterable

from ..core.config import settings
from .logger import get_logger, log_suppressed

logger = get_logger(__name__)


def send_email(to_addresses: Iterable[str], subject: str, body: str) -> bool:
    """
    Send a plain-text email. Best effort.

    Args:
        to_addresses: Recipient addresses
        subject: Subject line
        body: Plain-text body

    Returns:
        True if the SMTP server accepted the message
    """
    recipients = [address for address in to_addresses if address]
    if not recipients:
        logger.warning(f"Email '{subject}' has no recipients, skipping")
        return False
    if not settings.SMTP_USER or not settings.SMTP_PASSWORD:
        logger.info(f"SMTP not configured, skipping email '{subject}' to {recipients}")
        return False

    msg = EmailMessage()
    msg["From"] = settings.MAIL_FROM or settings.SMTP_USER
    msg["To"] = ", ".join(recipients)
    msg["Subject"] = subject
    msg.set_content(body)

    try:
        with smtplib.SMTP(settings.SMTP_SERVER, settings.SMTP_PORT, timeout=10) as server:
            server.starttls()
            server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        log_suppressed(logger, f"email '{subject}' to {recipients}", e)
        return False

    logger.info(f"Sent email '{subject}' to {recipients}")
    return True


def send_otp_email(email: str, otp: str, purpose: str = "verification") -> bool:
    if purpose == "reset":
        subject = "ThriftLy password reset code"
        body = f"Your password reset code is {otp}."
    else:
        subject = "Verify your ThriftLy account"
        body = f"Your verification code is {otp}."
    return send_email([email], subject, body)


def send_sale_email(seller_email: str, seller_name: str, product_title: str,
                    price: float, buyer_name: str) -> bool:
    """Tell a seller their listing sold."""
    body = (
        f"Hi {seller_name},\n\n"
        f"Good news! '{product_title}' was bought by {buyer_name} for Rs. {price:g}.\n"
        f"Open ThriftLy to arrange shipping: {settings.FRONTEND_URL}/profile\n"
    )
    return send_email([seller_email], f"Your item '{product_title}' has been sold", body)


def send_contact_email(name: str, email: str, message: str) -> bool:
    """Forward a contact-form submission to the support inbox."""
    body = f"From: {name} <{email}>\n\n{message}\n"
    return send_email([settings.SUPPORT_EMAIL], f"ThriftLy contact form: {name}", body)
