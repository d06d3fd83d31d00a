"""
Email service for sending transactional and campaign emails.
Supports SMTP (Gmail, Proton Mail, etc.) via aiosmtplib.
"""

import logging
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

import aiosmtplib

from .settings import settings

logger = logging.getLogger(__name__)

BULK_SUBJECT = "Message from Bites & Co"


def is_configured() -> bool:
    return bool(settings.smtp_user and settings.smtp_password)


async def _deliver(message) -> None:
    """
    Hand a message to the SMTP server.

    Port 587 uses STARTTLS, port 465 uses implicit TLS; any other port
    follows `smtp_use_tls`.
    """
    options = {
        "hostname": settings.smtp_host,
        "port": settings.smtp_port,
        "username": settings.smtp_user,
        "password": settings.smtp_password,
    }
    if settings.smtp_port == 587:
        options["start_tls"] = True
    elif settings.smtp_port == 465:
        options["use_tls"] = True
    else:
        options["start_tls"] = settings.smtp_use_tls
    await aiosmtplib.send(message, **options)


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
    text_content: Optional[str] = None,
    attachments: Optional[list[tuple[str, bytes]]] = None,
) -> bool:
    """
    Send an email via SMTP.

    Args:
        to_email: Recipient email address
        subject: Email subject
        html_content: HTML email body
        text_content: Plain text alternative (optional)
        attachments: (filename, bytes) pairs attached to the message

    Returns:
        True if email sent successfully, False otherwise
    """
    if not is_configured():
        logger.error("SMTP credentials not configured")
        return False

    from_email = settings.email_sender
    from_name = settings.email_from_name

    body = MIMEMultipart("alternative")
    if text_content:
        body.attach(MIMEText(text_content, "plain"))
    body.attach(MIMEText(html_content, "html"))

    if attachments:
        message = MIMEMultipart("mixed")
        message.attach(body)
        for filename, payload in attachments:
            part = MIMEApplication(payload, Name=filename)
            part["Content-Disposition"] = f'attachment; filename="{filename}"'
            message.attach(part)
    else:
        message = body

    message["Subject"] = subject
    message["From"] = f"{from_name} <{from_email}>" if from_name else from_email
    message["To"] = to_email

    try:
        await _deliver(message)
        logger.info(f"Email sent successfully to {to_email}")
        return True
    except (aiosmtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


async def send_password_reset_email(to_email: str, name: str | None, temporary_password: str) -> bool:
    """Send a freshly generated temporary password."""
    subject = "Your Password from Bites & Co"
    greeting = name or "there"

    html_content = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="utf-8">
        <style>
            body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
            .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
            .code {{ font-size: 24px; font-weight: bold; letter-spacing: 4px; text-align: center; padding: 20px; background-color: #f5f5f5; border-radius: 5px; }}
        </style>
    </head>
    <body>
        <div class="container">
            <h1>Hello {greeting},</h1>
            <p>A new temporary password was generated for your Bites &amp; Co account:</p>
            <p class="code">{temporary_password}</p>
            <p>Please log in and keep it safe. Your previous sessions have been signed out.</p>
            <hr>
            <p style="color: #666; font-size: 12px;">This is an automated message, please do not reply.</p>
        </div>
    </body>
    </html>
    """

    text_content = (
        f"Hello {greeting},\n\n"
        f"Your password is: {temporary_password}\n\n"
        "Please keep it safe."
    )

    return await send_email(to_email, subject, html_content, text_content)


async def send_bulk_email(
    recipients: list[str],
    html_content: str,
    attachments: Optional[list[tuple[str, bytes]]] = None,
) -> list[dict]:
    """Send the same campaign message to every recipient, one SMTP session each."""
    results = []
    for to_email in recipients:
        sent = await send_email(to_email, BULK_SUBJECT, html_content, attachments=attachments)
        results.append({"email": to_email, "sent": sent})
    return results


async def test_smtp_connection() -> dict:
    """
    Test SMTP connection and authentication.

    Returns:
        dict with 'success' (bool) and 'message' (str)
    """
    if not is_configured():
        return {
            "success": False,
            "message": "SMTP credentials not configured in config.env"
        }

    # Sending a message to ourselves is the most reliable end-to-end check
    test_message = MIMEText("SMTP connection test")
    test_message["From"] = settings.email_sender
    test_message["To"] = settings.smtp_user
    test_message["Subject"] = "SMTP Test"

    try:
        await _deliver(test_message)
        return {
            "success": True,
            "message": f"Successfully connected and sent test email to {settings.smtp_host}:{settings.smtp_port}"
        }
    except aiosmtplib.SMTPAuthenticationError as e:
        return {
            "success": False,
            "message": f"Authentication failed. For Gmail, you need an 'App Password', not your regular password. Error: {e}"
        }
    except (aiosmtplib.SMTPException, OSError) as e:
        return {
            "success": False,
            "message": f"Connection failed: {e}"
        }
