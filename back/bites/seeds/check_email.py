"""
Verify the SMTP settings used for password resets and email campaigns.

Usage:
    python -m bites.seeds.check_email [recipient@example.com]
"""

import asyncio
import sys

from bites.email_service import send_email, test_smtp_connection
from bites.settings import settings


def describe_settings() -> list[str]:
    """Configuration lines with the password masked."""
    return [
        f"SMTP Host: {settings.smtp_host}",
        f"SMTP Port: {settings.smtp_port}",
        f"SMTP User: {settings.smtp_user or 'NOT SET'}",
        f"SMTP Password: {'*' * len(settings.smtp_password) if settings.smtp_password else 'NOT SET'}",
        f"Use TLS: {settings.smtp_use_tls}",
        f"From: {settings.email_from_name} <{settings.email_sender}>",
    ]


async def check_email(recipient: str | None = None) -> int:
    print("=" * 70)
    print("Bites & Co SMTP Check")
    print("=" * 70)

    print("\n📧 Email Configuration:")
    for line in describe_settings():
        print(f"   {line}")

    print("\n🔌 Testing SMTP connection...")
    result = await test_smtp_connection()
    if not result["success"]:
        print(f"❌ {result['message']}")
        print("\n⚠️  Troubleshooting:")
        print("   1. For Gmail, you need an 'App Password', not your regular password")
        print("   2. Enable 2-Step Verification first if not already enabled")
        print("   3. Check that SMTP_USER and SMTP_PASSWORD are set in config.env")
        return 1
    print(f"✅ {result['message']}")

    if recipient:
        print(f"\n📨 Sending test email to {recipient}...")
        sent = await send_email(
            to_email=recipient,
            subject="Bites & Co - Test Email",
            html_content="<p>If you received this email, the SMTP configuration is working.</p>",
            text_content="If you received this email, the SMTP configuration is working.",
        )
        if not sent:
            print("❌ Failed to send test email")
            return 1
        print("✅ Test email sent. Check the inbox (and spam folder).")

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(check_email(sys.argv[1] if len(sys.argv) > 1 else None)))
