"""
Login credential generation for staff accounts.

Staff passwords are derived from the staff record so managers can read them
out at onboarding: name initial, role initial, two digits, one symbol.
"""

import re
import secrets
from datetime import date, datetime

SPECIAL_CHARS = ["@", "#", "$", "&", "*"]


def _day_of_month(joined_at: date | datetime | str) -> int:
    if isinstance(joined_at, (date, datetime)):
        return joined_at.day
    return datetime.fromisoformat(str(joined_at).replace("Z", "+00:00")).day


def generate_staff_password(
    name: str,
    role: str,
    phone: str,
    joined_at: date | datetime | str,
) -> str:
    """
    Build the 5-character staff password.

    Digits come from the last two digits of the phone number, or the
    zero-padded joining day when the phone has fewer than two digits.
    """
    name = (name or "").strip()
    role = (role or "").strip()
    if not name or not role:
        raise ValueError("name and role are required to generate a password")

    phone_digits = re.sub(r"\D", "", phone or "")[-2:]
    digits = phone_digits if len(phone_digits) >= 2 else f"{_day_of_month(joined_at):02d}"
    special = SPECIAL_CHARS[len(name) % len(SPECIAL_CHARS)]

    return f"{name[0].upper()}{role[0].lower()}{digits}{special}"


def generate_temporary_password(length: int = 10) -> str:
    """Random password handed out by the forgot-password flow."""
    return secrets.token_urlsafe(length)[:length]
