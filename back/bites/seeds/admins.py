"""
Seed the default admin accounts.
Existing accounts (matched by email) are left untouched.

Usage:
    python -m bites.seeds.admins
"""

from sqlmodel import Session, select

from bites.db import create_db_and_tables, engine
from bites.models import User
from bites.security import get_password_hash

DEFAULT_ADMINS = [
    {"name": "Admin1", "email": "admin1@example.com", "password": "admin123"},
    {"name": "Admin2", "email": "admin2@example.com", "password": "admin456"},
    {"name": "Admin3", "email": "admin3@example.com", "password": "admin789"},
]


def seed_admins(session: Session) -> int:
    """Create missing admin accounts; returns how many were added."""
    created = 0
    for admin in DEFAULT_ADMINS:
        existing = session.exec(select(User).where(User.email == admin["email"])).first()
        if existing:
            continue
        session.add(User(
            username=admin["email"],
            email=admin["email"],
            name=admin["name"],
            hashed_password=get_password_hash(admin["password"]),
            role="admin",
        ))
        created += 1
    session.commit()
    return created


if __name__ == "__main__":
    create_db_and_tables()
    with Session(engine) as session:
        count = seed_admins(session)
    print(f"✅ Admin users seeded successfully! ({count} new)")
