"""
Create or reset the back-office superadmin.

Idempotent: an existing account with the same e-mail is promoted to
superadmin, re-activated and given the new password.

Usage:
    python scripts/create_superadmin.py --email root@example.com --password 's3cret-pass'
    SUPERADMIN_EMAIL=... SUPERADMIN_PASSWORD=... python scripts/create_superadmin.py
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.core.database import init_db, session_scope
from app.core.security import get_password_hash
from app.models.admin import ADMIN_STATUS_ACTIVE, SUPERADMIN_ROLE, AdminAccount
from app.services.admin import AdminService

MIN_PASSWORD_LENGTH = 8


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create or reset the superadmin account")
    parser.add_argument("--email", default=os.getenv("SUPERADMIN_EMAIL"))
    parser.add_argument("--password", default=os.getenv("SUPERADMIN_PASSWORD"))
    parser.add_argument("--name", default=os.getenv("SUPERADMIN_NAME", "Super Admin"))
    args = parser.parse_args(argv)
    if not args.email or not args.password:
        parser.error("email and password are required (flags or SUPERADMIN_EMAIL / SUPERADMIN_PASSWORD)")
    if len(args.password) < MIN_PASSWORD_LENGTH:
        parser.error(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
    return args


async def create_superadmin(email: str, password: str, full_name: str) -> bool:
    """
    Returns:
        True when a new account was created, False when an existing one was reset
    """
    await init_db()
    async with session_scope() as session:
        service = AdminService(session)
        admin = await service.get_by_email(email)
        created = admin is None
        if created:
            admin = AdminAccount(email=email.strip().lower())
            session.add(admin)
        admin.password = get_password_hash(password)
        admin.full_name = full_name
        admin.role = SUPERADMIN_ROLE
        admin.status = ADMIN_STATUS_ACTIVE
        await session.flush()
        await service.audit(
            None,
            "SUPERADMIN_CREATED" if created else "SUPERADMIN_RESET",
            "admin",
            admin.id,
            {"email": admin.email, "source": "cli"},
        )
    return created


def main(argv=None) -> None:
    args = parse_args(argv)
    created = asyncio.run(create_superadmin(args.email, args.password, args.name))
    print(f"Superadmin {'created' if created else 'reset'}: {args.email.strip().lower()}")


if __name__ == "__main__":
    main()
