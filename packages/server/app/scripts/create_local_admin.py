"""
Script to create (or promote) an admin user with a password.

    python -m app.scripts.create_local_admin --email admin@example.com --password 'Secret123' --name Admin
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from monorepo_shared.schemas.common import UserRole
from monorepo_shared.schemas.users import User
from monorepo_shared.utils import normalize_email, validate_email

from app.core.config import get_settings
from app.core.database import build_engine, init_db
from app.core.passwords import PasswordHasher, validate_password_strength
from app.repositories.base import NewUser, Repositories
from app.repositories.sql import create_sql_repositories


async def create_admin(
    repositories: Repositories,
    passwords: PasswordHasher,
    email: str,
    password: str,
    name: str,
) -> tuple[User, bool]:
    """Create the admin, or promote an existing user and reset their password.

    Returns (user, created).
    """
    email = normalize_email(email)
    if not validate_email(email):
        raise ValueError(f"Invalid email: {email}")
    strength = validate_password_strength(password)
    if not strength.valid:
        raise ValueError("; ".join(strength.errors))

    password_hash = passwords.hash(password)
    existing = await repositories.users.find_by_email(email)
    if existing is None:
        user = await repositories.users.create(
            NewUser(
                email=email,
                name=name,
                password_hash=password_hash,
                role=UserRole.ADMIN,
                email_verified=True,
            )
        )
        return user, True

    user = await repositories.users.update(
        existing.id, role=UserRole.ADMIN, password_hash=password_hash, email_verified=True
    )
    return user, False


async def main(email: str, password: str, name: str, create_tables: bool) -> int:
    settings = get_settings()
    engine = build_engine(settings)
    if create_tables:
        await init_db(engine)
    repositories = create_sql_repositories(engine)
    try:
        user, created = await create_admin(
            repositories, PasswordHasher(settings.bcrypt_rounds), email, password, name
        )
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        await repositories.aclose()

    print(f"{'Created' if created else 'Promoted'} admin {user.email} ({user.id}).")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a local admin user.")
    parser.add_argument("--email", required=True, help="Email address for the user")
    parser.add_argument("--password", required=True, help="Password for the user")
    parser.add_argument("--name", default="Admin", help="Display name")
    parser.add_argument("--create-tables", action="store_true", help="Create tables first (dev databases)")

    args = parser.parse_args()

    sys.exit(asyncio.run(main(args.email, args.password, args.name, args.create_tables)))
