#!/usr/bin/env python3
"""Seed a development database with sample users, an OAuth link and items.

Usage:
    python scripts/seed_dev_data.py [--create-tables]

Uses DATABASE_URL (or the default from app settings). Every seeded user with
a password logs in with "Password123". Safe to re-run.
"""

import argparse
import asyncio

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import build_engine, build_session_factory, init_db, session_scope
from app.core.passwords import PasswordHasher

SEED_PASSWORD = "Password123"

# Fixed ids so re-runs and docs can refer to them
ADMIN_ID = "user_01h2xcejqtf2nbrexx3vqjhp41"
JOHN_ID = "user_01h2xcejqtf2nbrexx3vqjhp42"
JANE_ID = "user_01h2xcejqtf2nbrexx3vqjhp43"
MOD_ID = "user_01h2xcejqtf2nbrexx3vqjhp44"
OAUTH_USER_ID = "user_01h2xcejqtf2nbrexx3vqjhp45"

AVATAR = "https://api.dicebear.com/7.x/avataaars/svg?seed={}"

USERS = [
    # (id, email, name, role, has_password, avatar)
    (ADMIN_ID, "admin@example.com", "Admin User", "admin", True, AVATAR.format("admin")),
    (JOHN_ID, "john.doe@example.com", "John Doe", "user", True, AVATAR.format("john")),
    (JANE_ID, "jane.smith@example.com", "Jane Smith", "user", True, AVATAR.format("jane")),
    (MOD_ID, "mod@example.com", "Moderator User", "moderator", True, AVATAR.format("mod")),
    (OAUTH_USER_ID, "oauth.user@gmail.com", "OAuth User", "user", False,
     "https://lh3.googleusercontent.com/a/default-user"),
]

OAUTH_ACCOUNTS = [
    ("oauth_01h2xcejqtf2nbrexx3vqjhp01", OAUTH_USER_ID, "google", "117098765432109876543"),
]

ITEMS = [
    ("item_01h2xcejqtf2nbrexx3vqjhp01", JOHN_ID, "Complete project setup",
     "Set up the monorepo with FastAPI and the shared schema package", "completed"),
    ("item_01h2xcejqtf2nbrexx3vqjhp02", JOHN_ID, "Implement authentication",
     "Add JWT auth with social login support", "active"),
    ("item_01h2xcejqtf2nbrexx3vqjhp03", JANE_ID, "Design system components",
     "Create reusable UI components", "active"),
    ("item_01h2xcejqtf2nbrexx3vqjhp04", JANE_ID, "Write API documentation",
     "Document all REST endpoints with examples", "active"),
    ("item_01h2xcejqtf2nbrexx3vqjhp05", ADMIN_ID, "Set up CI/CD pipeline",
     "Configure automated deployments", "completed"),
    ("item_01h2xcejqtf2nbrexx3vqjhp06", ADMIN_ID, "Security audit",
     "Review authentication flow and fix vulnerabilities", "active"),
]


async def seed(session: AsyncSession, password_hash: str) -> dict:
    """Insert the sample rows, skipping any that already exist."""
    for uid, email, name, role, has_password, avatar in USERS:
        await session.execute(text("""
            INSERT INTO users (id, email, password_hash, name, role, email_verified, avatar_url)
            VALUES (:id, :email, :password_hash, :name, :role, :verified, :avatar)
            ON CONFLICT (email) DO UPDATE SET name = excluded.name, role = excluded.role
        """), {
            "id": uid,
            "email": email,
            "password_hash": password_hash if has_password else None,
            "name": name,
            "role": role,
            "verified": True,
            "avatar": avatar,
        })

    for oid, uid, provider, account_id in OAUTH_ACCOUNTS:
        await session.execute(text("""
            INSERT INTO oauth_accounts (id, user_id, provider, provider_account_id)
            VALUES (:id, :uid, :provider, :account_id)
            ON CONFLICT (provider, provider_account_id) DO NOTHING
        """), {"id": oid, "uid": uid, "provider": provider, "account_id": account_id})

    for iid, uid, title, description, status in ITEMS:
        await session.execute(text("""
            INSERT INTO items (id, user_id, title, description, status)
            VALUES (:id, :uid, :title, :description, :status)
            ON CONFLICT (id) DO NOTHING
        """), {"id": iid, "uid": uid, "title": title, "description": description, "status": status})

    return {"users": len(USERS), "oauth_accounts": len(OAUTH_ACCOUNTS), "items": len(ITEMS)}


async def main(create_tables: bool) -> None:
    settings = get_settings()
    engine = build_engine(settings)
    if create_tables:
        await init_db(engine)

    password_hash = PasswordHasher(settings.bcrypt_rounds).hash(SEED_PASSWORD)
    async with session_scope(build_session_factory(engine)) as session:
        counts = await seed(session, password_hash)

    await engine.dispose()
    print(
        f"Seeded {counts['users']} users, {counts['oauth_accounts']} OAuth account, "
        f"{counts['items']} items. Password: {SEED_PASSWORD}"
    )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed development data.")
    parser.add_argument("--create-tables", action="store_true", help="Create tables first")
    args = parser.parse_args()
    asyncio.run(main(args.create_tables))
