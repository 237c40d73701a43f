#!/usr/bin/env python3
"""CLI script to create a creator account.

Usage:
    uv run python scripts/create_user.py --email ana@example.com --password changeme123
    uv run python scripts/create_user.py --email ops@example.com --password changeme123 --name "Ops" --admin

Connects directly to the database using DATABASE_URL from environment or .env file.
Creates the schemas and tables if needed, then a free-tier profile.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Ensure project root is on sys.path so we can import src.copilot
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


async def create_user(
    email: str,
    password: str,
    name: str | None,
    niche: str | None,
    admin: bool,
) -> int:
    from src.copilot.core.database import close_db, get_system_session, get_user_session, init_db
    from src.copilot.core.security import hash_password
    from src.copilot.profiles.repository import ProfileExistsError, ProfileRepository
    from src.copilot.usage.limits import SubscriptionTier, current_period_start, tier_limits

    await init_db()
    repository = ProfileRepository(get_user_session, get_system_session)
    try:
        profile = await repository.create_profile(
            email=email,
            hashed_password=hash_password(password),
            full_name=name,
            niche=niche,
            usage_limits=tier_limits(SubscriptionTier.FREE),
            usage_period_start=current_period_start(),
        )
    except ProfileExistsError:
        print(f"An account with email {email} already exists", file=sys.stderr)
        await close_db()
        return 1

    if admin:
        await repository.set_admin(profile.id, True)

    print("User created:")
    print(f"  ID:    {profile.id}")
    print(f"  Email: {profile.email}")
    print(f"  Admin: {admin}")
    await close_db()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a creator account")
    parser.add_argument("--email", required=True, help="Login email")
    parser.add_argument("--password", required=True, help="Password (min 8 characters)")
    parser.add_argument("--name", default=None, help="Full name")
    parser.add_argument("--niche", default=None, help="Content niche (e.g., fitness)")
    parser.add_argument("--admin", action="store_true", help="Grant admin rights")
    args = parser.parse_args()

    if len(args.password) < 8:
        parser.error("--password must be at least 8 characters")

    sys.exit(asyncio.run(create_user(args.email, args.password, args.name, args.niche, args.admin)))


if __name__ == "__main__":
    main()
