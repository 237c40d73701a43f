#!/usr/bin/env python3
"""CLI script for the monthly usage reset.

Usage:
    uv run python scripts/reset_usage.py
    uv run python scripts/reset_usage.py --dry-run

Zeroes usage counters for every profile whose usage period began before
the current calendar month. Profiles are also rolled over lazily on their
next request, so running this from cron only keeps the table tidy.
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


async def reset(dry_run: bool) -> None:
    from sqlalchemy import func, select

    from src.copilot.core.database import close_db, get_system_session, get_user_session
    from src.copilot.models.profile import Profile
    from src.copilot.profiles.repository import ProfileRepository
    from src.copilot.usage.limits import current_period_start

    period_start = current_period_start()
    print(f"Resetting usage for periods before {period_start.isoformat()}")

    if dry_run:
        async for session in get_system_session():
            result = await session.execute(
                select(func.count()).select_from(Profile).where(Profile.usage_period_start < period_start)
            )
            print(f"  Profiles due: {result.scalar_one()}")
    else:
        repository = ProfileRepository(get_user_session, get_system_session)
        count = await repository.reset_all_usage(period_start)
        print(f"  Profiles reset: {count}")

    await close_db()


def main() -> None:
    parser = argparse.ArgumentParser(description="Reset monthly usage counters")
    parser.add_argument("--dry-run", action="store_true", help="Only count profiles due for reset")
    args = parser.parse_args()
    asyncio.run(reset(args.dry_run))


if __name__ == "__main__":
    main()
