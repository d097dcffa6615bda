#!/usr/bin/env python3
"""
Issue Unlock Token Script

Issues a single-use unlock token for a user, for support and QA.
Optionally registers the user's access record first.

Usage:
    python scripts/issue_unlock_token.py USER_ID [--ttl-minutes 5] [--register]
"""

import argparse
import asyncio
import os
import sys
from datetime import UTC, datetime, timedelta

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import structlog

from app.config import settings
from app.db.session import close_engine, get_session_factory
from app.models.domain import to_epoch_millis
from app.services.access_ledger import AccessLedger
from app.services.unlock_tokens import UnlockTokenStore

logger = structlog.get_logger()


async def issue(user_id: str, ttl: timedelta, register: bool) -> None:
    """Issue one token and print it with its expiry."""
    factory = get_session_factory()
    now = datetime.now(UTC)

    try:
        async with factory() as session:
            if register:
                await AccessLedger(session).ensure_record(user_id, now)
            record = await UnlockTokenStore(session).issue(user_id, now, ttl)
            await session.commit()
    finally:
        await close_engine()

    logger.info(
        "unlock_token_issued_by_script",
        user_id=user_id,
        expires_at=record.expires_at.isoformat(),
    )
    print(f"token={record.token}")
    print(f"expires_at_ms={to_epoch_millis(record.expires_at)}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Issue a single-use unlock token")
    parser.add_argument("user_id", help="User the token is bound to")
    parser.add_argument(
        "--ttl-minutes",
        type=int,
        default=settings.unlock_token_ttl_minutes,
        help="Token validity window in minutes",
    )
    parser.add_argument(
        "--register",
        action="store_true",
        help="Create the user's access record if it does not exist",
    )
    args = parser.parse_args()

    if args.ttl_minutes <= 0:
        parser.error("--ttl-minutes must be positive")

    asyncio.run(issue(args.user_id, timedelta(minutes=args.ttl_minutes), args.register))


if __name__ == "__main__":
    main()
