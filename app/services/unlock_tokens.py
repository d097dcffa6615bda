"""
Unlock Token Store - Single-use, time-boxed tokens bound to one user.

Tokens are never deleted here; they retire by expiring or by being used.
"""

import secrets
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import UnlockToken
from app.models.domain import TokenRecord

logger = get_logger(__name__)

# 32 random bytes -> 43 URL-safe characters
TOKEN_BYTES = 32


class UnlockTokenStore:
    """Lookup, issue and consume unlock tokens."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize store with database session."""
        self.session = session

    async def lookup(self, token: str) -> TokenRecord | None:
        """Find a token, or None if it was never issued."""
        stmt = select(UnlockToken).where(UnlockToken.token == token)
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return self._to_domain(row) if row is not None else None

    async def lookup_for_update(self, token: str) -> TokenRecord | None:
        """Find a token and lock its row for the rest of the transaction."""
        stmt = select(UnlockToken).where(UnlockToken.token == token).with_for_update()
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return self._to_domain(row) if row is not None else None

    async def mark_used(self, token: str, now: datetime) -> bool:
        """
        Flip `used` from false to true (compare-and-set).

        Returns True only for the single caller whose update matched an
        unused row; every other caller gets False.
        """
        stmt = (
            update(UnlockToken)
            .where(UnlockToken.token == token, UnlockToken.used.is_(False))
            .values(used=True, used_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        won = result.rowcount == 1  # type: ignore[attr-defined]
        if won:
            await self.session.flush()
        return won

    async def issue(self, user_id: str, now: datetime, ttl: timedelta) -> TokenRecord:
        """Create a fresh token bound to `user_id`, valid until `now + ttl`."""
        if not user_id:
            raise ValueError("user_id cannot be empty")
        if ttl <= timedelta(0):
            raise ValueError(f"ttl must be positive: {ttl}")

        row = UnlockToken(
            token=secrets.token_urlsafe(TOKEN_BYTES),
            user_id=user_id,
            expires_at=now + ttl,
            used=False,
            used_at=None,
            created_at=now,
        )
        self.session.add(row)
        await self.session.flush()

        logger.info(
            "unlock_token_issued",
            user_id=user_id,
            token_prefix=row.token[:8],
            expires_at=row.expires_at.isoformat(),
        )
        return self._to_domain(row)

    @staticmethod
    def _to_domain(row: UnlockToken) -> TokenRecord:
        """Convert ORM token to domain model."""
        return TokenRecord(
            token=row.token,
            user_id=row.user_id,
            expires_at=row.expires_at,
            used=row.used,
            used_at=row.used_at,
            created_at=row.created_at,
        )
