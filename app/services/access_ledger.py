"""
Access Ledger - Per-user entitlement and usage records.

The ledger is the single authority for entitlement. Counters are incremented
in SQL so concurrent writers never lose an update. Methods flush but never
commit; the calling service owns the transaction.
"""

from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import User
from app.exceptions import UserNotFoundError
from app.models.domain import AccessRecord

logger = get_logger(__name__)


class AccessLedger:
    """Read and mutate access records through increment-only operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ledger with database session."""
        self.session = session

    async def get(self, user_id: str) -> AccessRecord | None:
        """Get a user's access record, or None if the user has none."""
        stmt = select(User).where(User.user_id == user_id)
        result = await self.session.execute(stmt)
        user = result.scalar_one_or_none()
        return self._to_domain(user) if user is not None else None

    async def lock(self, user_id: str) -> AccessRecord | None:
        """
        Lock the user's row for the rest of the transaction (SELECT FOR UPDATE).

        Returns None if the user has no record.
        """
        stmt = select(User).where(User.user_id == user_id).with_for_update()
        result = await self.session.execute(stmt)
        user = result.scalar_one_or_none()
        return self._to_domain(user) if user is not None else None

    async def grant_window(self, user_id: str, duration: timedelta, now: datetime) -> datetime:
        """
        Reset the access window to `now + duration` and count the unlock.

        The window does not stack with unused remaining time.

        Raises:
            UserNotFoundError: User has no access record
        """
        new_expiry = now + duration
        stmt = (
            update(User)
            .where(User.user_id == user_id)
            .values(
                access_expiry=new_expiry,
                access_count=User.access_count + 1,
                last_access_unlock=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:  # type: ignore[attr-defined]
            raise UserNotFoundError(user_id)

        await self.session.flush()
        logger.info(
            "access_window_granted",
            user_id=user_id,
            new_expiry=new_expiry.isoformat(),
            window_seconds=int(duration.total_seconds()),
        )
        return new_expiry

    async def record_usage(self, user_id: str, now: datetime) -> None:
        """
        Count one privileged operation for the user.

        Raises:
            UserNotFoundError: User has no access record
        """
        stmt = (
            update(User)
            .where(User.user_id == user_id)
            .values(tools_used=User.tools_used + 1, last_used=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:  # type: ignore[attr-defined]
            raise UserNotFoundError(user_id)

        await self.session.flush()

    async def ensure_record(self, user_id: str, now: datetime) -> AccessRecord:
        """
        Get the user's record, creating an unentitled one if absent.

        A new record expires at `now`, so it grants nothing until a redemption.
        """
        existing = await self.get(user_id)
        if existing is not None:
            return existing

        user = User(
            user_id=user_id,
            access_expiry=now,
            access_count=0,
            tools_used=0,
            created_at=now,
            updated_at=now,
        )
        self.session.add(user)

        try:
            await self.session.flush()
        except IntegrityError:
            # Race condition - record created by another request
            await self.session.rollback()
            existing = await self.get(user_id)
            if existing is None:
                raise
            return existing

        logger.info("access_record_created", user_id=user_id)
        return self._to_domain(user)

    @staticmethod
    def _to_domain(user: User) -> AccessRecord:
        """Convert ORM user to domain model."""
        return AccessRecord(
            user_id=user.user_id,
            access_expiry=user.access_expiry,
            access_count=user.access_count,
            tools_used=user.tools_used,
            last_used=user.last_used,
            last_access_unlock=user.last_access_unlock,
        )
