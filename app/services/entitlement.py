"""
Entitlement Gate - Decides whether a user may perform a privileged operation.

authorize() is read-only. Usage is metered by authorize_and_use() strictly
after the privileged operation has succeeded.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Generic, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.exceptions import StoreUnavailableError, UserNotFoundError
from app.models.api import DenialReason
from app.models.domain import AccessDecision
from app.observability.metrics import metrics
from app.services.access_ledger import AccessLedger

logger = get_logger(__name__)

T = TypeVar("T")


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class GatedResult(Generic[T]):
    """Decision plus the privileged operation's result when it ran."""

    decision: AccessDecision
    value: T | None = None


class EntitlementService:
    """Entitlement gate over the access ledger."""

    def __init__(self, session: AsyncSession, ledger: AccessLedger | None = None) -> None:
        self.session = session
        self.ledger = ledger or AccessLedger(session)

    async def authorize(self, user_id: str) -> AccessDecision:
        """
        Allow iff the user has a record and `now < access_expiry`.

        Raises:
            StoreUnavailableError: The ledger could not be read
        """
        try:
            record = await self.ledger.get(user_id)
        except SQLAlchemyError as exc:
            metrics.record_error(type(exc).__name__, "authorize")
            logger.error("entitlement_store_failure", user_id=user_id, error=str(exc))
            raise StoreUnavailableError(str(exc)) from exc

        if record is None:
            decision = AccessDecision(allowed=False, reason=DenialReason.NO_RECORD)
        elif not record.is_entitled(_utc_now()):
            decision = AccessDecision(
                allowed=False,
                reason=DenialReason.EXPIRED,
                access_expiry=record.access_expiry,
            )
        else:
            decision = AccessDecision(allowed=True, access_expiry=record.access_expiry)

        metrics.record_entitlement_check(
            decision.allowed, decision.reason.value if decision.reason else None
        )
        logger.info(
            "entitlement_checked",
            user_id=user_id,
            allowed=decision.allowed,
            reason=decision.reason.value if decision.reason else None,
        )
        return decision

    async def authorize_and_use(
        self,
        user_id: str,
        operation: Callable[[], Awaitable[T]],
        operation_name: str,
    ) -> GatedResult[T]:
        """
        Gate, run the privileged operation, then meter it.

        The operation never runs on a denied decision, and usage is only
        recorded once the operation has returned. If the operation raises,
        the exception propagates and nothing is recorded.

        The read transaction opened by the check is ended before the
        operation runs, so no pooled connection is held across a slow
        upstream call.
        """
        decision = await self.authorize(user_id)
        await self.session.rollback()
        if not decision.allowed:
            return GatedResult(decision=decision)

        value = await operation()

        try:
            await self.ledger.record_usage(user_id, _utc_now())
            await self.session.commit()
        except UserNotFoundError:
            # Record removed by administration while the operation ran
            await self.session.rollback()
            logger.warning("usage_record_missing_user", user_id=user_id, operation=operation_name)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            metrics.record_error(type(exc).__name__, "record_usage")
            logger.error(
                "usage_record_failed", user_id=user_id, operation=operation_name, error=str(exc)
            )
            raise StoreUnavailableError(str(exc)) from exc
        else:
            metrics.record_usage(operation_name)

        return GatedResult(decision=decision, value=value)
