"""
Redemption Service - Consumes an unlock token to extend a user's access window.

Checks run in a fixed order and the first failure wins:
1. token exists                 -> TOKEN_NOT_FOUND
2. token not used               -> ALREADY_USED
3. token bound to this user     -> USER_MISMATCH
4. now <= token expiry          -> TOKEN_EXPIRED
5. bound user has a ledger row  -> GRANT_USER_NOT_FOUND

Marking the token used and granting the window happen in one transaction with
a single commit. Any rejection or failure rolls back both.
"""

import time
from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.config import settings
from app.exceptions import RedemptionRejectedError, StoreUnavailableError, UserNotFoundError
from app.models.api import RedemptionReason
from app.models.domain import RedemptionRequest, RedemptionResult
from app.observability.metrics import metrics
from app.observability.tracing import trace_operation
from app.services.access_ledger import AccessLedger
from app.services.unlock_tokens import UnlockTokenStore

logger = get_logger(__name__)


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class RedemptionService:
    """Redemption state machine over the token store and the access ledger."""

    def __init__(
        self,
        session: AsyncSession,
        tokens: UnlockTokenStore | None = None,
        ledger: AccessLedger | None = None,
    ) -> None:
        self.session = session
        self.tokens = tokens or UnlockTokenStore(session)
        self.ledger = ledger or AccessLedger(session)

    async def redeem(self, request: RedemptionRequest) -> RedemptionResult:
        """
        Redeem `request.token` on behalf of `request.user_id`.

        Business rejections are returned, not raised, and leave no trace in
        the store.

        Raises:
            StoreUnavailableError: The store failed; nothing was committed
        """
        start = time.perf_counter()
        now = _utc_now()

        with trace_operation("redeem_unlock_token", user_id=request.user_id) as span:
            try:
                new_expiry = await self._consume(request, now)
                await self.session.commit()
            except RedemptionRejectedError as exc:
                await self.session.rollback()
                span.set_attribute("outcome", exc.reason.value)
                metrics.record_redemption(exc.reason.value, time.perf_counter() - start)
                logger.info(
                    "redemption_rejected",
                    user_id=request.user_id,
                    reason=exc.reason.value,
                )
                return RedemptionResult.rejected(exc.reason)
            except SQLAlchemyError as exc:
                await self.session.rollback()
                metrics.record_error(type(exc).__name__, "redeem")
                logger.error(
                    "redemption_store_failure",
                    user_id=request.user_id,
                    error=str(exc),
                    exc_info=True,
                )
                raise StoreUnavailableError(str(exc)) from exc

            span.set_attribute("outcome", "consumed")

        metrics.record_redemption("consumed", time.perf_counter() - start)
        logger.info(
            "redemption_consumed",
            user_id=request.user_id,
            token_prefix=request.token[:8],
            new_expiry=new_expiry.isoformat(),
        )
        return RedemptionResult.consumed(new_expiry, settings.access_window_hours)

    async def _consume(self, request: RedemptionRequest, now: datetime) -> datetime:
        """Validate and consume inside the open transaction. Returns the new expiry."""
        token = await self.tokens.lookup_for_update(request.token)

        if token is None:
            raise RedemptionRejectedError(RedemptionReason.TOKEN_NOT_FOUND)

        if token.used:
            raise RedemptionRejectedError(RedemptionReason.ALREADY_USED)

        if token.user_id != request.user_id:
            raise RedemptionRejectedError(RedemptionReason.USER_MISMATCH)

        if token.is_expired(now):
            raise RedemptionRejectedError(RedemptionReason.TOKEN_EXPIRED)

        if await self.ledger.lock(token.user_id) is None:
            raise RedemptionRejectedError(RedemptionReason.GRANT_USER_NOT_FOUND)

        # Lost the compare-and-set to a concurrent redemption
        if not await self.tokens.mark_used(token.token, now):
            raise RedemptionRejectedError(RedemptionReason.ALREADY_USED)

        try:
            return await self.ledger.grant_window(token.user_id, settings.access_window, now)
        except UserNotFoundError as exc:
            raise RedemptionRejectedError(RedemptionReason.GRANT_USER_NOT_FOUND) from exc
