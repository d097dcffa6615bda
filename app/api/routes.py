"""
API Routes - Unlock token redemption and issuance, health.

All requests/responses use Pydantic models.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.api.dependencies import require_issuer_api_key
from app.config import settings
from app.db.session import get_db
from app.exceptions import StoreUnavailableError
from app.models.api import (
    HealthResponse,
    IssueTokenRequest,
    IssueTokenResponse,
    RedeemRequest,
    RedeemResponse,
)
from app.models.domain import RedemptionRequest, to_epoch_millis
from app.observability.metrics import metrics
from app.services.redemption import RedemptionService
from app.services.unlock_tokens import UnlockTokenStore

logger = get_logger(__name__)
router = APIRouter()


def _redeem_failure(status_code: int, message: str) -> JSONResponse:
    """Error body with the same shape as a rejected redemption."""
    body = RedeemResponse(success=False, message=message)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
    )


@router.post("/api/verify", response_model=RedeemResponse)
async def redeem_unlock_token(
    request: RedeemRequest,
    db: AsyncSession = Depends(get_db),
) -> RedeemResponse | JSONResponse:
    """
    Redeem an unlock token to open a fresh access window.

    Business rejections (invalid link, already used, ...) are returned with
    HTTP 200 and `success: false`. Missing parameters return 400 and
    infrastructure faults return 500, both with the same body shape.
    """
    try:
        redemption = RedemptionRequest(user_id=request.user_id or "", token=request.token or "")
    except ValueError:
        return _redeem_failure(status.HTTP_400_BAD_REQUEST, "Missing parameters")

    service = RedemptionService(db)

    try:
        result = await service.redeem(redemption)
    except StoreUnavailableError:
        return _redeem_failure(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Verification failed, please try again"
        )

    return RedeemResponse(
        success=result.success,
        message=result.message,
        reason=result.reason,
        new_expiry=to_epoch_millis(result.new_expiry) if result.new_expiry else None,
    )


@router.post(
    "/v1/unlock/tokens",
    response_model=IssueTokenResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_issuer_api_key)],
)
async def issue_unlock_token(
    request: IssueTokenRequest,
    db: AsyncSession = Depends(get_db),
) -> IssueTokenResponse:
    """
    Issue a single-use unlock token bound to `userId`.

    Called by the ad/survey postback once the user has completed the flow.
    Requires: X-API-Key matching TOKEN_ISSUER_API_KEY.
    """
    store = UnlockTokenStore(db)

    try:
        record = await store.issue(request.user_id, datetime.now(UTC), settings.unlock_token_ttl)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        metrics.record_error(type(e).__name__, "issue_token")
        logger.error("unlock_token_issue_failed", user_id=request.user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service temporarily unavailable, please try again",
        ) from e

    metrics.tokens_issued_total.inc()

    return IssueTokenResponse(
        token=record.token,
        user_id=record.user_id,
        expires_at=to_epoch_millis(record.expires_at),
    )


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await db.execute(text("SELECT 1"))

        return HealthResponse(
            status="healthy",
            database="connected",
            timestamp=datetime.now(UTC).isoformat(),
        )

    except (SQLAlchemyError, OSError) as exc:
        logger.error("health_check_failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "timestamp": datetime.now(UTC).isoformat(),
            },
        ) from exc
