"""
Access API routes - The caller's own access record.
"""

from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.api.dependencies import get_verified_identity
from app.db.session import get_db
from app.models.api import AccessStatusResponse
from app.models.domain import AccessRecord, VerifiedIdentity, to_epoch_millis
from app.observability.metrics import metrics
from app.services.access_ledger import AccessLedger

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/access", tags=["access"])


def _to_response(record: AccessRecord, now: datetime) -> AccessStatusResponse:
    return AccessStatusResponse(
        user_id=record.user_id,
        has_access=record.is_entitled(now),
        access_expiry=to_epoch_millis(record.access_expiry),
        access_count=record.access_count,
        tools_used=record.tools_used,
        last_used=to_epoch_millis(record.last_used) if record.last_used else None,
        last_access_unlock=(
            to_epoch_millis(record.last_access_unlock) if record.last_access_unlock else None
        ),
    )


def _store_unavailable(exc: SQLAlchemyError, operation: str) -> HTTPException:
    metrics.record_error(type(exc).__name__, operation)
    logger.error("access_store_failure", operation=operation, error=str(exc))
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Service temporarily unavailable, please try again",
    )


@router.get("/status", response_model=AccessStatusResponse)
async def get_access_status(
    identity: Annotated[VerifiedIdentity, Depends(get_verified_identity)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AccessStatusResponse:
    """
    Get the caller's access window and usage counters.

    Returns 404 if the caller has never registered.
    """
    ledger = AccessLedger(db)

    try:
        record = await ledger.get(identity.user_id)
    except SQLAlchemyError as e:
        raise _store_unavailable(e, "access_status") from e

    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    return _to_response(record, datetime.now(UTC))


@router.post("/register", response_model=AccessStatusResponse)
async def register_access_record(
    identity: Annotated[VerifiedIdentity, Depends(get_verified_identity)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AccessStatusResponse:
    """
    Create the caller's access record if it does not exist yet.

    Idempotent. A new record carries no entitlement until a token is redeemed.
    """
    ledger = AccessLedger(db)
    now = datetime.now(UTC)

    try:
        record = await ledger.ensure_record(identity.user_id, now)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise _store_unavailable(e, "register") from e

    return _to_response(record, now)
