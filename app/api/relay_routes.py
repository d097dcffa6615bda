"""
Relay API routes - AI chat (gated and metered) and shortlink generation.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.api.dependencies import get_verified_identity
from app.db.session import get_db
from app.exceptions import StoreUnavailableError, UpstreamServiceError
from app.models.api import (
    ChatRequest,
    ChatResponse,
    DenialReason,
    ShortlinkRequest,
    ShortlinkResponse,
)
from app.models.domain import AccessDecision, VerifiedIdentity
from app.observability.metrics import metrics
from app.services.entitlement import EntitlementService
from app.services.relays import chat_relay, shortlink_client

logger = get_logger(__name__)
router = APIRouter(prefix="/v1", tags=["relays"])


def _raise_for_denial(decision: AccessDecision) -> None:
    """Map a denied decision to its HTTP error."""
    if decision.allowed or decision.reason is None:
        return
    status_code = (
        status.HTTP_404_NOT_FOUND
        if decision.reason is DenialReason.NO_RECORD
        else status.HTTP_403_FORBIDDEN
    )
    raise HTTPException(status_code=status_code, detail=decision.reason.message)


@router.post("/ai/chat", response_model=ChatResponse)
async def ai_chat(
    request: ChatRequest,
    identity: Annotated[VerifiedIdentity, Depends(get_verified_identity)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ChatResponse:
    """
    Relay a chat conversation to the AI provider.

    Requires an open access window. One use is metered per successful reply.
    """
    service = EntitlementService(db)

    async def complete() -> str:
        return await chat_relay.complete(request.messages, request.max_tokens)

    try:
        gated = await service.authorize_and_use(identity.user_id, complete, "ai_chat")
    except StoreUnavailableError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service temporarily unavailable, please try again",
        ) from e
    except UpstreamServiceError as e:
        metrics.record_error(type(e).__name__, "ai_chat")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="AI service error",
        ) from e

    _raise_for_denial(gated.decision)

    return ChatResponse(success=True, response=gated.value or "")


@router.post("/shortlink", response_model=ShortlinkResponse)
async def create_shortlink(
    request: ShortlinkRequest,
    identity: Annotated[VerifiedIdentity, Depends(get_verified_identity)],
) -> ShortlinkResponse:
    """
    Shorten a URL (typically the unlock link) for the caller.

    Not gated by the access window: it is part of the unlock flow itself.
    The body's userId must match the authenticated user.
    """
    if identity.user_id != request.user_id:
        logger.warning(
            "shortlink_user_mismatch",
            token_user_id=identity.user_id,
            body_user_id=request.user_id,
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    try:
        short_url = await shortlink_client.shorten(request.url)
    except UpstreamServiceError as e:
        metrics.record_error(type(e).__name__, "shortlink")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Shortlink failed",
        ) from e

    return ShortlinkResponse(success=True, short_url=short_url)
