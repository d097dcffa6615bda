"""
FastAPI Dependencies - Authentication.

All dependencies return typed objects.
"""

import secrets
from typing import NoReturn

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from structlog import get_logger

from app.config import settings
from app.exceptions import AuthenticationError, CredentialExpiredError, VerifierUnavailableError
from app.models.domain import VerifiedIdentity
from app.observability.metrics import metrics
from app.services.identity import identity_verifier

logger = get_logger(__name__)

# Bearer token scheme for Firebase ID tokens
bearer_scheme = HTTPBearer(auto_error=False)


def _raise_auth_error(detail: str) -> NoReturn:
    """Raise a 401 with the Bearer challenge header."""
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_verified_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> VerifiedIdentity:
    """
    FastAPI dependency to validate a Firebase ID token from the Authorization header.

    Accepts: Authorization: Bearer {firebase_id_token}

    Usage:
        @router.post("/v1/ai/chat")
        async def chat(identity: VerifiedIdentity = Depends(get_verified_identity)):
            # identity.user_id is the Firebase uid
            pass

    Raises:
        HTTPException 401 if no token, invalid token or expired token
        HTTPException 503 if the signing keys are unreachable
    """
    if credentials is None:
        _raise_auth_error("Unauthorized")

    try:
        return await identity_verifier.verify(credentials.credentials)
    except CredentialExpiredError:
        _raise_auth_error("Token expired")
    except AuthenticationError:
        _raise_auth_error("Invalid token")
    except VerifierUnavailableError as exc:
        metrics.record_error(type(exc).__name__, "verify_identity")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication temporarily unavailable, please try again",
        ) from exc


async def require_issuer_api_key(
    x_api_key: str | None = Header(None, description="Token issuer API key"),
) -> None:
    """
    FastAPI dependency guarding token issuance (ad/survey postback).

    Raises:
        HTTPException 401 if the key is missing, wrong, or issuance is not configured
    """
    configured = settings.token_issuer_api_key
    if not configured:
        logger.warning("token_issuer_api_key_not_configured")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token issuance is disabled",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not x_api_key or not secrets.compare_digest(x_api_key, configured):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )
