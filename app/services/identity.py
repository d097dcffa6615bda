"""
Identity Verifier - Resolves a Firebase ID token to a stable user id.

Signature, audience and expiry are checked by google-auth against Google's
published signing keys; the issuer is checked here. Verified credentials are
cached until shortly before they expire.
"""

import asyncio
import time

from google.auth import exceptions as google_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token
from structlog import get_logger

from app.config import settings
from app.exceptions import AuthenticationError, CredentialExpiredError, VerifierUnavailableError
from app.models.domain import VerifiedIdentity

logger = get_logger(__name__)

# Cached entries are dropped this many seconds before the credential's `exp`
CACHE_EXPIRY_BUFFER_SECONDS = 60


class FirebaseIdentityVerifier:
    """
    Verify Firebase ID tokens.

    Usage:
        identity = await identity_verifier.verify(bearer_token)
        identity.user_id  # Firebase uid (`sub` claim)
    """

    def __init__(self, project_id: str, max_cache_size: int = 10000) -> None:
        self.project_id = project_id
        self.issuer = f"https://securetoken.google.com/{project_id}"
        self.max_cache_size = max_cache_size
        # credential -> (identity, cache_until)
        self._cache: dict[str, tuple[VerifiedIdentity, float]] = {}
        self._request = google_requests.Request()

    async def verify(self, credential: str | None) -> VerifiedIdentity:
        """
        Verify a bearer credential and return the identity it proves.

        Raises:
            AuthenticationError: Absent, malformed, wrongly signed or foreign credential
            CredentialExpiredError: The credential's validity window has passed
            VerifierUnavailableError: Signing keys could not be fetched
        """
        if not credential or not credential.strip():
            raise AuthenticationError("Credential required")

        if not self.project_id:
            raise VerifierUnavailableError("no Firebase project configured")

        cached = self._get_cached(credential)
        if cached is not None:
            return cached

        try:
            claims = await asyncio.to_thread(
                id_token.verify_firebase_token,
                credential,
                self._request,
                self.project_id,
            )
        except google_exceptions.TransportError as exc:
            logger.error("identity_certs_fetch_failed", error=str(exc))
            raise VerifierUnavailableError(str(exc)) from exc
        except ValueError as exc:
            message = str(exc)
            if "expired" in message.lower():
                raise CredentialExpiredError() from exc
            logger.info("identity_verification_failed", error=message)
            raise AuthenticationError("Invalid token") from exc

        if claims.get("iss") != self.issuer:
            logger.warning("identity_wrong_issuer", issuer=claims.get("iss"))
            raise AuthenticationError("Invalid token issuer")

        user_id = claims.get("sub")
        if not user_id:
            raise AuthenticationError("Invalid token: missing user ID")

        identity = VerifiedIdentity(
            user_id=user_id,
            expires_at=float(claims.get("exp", time.time() + 3600)),
            email=claims.get("email"),
        )
        self._store(credential, identity)
        return identity

    def _get_cached(self, credential: str) -> VerifiedIdentity | None:
        """Return a cached identity if still fresh, evicting it otherwise."""
        entry = self._cache.get(credential)
        if entry is None:
            return None
        identity, cache_until = entry
        if time.time() < cache_until:
            return identity
        del self._cache[credential]
        return None

    def _store(self, credential: str, identity: VerifiedIdentity) -> None:
        """Cache a verified identity, sweeping expired entries when full."""
        if len(self._cache) >= self.max_cache_size:
            now = time.time()
            expired = [k for k, (_, until) in self._cache.items() if until <= now]
            for k in expired:
                del self._cache[k]
            if len(self._cache) >= self.max_cache_size:
                self._cache.clear()

        self._cache[credential] = (
            identity,
            identity.expires_at - CACHE_EXPIRY_BUFFER_SECONDS,
        )

    def clear_cache(self) -> None:
        """Drop every cached identity."""
        self._cache.clear()


# Global singleton
identity_verifier = FirebaseIdentityVerifier(
    project_id=settings.firebase_project_id,
    max_cache_size=settings.identity_cache_max_size,
)
