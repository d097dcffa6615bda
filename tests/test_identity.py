"""
Tests for FirebaseIdentityVerifier.

google-auth's verify_firebase_token is patched; these tests cover error
mapping, issuer checks and caching.
"""

import time
from unittest.mock import patch

import pytest
from google.auth import exceptions as google_exceptions

from app.exceptions import AuthenticationError, CredentialExpiredError, VerifierUnavailableError
from app.services.identity import CACHE_EXPIRY_BUFFER_SECONDS, FirebaseIdentityVerifier

VERIFY = "app.services.identity.id_token.verify_firebase_token"


def firebase_claims(sub: str = "uid-1", project: str = "test-project", exp: float | None = None):
    return {
        "iss": f"https://securetoken.google.com/{project}",
        "aud": project,
        "sub": sub,
        "exp": exp if exp is not None else time.time() + 3600,
        "email": "user@example.com",
    }


@pytest.fixture
def verifier() -> FirebaseIdentityVerifier:
    return FirebaseIdentityVerifier(project_id="test-project", max_cache_size=3)


class TestVerify:
    """Tests for credential verification."""

    @pytest.mark.asyncio
    async def test_valid_token_returns_identity(self, verifier):
        with patch(VERIFY, return_value=firebase_claims()) as mock_verify:
            identity = await verifier.verify("good-token")

        assert identity.user_id == "uid-1"
        assert identity.email == "user@example.com"
        assert mock_verify.call_args.args[0] == "good-token"
        assert mock_verify.call_args.args[2] == "test-project"

    @pytest.mark.parametrize("credential", [None, "", "   "])
    @pytest.mark.asyncio
    async def test_missing_credential(self, verifier, credential):
        with pytest.raises(AuthenticationError):
            await verifier.verify(credential)

    @pytest.mark.asyncio
    async def test_expired_token(self, verifier):
        with patch(VERIFY, side_effect=ValueError("Token expired, 1700000000 < 1700000100")):
            with pytest.raises(CredentialExpiredError):
                await verifier.verify("old-token")

    @pytest.mark.asyncio
    async def test_bad_signature(self, verifier):
        with patch(VERIFY, side_effect=ValueError("Could not verify token signature.")):
            with pytest.raises(AuthenticationError) as exc_info:
                await verifier.verify("forged")

        assert not isinstance(exc_info.value, CredentialExpiredError)

    @pytest.mark.asyncio
    async def test_wrong_issuer(self, verifier):
        with patch(VERIFY, return_value=firebase_claims(project="other-project")):
            with pytest.raises(AuthenticationError):
                await verifier.verify("foreign-token")

    @pytest.mark.asyncio
    async def test_missing_subject(self, verifier):
        claims = firebase_claims()
        del claims["sub"]
        with patch(VERIFY, return_value=claims):
            with pytest.raises(AuthenticationError):
                await verifier.verify("no-sub")

    @pytest.mark.asyncio
    async def test_certs_unreachable(self, verifier):
        with patch(VERIFY, side_effect=google_exceptions.TransportError("connection reset")):
            with pytest.raises(VerifierUnavailableError):
                await verifier.verify("any-token")

    @pytest.mark.asyncio
    async def test_unconfigured_project(self):
        verifier = FirebaseIdentityVerifier(project_id="")

        with pytest.raises(VerifierUnavailableError):
            await verifier.verify("any-token")


class TestCache:
    """Tests for the verified-credential cache."""

    @pytest.mark.asyncio
    async def test_second_call_uses_cache(self, verifier):
        with patch(VERIFY, return_value=firebase_claims()) as mock_verify:
            await verifier.verify("good-token")
            await verifier.verify("good-token")

        assert mock_verify.call_count == 1

    @pytest.mark.asyncio
    async def test_near_expiry_entry_not_served(self, verifier):
        exp = time.time() + CACHE_EXPIRY_BUFFER_SECONDS - 1
        with patch(VERIFY, return_value=firebase_claims(exp=exp)) as mock_verify:
            await verifier.verify("short-lived")
            await verifier.verify("short-lived")

        assert mock_verify.call_count == 2

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, verifier):
        with patch(VERIFY, side_effect=ValueError("bad")) as mock_verify:
            for _ in range(2):
                with pytest.raises(AuthenticationError):
                    await verifier.verify("bad-token")

        assert mock_verify.call_count == 2

    @pytest.mark.asyncio
    async def test_cache_bounded(self, verifier):
        with patch(VERIFY, side_effect=lambda token, *_: firebase_claims(sub=token)):
            for i in range(10):
                await verifier.verify(f"token-{i}")

        assert len(verifier._cache) <= verifier.max_cache_size

    @pytest.mark.asyncio
    async def test_clear_cache(self, verifier):
        with patch(VERIFY, return_value=firebase_claims()) as mock_verify:
            await verifier.verify("good-token")
            verifier.clear_cache()
            await verifier.verify("good-token")

        assert mock_verify.call_count == 2
