"""
Tests for domain dataclasses and API models.
"""

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from app.models.api import (
    ChatRequest,
    DenialReason,
    RedeemRequest,
    RedeemResponse,
    RedemptionReason,
    ShortlinkRequest,
)
from app.models.domain import (
    AccessDecision,
    AccessRecord,
    RedemptionRequest,
    RedemptionResult,
    TokenRecord,
    VerifiedIdentity,
    to_epoch_millis,
)


class TestEpochMillis:
    def test_epoch(self):
        assert to_epoch_millis(datetime(1970, 1, 1, tzinfo=UTC)) == 0

    def test_millisecond_precision(self):
        value = datetime(2026, 10, 19, 12, 0, 0, 123000, tzinfo=UTC)
        assert to_epoch_millis(value) % 1000 == 123


class TestAccessRecord:
    """Entitlement holds strictly before expiry."""

    def _record(self, expiry: datetime) -> AccessRecord:
        return AccessRecord("u1", expiry, 0, 0, None, None)

    def test_boundary(self, now):
        assert self._record(now + timedelta(microseconds=1)).is_entitled(now) is True
        assert self._record(now).is_entitled(now) is False
        assert self._record(now - timedelta(microseconds=1)).is_entitled(now) is False


class TestTokenRecord:
    """Redemption is allowed up to and including expiry."""

    def _token(self, expires_at: datetime) -> TokenRecord:
        return TokenRecord("t1", "u1", expires_at, used=False, used_at=None)

    def test_boundary(self, now):
        assert self._token(now).is_expired(now) is False
        assert self._token(now - timedelta(microseconds=1)).is_expired(now) is True


class TestRedemptionRequest:
    @pytest.mark.parametrize(("user_id", "token"), [("", "t"), ("u", ""), ("  ", "t"), ("u", "\t")])
    def test_blank_fields_rejected(self, user_id, token):
        with pytest.raises(ValueError):
            RedemptionRequest(user_id=user_id, token=token)

    def test_frozen(self):
        request = RedemptionRequest(user_id="u1", token="t1")
        with pytest.raises(AttributeError):
            request.token = "other"  # type: ignore[misc]


class TestRedemptionResult:
    def test_consumed(self, now):
        result = RedemptionResult.consumed(now, 24)
        assert result.success is True
        assert result.message == "24 hours access added!"
        assert result.new_expiry == now

    @pytest.mark.parametrize(
        ("reason", "message"),
        [
            (RedemptionReason.TOKEN_NOT_FOUND, "Invalid link"),
            (RedemptionReason.ALREADY_USED, "Already used"),
            (RedemptionReason.USER_MISMATCH, "Invalid user"),
            (RedemptionReason.TOKEN_EXPIRED, "Link expired"),
            (RedemptionReason.GRANT_USER_NOT_FOUND, "User not found"),
        ],
    )
    def test_rejected_messages(self, reason, message):
        result = RedemptionResult.rejected(reason)
        assert result.success is False
        assert result.reason is reason
        assert result.message == message
        assert result.new_expiry is None


class TestAccessDecision:
    def test_denial_requires_reason(self):
        with pytest.raises(ValueError):
            AccessDecision(allowed=False)

    def test_allow_carries_no_reason(self):
        with pytest.raises(ValueError):
            AccessDecision(allowed=True, reason=DenialReason.EXPIRED)


class TestVerifiedIdentity:
    def test_empty_user_rejected(self):
        with pytest.raises(ValueError):
            VerifiedIdentity(user_id="", expires_at=0.0)


class TestApiModels:
    def test_redeem_request_accepts_camel_case(self):
        request = RedeemRequest.model_validate({"userId": "u1", "token": "t1"})
        assert request.user_id == "u1"

    def test_redeem_request_fields_optional(self):
        request = RedeemRequest.model_validate({})
        assert request.user_id is None
        assert request.token is None

    def test_redeem_request_coerces_numbers(self):
        request = RedeemRequest.model_validate({"userId": 7, "token": 1.5})
        assert request.user_id == "7"
        assert request.token == "1.5"

    def test_redeem_request_drops_structured_values(self):
        request = RedeemRequest.model_validate({"userId": {"id": "u1"}, "token": ["t1"]})
        assert request.user_id is None
        assert request.token is None

    def test_redeem_response_serializes_camel_case_expiry(self):
        response = RedeemResponse(success=True, message="ok", new_expiry=1)
        assert response.model_dump(by_alias=True)["newExpiry"] == 1

    def test_chat_request_requires_messages(self):
        with pytest.raises(ValidationError):
            ChatRequest.model_validate({"messages": []})

    def test_chat_request_default_max_tokens(self):
        request = ChatRequest.model_validate({"messages": [{"role": "user", "content": "hi"}]})
        assert request.max_tokens == 500

    def test_chat_request_rejects_unknown_role(self):
        with pytest.raises(ValidationError):
            ChatRequest.model_validate({"messages": [{"role": "tool", "content": "hi"}]})

    def test_shortlink_request_requires_user(self):
        with pytest.raises(ValidationError):
            ShortlinkRequest.model_validate({"url": "https://example.com"})
