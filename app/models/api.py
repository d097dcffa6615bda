"""
API Models - Pydantic models for request/response validation.

Timestamps on the wire are epoch milliseconds.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RedemptionReason(str, Enum):
    """Why a redemption was rejected. Declared in check order."""

    TOKEN_NOT_FOUND = "token_not_found"
    ALREADY_USED = "already_used"
    USER_MISMATCH = "user_mismatch"
    TOKEN_EXPIRED = "token_expired"
    GRANT_USER_NOT_FOUND = "grant_user_not_found"

    @property
    def message(self) -> str:
        """User-facing message for this rejection."""
        return _REDEMPTION_MESSAGES[self]


_REDEMPTION_MESSAGES = {
    RedemptionReason.TOKEN_NOT_FOUND: "Invalid link",
    RedemptionReason.ALREADY_USED: "Already used",
    RedemptionReason.USER_MISMATCH: "Invalid user",
    RedemptionReason.TOKEN_EXPIRED: "Link expired",
    RedemptionReason.GRANT_USER_NOT_FOUND: "User not found",
}


class DenialReason(str, Enum):
    """Why the entitlement gate denied a privileged call."""

    NO_RECORD = "no_record"
    EXPIRED = "expired"

    @property
    def message(self) -> str:
        """User-facing message for this denial."""
        if self is DenialReason.NO_RECORD:
            return "User not found"
        return "Access expired"


# ============================================================================
# Redemption Models
# ============================================================================


class RedeemRequest(BaseModel):
    """POST /api/verify request body.

    Fields are optional here so that a missing value is reported as
    "Missing parameters" by the route rather than a schema error.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str | None = Field(None, alias="userId")
    token: str | None = None

    @field_validator("user_id", "token", mode="before")
    @classmethod
    def coerce_scalar(cls, v: Any) -> str | None:
        """Numbers become strings; any other non-string counts as missing."""
        if isinstance(v, bool):
            return None
        if isinstance(v, int | float):
            return str(v)
        if isinstance(v, str):
            return v
        return None


class RedeemResponse(BaseModel):
    """POST /api/verify response.

    Also the body of the 400 and 500 responses, with `success: false`.
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    reason: RedemptionReason | None = None
    new_expiry: int | None = Field(
        None, alias="newExpiry", description="New access expiry (epoch ms)"
    )


# ============================================================================
# Token Issuance Models
# ============================================================================


class IssueTokenRequest(BaseModel):
    """POST /v1/unlock/tokens request body."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1, max_length=255)


class IssueTokenResponse(BaseModel):
    """POST /v1/unlock/tokens response."""

    token: str
    user_id: str
    expires_at: int = Field(..., description="Token expiry (epoch ms)")


# ============================================================================
# Access Status Models
# ============================================================================


class AccessStatusResponse(BaseModel):
    """GET /v1/access/status response."""

    user_id: str
    has_access: bool
    access_expiry: int = Field(..., description="Access expiry (epoch ms)")
    access_count: int
    tools_used: int
    last_used: int | None = None
    last_access_unlock: int | None = None


# ============================================================================
# Relay Models
# ============================================================================


class ChatMessage(BaseModel):
    """One chat message, passed through to the AI provider as-is."""

    role: Literal["system", "user", "assistant"]
    content: str = Field(..., min_length=1)


class ChatRequest(BaseModel):
    """POST /v1/ai/chat request body."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage] = Field(..., min_length=1)
    max_tokens: int = Field(500, alias="maxTokens", ge=1, le=4096)


class ChatResponse(BaseModel):
    """POST /v1/ai/chat response."""

    success: bool
    response: str


class ShortlinkRequest(BaseModel):
    """POST /v1/shortlink request body."""

    model_config = ConfigDict(populate_by_name=True)

    url: str = Field(..., min_length=1, max_length=2048)
    user_id: str = Field(..., alias="userId", min_length=1, max_length=255)


class ShortlinkResponse(BaseModel):
    """POST /v1/shortlink response."""

    success: bool
    short_url: str


# ============================================================================
# Health Models
# ============================================================================


class HealthResponse(BaseModel):
    """GET /health response."""

    status: Literal["healthy", "unhealthy"]
    database: Literal["connected", "disconnected"]
    timestamp: str
