"""
Domain Models - Internal business logic models using dataclasses.

All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime

from app.models.api import DenialReason, RedemptionReason


def to_epoch_millis(value: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds."""
    return int(value.timestamp() * 1000)


@dataclass(frozen=True)
class AccessRecord:
    """Immutable snapshot of a user's access ledger entry."""

    user_id: str
    access_expiry: datetime
    access_count: int
    tools_used: int
    last_used: datetime | None
    last_access_unlock: datetime | None

    def is_entitled(self, now: datetime) -> bool:
        """Entitlement holds strictly before the expiry instant."""
        return now < self.access_expiry


@dataclass(frozen=True)
class TokenRecord:
    """Immutable snapshot of an unlock token."""

    token: str
    user_id: str
    expires_at: datetime
    used: bool
    used_at: datetime | None
    created_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        """Redemption is allowed up to and including the expiry instant."""
        return now > self.expires_at


@dataclass(frozen=True)
class RedemptionRequest:
    """Validated `{userId, token}` input to the redemption state machine."""

    user_id: str
    token: str

    def __post_init__(self) -> None:
        """Both fields are required and non-blank."""
        if not self.user_id or not self.user_id.strip():
            raise ValueError("user_id cannot be empty")
        if not self.token or not self.token.strip():
            raise ValueError("token cannot be empty")


@dataclass(frozen=True)
class RedemptionResult:
    """Terminal state of one redemption attempt."""

    success: bool
    message: str
    reason: RedemptionReason | None = None
    new_expiry: datetime | None = None

    @classmethod
    def consumed(cls, new_expiry: datetime, window_hours: int) -> "RedemptionResult":
        return cls(
            success=True,
            message=f"{window_hours} hours access added!",
            new_expiry=new_expiry,
        )

    @classmethod
    def rejected(cls, reason: RedemptionReason) -> "RedemptionResult":
        return cls(success=False, message=reason.message, reason=reason)


@dataclass(frozen=True)
class AccessDecision:
    """Outcome of the entitlement gate."""

    allowed: bool
    reason: DenialReason | None = None
    access_expiry: datetime | None = None

    def __post_init__(self) -> None:
        """A denial always carries a reason; an allow never does."""
        if self.allowed and self.reason is not None:
            raise ValueError("Allowed decision cannot carry a denial reason")
        if not self.allowed and self.reason is None:
            raise ValueError("Denied decision requires a reason")


@dataclass(frozen=True)
class VerifiedIdentity:
    """Identity resolved from a verified bearer credential."""

    user_id: str
    expires_at: float  # credential `exp` claim, epoch seconds
    email: str | None = None

    def __post_init__(self) -> None:
        if not self.user_id:
            raise ValueError("user_id cannot be empty")
