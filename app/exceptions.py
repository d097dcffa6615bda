"""
Exception Classes - Strongly typed exception hierarchy.

Business rejections (redemption reasons, gate denials) are expected outcomes.
InfrastructureError subclasses are faults that callers may retry.
"""

from app.models.api import RedemptionReason


class AccessGateError(Exception):
    """Base exception for all access gate errors."""

    pass


class AuthenticationError(AccessGateError):
    """Raised when a bearer credential is absent, malformed or fails verification."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


class CredentialExpiredError(AuthenticationError):
    """Raised when a credential's own validity window has passed."""

    def __init__(self, message: str = "Credential expired") -> None:
        super().__init__(message)


class UserNotFoundError(AccessGateError):
    """Raised when a user has no access record."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class RedemptionRejectedError(AccessGateError):
    """Raised inside a redemption transaction to abort it with a reason."""

    def __init__(self, reason: RedemptionReason) -> None:
        self.reason = reason
        super().__init__(f"Redemption rejected: {reason.value}")


class InfrastructureError(AccessGateError):
    """Transient infrastructure fault. Safe for the caller to retry."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class StoreUnavailableError(InfrastructureError):
    """Raised when the ledger/token store cannot be reached or fails mid-operation."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Store unavailable: {message}")


class VerifierUnavailableError(InfrastructureError):
    """Raised when the identity provider's signing keys cannot be fetched."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Identity verifier unavailable: {message}")


class UpstreamServiceError(AccessGateError):
    """Raised when a relayed upstream service (AI chat, shortlink) fails."""

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        self.message = message
        super().__init__(f"{service} error: {message}")


class ConfigurationError(AccessGateError):
    """Raised when critical configuration is missing or invalid."""

    pass
