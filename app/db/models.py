"""
Database Models - SQLAlchemy ORM models with strict typing.

All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, Index, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class User(Base):
    """
    ORM model for users table.

    One access ledger entry per user. Counters only ever increase.
    """

    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)

    # Entitlement
    access_expiry: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    access_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_access_unlock: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Usage metering
    tools_used: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_used: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("access_count >= 0", name="ck_users_access_count_non_negative"),
        CheckConstraint("tools_used >= 0", name="ck_users_tools_used_non_negative"),
        Index("idx_users_access_expiry", "access_expiry"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<User(user_id={self.user_id}, access_expiry={self.access_expiry}, "
            f"access_count={self.access_count}, tools_used={self.tools_used})>"
        )


class UnlockToken(Base):
    """
    ORM model for unlock_tokens table.

    Single-use tokens bound to one user. `user_id` is a lookup key only,
    not a foreign key, so user records can be administered independently.
    """

    __tablename__ = "unlock_tokens"

    token: Mapped[str] = mapped_column(String(255), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "(used = false AND used_at IS NULL) OR (used = true AND used_at IS NOT NULL)",
            name="ck_unlock_tokens_used_at_consistency",
        ),
        Index("idx_unlock_tokens_user_id", "user_id"),
        Index("idx_unlock_tokens_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<UnlockToken(token={self.token[:8]}..., user_id={self.user_id}, "
            f"used={self.used}, expires_at={self.expires_at})>"
        )
