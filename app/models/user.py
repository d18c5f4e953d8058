import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.database import Base
from app.db_types import UUIDType, Money


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Canonical stored form of an email address."""
    if email is None:
        return None
    return email.strip().lower()


class User(Base):
    """
    Identity-linked marketplace account.
    Created on first authentication with the identity provider; never hard-deleted.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Platform role: USER, PLATFORM_ADMIN, SUPER_ADMIN
    role: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="USER",
        comment="USER, PLATFORM_ADMIN, SUPER_ADMIN"
    )

    # Platform-level referrer
    referred_by_email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        index=True
    )

    # Cache of the sum of owned brands' total_earnings
    total_earnings: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)

    # Payout-in-flight flag; stale after PAYOUT_LOCK_TIMEOUT_SECONDS
    payout_locked_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    @validates("email", "referred_by_email")
    def _normalize_email(self, key, value):
        return normalize_email(value)

    def __repr__(self) -> str:
        return f"<User(email='{self.email}', role='{self.role}')>"
