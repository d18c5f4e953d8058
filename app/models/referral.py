import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.database import Base
from app.db_types import UUIDType, Money
from app.models.user import normalize_email


class ReferralStatus(str, Enum):
    PENDING = "PENDING"         # Recruited, no earning order yet
    COMPLETED = "COMPLETED"     # At least one order credited the referrer


class PlatformReferralLink(Base):
    """
    Shareable platform sign-up code.
    Deactivated rather than deleted so past referrals keep their link.
    """
    __tablename__ = "platform_referral_links"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    owner_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    @validates("owner_email")
    def _normalize_email(self, key, value):
        return normalize_email(value)

    def __repr__(self) -> str:
        return f"<PlatformReferralLink(owner='{self.owner_email}', code='{self.code}')>"


class PlatformReferral(Base):
    """
    Platform-wide referral: the referrer earns a fixed share of the brand
    earnings the recruited user later generates.
    """
    __tablename__ = "platform_referrals"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    referrer_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    referred_email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    # Code of the PlatformReferralLink the referred user signed up with
    referral_link_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    earnings: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ReferralStatus.PENDING.value
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @validates("referrer_email", "referred_email")
    def _normalize_email(self, key, value):
        return normalize_email(value)

    def __repr__(self) -> str:
        return f"<PlatformReferral(referrer='{self.referrer_email}', referred='{self.referred_email}')>"
