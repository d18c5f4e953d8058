import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType, Money, Rate

if TYPE_CHECKING:
    from app.models.brand import Brand


class AffiliateStatus(str, Enum):
    """Affiliate partnership status."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"       # Only approved affiliates are attributed
    REJECTED = "REJECTED"
    SUSPENDED = "SUSPENDED"     # Banned; reinstating returns to APPROVED


class Affiliate(Base):
    """
    Referral-link partnership between a user and one brand.
    The affiliate cut is carved out of the brand's earnings, not the order total.
    """
    __tablename__ = "affiliates"
    __table_args__ = (
        UniqueConstraint("brand_id", "referral_code", name="uq_affiliate_brand_code"),
        UniqueConstraint("brand_id", "user_id", name="uq_affiliate_brand_user"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    brand_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("brands.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("users.id"),
        nullable=False,
        index=True
    )
    referral_code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    commission_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AffiliateStatus.PENDING.value
    )

    # Running totals
    click_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_sales: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    total_due: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    total_paid: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)

    # Review by a platform admin
    reviewed_by_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    status_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

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

    brand: Mapped["Brand"] = relationship("Brand")

    @property
    def is_active(self) -> bool:
        return self.status == AffiliateStatus.APPROVED.value

    @property
    def outstanding(self) -> Decimal:
        return (self.total_due or Decimal("0")) - (self.total_paid or Decimal("0"))

    def __repr__(self) -> str:
        return f"<Affiliate(brand={self.brand_id}, code='{self.referral_code}', status='{self.status}')>"
