"""Commission schedule models.

Supports:
- Per-brand base rate with optional min/max clamp
- Automatic tiered rates keyed on cumulative brand sales
- Genre-level default base rate
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType, Money, Rate

if TYPE_CHECKING:
    from app.models.brand import Brand


class BrandCommission(Base):
    """
    Commission schedule for a single brand.
    Rates are fractions of the order total paid to the brand (0.55 = 55%).
    """
    __tablename__ = "brand_commissions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    brand_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("brands.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True
    )

    base_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False, default=Decimal("0.5"))
    min_rate: Mapped[Optional[Decimal]] = mapped_column(Rate, nullable=True)
    max_rate: Mapped[Optional[Decimal]] = mapped_column(Rate, nullable=True)
    is_automatic: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment="Select rate from tiers by cumulative sales"
    )

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

    # Relationships
    brand: Mapped["Brand"] = relationship("Brand", back_populates="commission")
    tiers: Mapped[List["CommissionTier"]] = relationship(
        "CommissionTier",
        back_populates="brand_commission",
        cascade="all, delete-orphan",
        order_by="CommissionTier.min_sales"
    )

    def __repr__(self) -> str:
        return f"<BrandCommission(brand={self.brand_id}, base={self.base_rate})>"


class CommissionTier(Base):
    """Sales-volume threshold that switches the brand rate."""
    __tablename__ = "commission_tiers"
    __table_args__ = (
        UniqueConstraint("brand_commission_id", "min_sales", name="uq_commission_tier_threshold"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    brand_commission_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("brand_commissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    min_sales: Mapped[Decimal] = mapped_column(Money, nullable=False)
    rate: Mapped[Decimal] = mapped_column(Rate, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    brand_commission: Mapped["BrandCommission"] = relationship(
        "BrandCommission",
        back_populates="tiers"
    )

    def __repr__(self) -> str:
        return f"<CommissionTier(name='{self.name}', min_sales={self.min_sales}, rate={self.rate})>"


class GenreCommission(Base):
    """Default base rate for brands of a genre without their own schedule."""
    __tablename__ = "genre_commissions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    genre_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        unique=True,
        nullable=False,
        index=True
    )
    base_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<GenreCommission(genre={self.genre_id}, base={self.base_rate})>"
