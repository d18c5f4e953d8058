import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, UniqueConstraint, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from app.database import Base
from app.db_types import UUIDType, Money
from app.models.user import normalize_email

if TYPE_CHECKING:
    from app.models.commission import BrandCommission


class Brand(Base):
    """
    Seller storefront.
    Has exactly one owner and zero or more managers through BrandAccess.
    """
    __tablename__ = "brands"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), unique=True, nullable=False, index=True)
    genre_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        nullable=True,
        index=True
    )

    # Running totals, updated with atomic increments only
    total_sales: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    total_earnings: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    # Brand earnings reserved or paid by payouts, whoever owned the brand at the time
    total_withdrawn: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)

    # Moderation state
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False)
    is_hidden: Mapped[bool] = mapped_column(Boolean, default=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)

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
    access: Mapped[List["BrandAccess"]] = relationship(
        "BrandAccess",
        back_populates="brand",
        cascade="all, delete-orphan"
    )
    commission: Mapped[Optional["BrandCommission"]] = relationship(
        "BrandCommission",
        back_populates="brand",
        uselist=False
    )

    @property
    def is_publicly_visible(self) -> bool:
        return self.is_approved and not self.is_hidden and not self.is_deleted

    @property
    def available_earnings(self) -> Decimal:
        return (self.total_earnings or Decimal("0")) - (self.total_withdrawn or Decimal("0"))

    def __repr__(self) -> str:
        return f"<Brand(name='{self.name}', slug='{self.slug}')>"


class BrandAccess(Base):
    """
    Join entity between a brand and a user email with a brand role.
    Exactly one OWNER row exists per non-deleted brand.
    """
    __tablename__ = "brand_access"
    __table_args__ = (
        UniqueConstraint("brand_id", "user_email", name="uq_brand_access_user"),
        Index(
            "uq_brand_access_single_owner",
            "brand_id",
            unique=True,
            postgresql_where=text("role = 'OWNER'"),
            sqlite_where=text("role = 'OWNER'"),
        ),
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
    user_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="OWNER, MANAGER"
    )

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

    brand: Mapped["Brand"] = relationship("Brand", back_populates="access")

    @validates("user_email")
    def _normalize_email(self, key, value):
        return normalize_email(value)

    def __repr__(self) -> str:
        return f"<BrandAccess(brand={self.brand_id}, email='{self.user_email}', role='{self.role}')>"
