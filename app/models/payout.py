"""Payout destination and payout consumption models."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType, JSONType, Money


class PayoutStatus(str, Enum):
    """Payout record status."""
    PROCESSING = "PROCESSING"   # Amount reserved; transfer in flight or outcome unknown
    COMPLETED = "COMPLETED"     # Transfer acknowledged by the payment rail
    FAILED = "FAILED"           # Transfer failed; reservation released


class PaymentMethod(Base):
    """External payout destination, one per provider per user."""
    __tablename__ = "payment_methods"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_payment_method_provider"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("users.id"),
        nullable=False,
        index=True
    )
    provider: Mapped[str] = mapped_column(String(30), nullable=False)
    account_ref: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Linked/connected account id at the provider"
    )
    is_default: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<PaymentMethod(user={self.user_id}, provider='{self.provider}')>"


class PayoutRecord(Base):
    """
    Consumption record for a payout.
    PROCESSING and COMPLETED records are subtracted from available earnings.
    """
    __tablename__ = "payout_records"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("users.id"),
        nullable=False,
        index=True
    )

    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    brand_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    referral_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    affiliate_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    # {brand_id: amount taken from brand.total_withdrawn headroom}
    brand_allocations: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    # {affiliate_id: outstanding amount at reservation time}
    affiliate_allocations: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PayoutStatus.PROCESSING.value,
        index=True
    )
    idempotency_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    provider: Mapped[str] = mapped_column(String(30), nullable=False)
    destination: Mapped[str] = mapped_column(String(100), nullable=False)
    transfer_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<PayoutRecord(user={self.user_id}, amount={self.amount}, status='{self.status}')>"
