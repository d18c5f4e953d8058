import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, event
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType, Money, Rate
from app.core.exceptions import InternalError


class Order(Base):
    """
    Immutable record of a completed sale and the shares computed for it.

    The external order id is the idempotency key for the whole ingestion
    pipeline. All derived earnings views are aggregations over these rows.
    """
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    external_order_id: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True
    )
    brand_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("brands.id"),
        nullable=False,
        index=True
    )
    customer_ref: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    earning_account_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Amounts
    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    brand_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False)
    brand_earnings: Mapped[Decimal] = mapped_column(Money, nullable=False)
    platform_share: Mapped[Decimal] = mapped_column(Money, nullable=False)

    # Affiliate carve-out
    affiliate_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("affiliates.id"),
        nullable=True,
        index=True
    )
    affiliate_due: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)

    # Platform referral carve-out
    referrer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    referral_earnings: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )

    def __repr__(self) -> str:
        return f"<Order(external_id='{self.external_order_id}', total={self.total_amount})>"


@event.listens_for(Order, "before_update")
def _reject_order_update(mapper, connection, target):
    raise InternalError(
        f"Order {target.external_order_id} is immutable",
        context={"order_id": target.external_order_id},
    )
