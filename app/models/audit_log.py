import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType, JSONType


class ActivityLog(Base):
    """
    Audit trail of earnings and access changes.
    `payload` holds one serialized event variant from app.schemas.events.
    """
    __tablename__ = "activity_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    # Who performed the action (None for system/webhook events)
    actor_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    # Event variant name: ORDER_RECORDED, ACCESS_GRANTED, PAYOUT_COMPLETED, ...
    event_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # Entity references for audit queries
    brand_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True, index=True)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True, index=True)

    payload: Mapped[dict] = mapped_column(JSONType, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )

    def __repr__(self) -> str:
        return f"<ActivityLog(event='{self.event_type}', brand={self.brand_id})>"
