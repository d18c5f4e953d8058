"""Pydantic schemas for order ingestion."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.schemas.base import BaseCreateSchema, BaseResponseSchema


class OrderEvent(BaseCreateSchema):
    """Verified order-completion fact delivered by the order source."""
    external_order_id: str = Field(..., min_length=1, max_length=100)
    brand_id: UUID
    total_amount: Decimal
    customer_ref: Optional[str] = None
    referral_code: Optional[str] = Field(None, max_length=50)
    earning_account_email: Optional[str] = Field(
        None,
        description="Account whose platform referrer is credited; defaults to the brand owner"
    )

    @field_validator("earning_account_email")
    @classmethod
    def normalize_email(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().lower() if v else v


class OrderResponse(BaseResponseSchema):
    """Response schema for a recorded order."""
    id: UUID
    external_order_id: str
    brand_id: UUID
    total_amount: Decimal
    brand_rate: Decimal
    brand_earnings: Decimal
    platform_share: Decimal
    affiliate_id: Optional[UUID] = None
    affiliate_due: Decimal
    referrer_email: Optional[str] = None
    referral_earnings: Decimal
    created_at: datetime


class OrderIngestResponse(BaseModel):
    """Result of ingesting an order event."""
    duplicate: bool
    order: OrderResponse


class OrderListResponse(BaseModel):
    items: List[OrderResponse]
    total: int


class ClickEvent(BaseCreateSchema):
    """Affiliate referral-link click."""
    brand_id: UUID
    referral_code: str = Field(..., min_length=1, max_length=50)
