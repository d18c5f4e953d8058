"""Pydantic schemas for affiliate applications, links and admin review."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.schemas.base import BaseCreateSchema, BaseResponseSchema, BaseUpdateSchema


class AffiliateApply(BaseCreateSchema):
    brand_id: UUID
    referral_code: Optional[str] = Field(
        None, min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_-]+$",
        description="Custom code; generated from the user's name when omitted",
    )

    @field_validator("referral_code")
    @classmethod
    def upper_code(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v


class AffiliateResponse(BaseResponseSchema):
    id: UUID
    brand_id: UUID
    user_id: UUID
    referral_code: str
    commission_rate: Decimal
    status: str
    click_count: int
    total_sales: Decimal
    total_due: Decimal
    total_paid: Decimal
    status_reason: Optional[str] = None
    reviewed_by_email: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime


class AffiliateListResponse(BaseModel):
    items: List[AffiliateResponse]
    total: int
    page: int
    size: int


class AffiliateLink(BaseModel):
    """An approved affiliate of the current user with the brand it promotes."""
    affiliate_id: UUID
    brand_id: UUID
    brand_name: str
    brand_slug: str
    referral_code: str
    commission_rate: Decimal
    clicks: int
    orders: int
    total_sales: Decimal
    total_due: Decimal
    outstanding: Decimal


class AffiliateActionRequest(BaseModel):
    action: Literal["approve", "reject", "suspend", "reinstate"]
    reason: Optional[str] = Field(None, max_length=500)


class AffiliateRateUpdate(BaseUpdateSchema):
    commission_rate: Decimal = Field(..., ge=0, le=1)
