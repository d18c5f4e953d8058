"""Pydantic schemas for platform referral links."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.schemas.base import BaseCreateSchema, BaseResponseSchema


class ReferralLinkResponse(BaseResponseSchema):
    id: UUID
    code: str
    is_active: bool
    created_at: datetime


class ReferredUser(BaseResponseSchema):
    referred_email: str
    status: str
    earnings: Decimal
    created_at: datetime
    completed_at: Optional[datetime] = None


class ReferralLinkDetail(ReferralLinkResponse):
    referrals: List[ReferredUser] = []
    total_earnings: Decimal = Decimal("0")


class ReferralLinkListResponse(BaseModel):
    items: List[ReferralLinkDetail]
    active: int
    total_earnings: Decimal


class ReferralJoinRequest(BaseCreateSchema):
    code: str = Field(..., min_length=1, max_length=50)

    @field_validator("code")
    @classmethod
    def upper_code(cls, v: str) -> str:
        return v.strip().upper()


class PlatformReferralResponse(BaseResponseSchema):
    id: UUID
    referrer_email: str
    referred_email: str
    referral_link_id: Optional[str] = None
    status: str
    earnings: Decimal
    created_at: datetime
