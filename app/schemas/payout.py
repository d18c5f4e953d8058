"""Pydantic schemas for payouts and payout destinations."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.base import BaseCreateSchema, BaseResponseSchema


class PaymentMethodUpdate(BaseCreateSchema):
    account_ref: str = Field(..., min_length=1, max_length=100, description="Linked account id at the provider")
    is_default: bool = True


class PaymentMethodResponse(BaseResponseSchema):
    id: UUID
    provider: str
    account_ref: str
    is_default: bool
    created_at: datetime


class PayoutResult(BaseModel):
    payout_id: UUID
    transfer_id: str
    amount: Decimal


class PayoutRecordResponse(BaseResponseSchema):
    id: UUID
    amount: Decimal
    brand_amount: Decimal
    referral_amount: Decimal
    affiliate_amount: Decimal
    status: str
    provider: str
    transfer_id: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class PayoutListResponse(BaseModel):
    items: List[PayoutRecordResponse]
    total: int


class PayoutResolve(BaseCreateSchema):
    """Outcome of a PROCESSING payout, checked with the provider."""
    succeeded: bool
    transfer_id: Optional[str] = Field(None, max_length=100)
    reason: Optional[str] = Field(None, max_length=500)
