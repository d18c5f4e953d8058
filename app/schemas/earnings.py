"""Pydantic schemas for earnings views."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel


class EarningsSummary(BaseModel):
    total_earnings: Decimal
    available_for_payout: Decimal
    pending_earnings: Decimal
    paid_out: Decimal
    last_payout_at: Optional[datetime] = None


class BrandEarningsItem(BaseModel):
    brand_id: UUID
    brand_name: str
    total_sales: Decimal
    amount: Decimal
    withdrawn: Decimal = Decimal("0")
    available: Decimal = Decimal("0")


class ReferralEarningsItem(BaseModel):
    referred_email: str
    status: str
    amount: Decimal


class AffiliateEarningsItem(BaseModel):
    affiliate_id: UUID
    brand_id: UUID
    referral_code: str
    total_sales: Decimal
    total_due: Decimal
    total_paid: Decimal


class EarningsBreakdown(BaseModel):
    brand_earnings: List[BrandEarningsItem] = []
    referral_earnings: List[ReferralEarningsItem] = []
    affiliate_earnings: List[AffiliateEarningsItem] = []


class EarningsResponse(BaseModel):
    summary: EarningsSummary
    breakdown: EarningsBreakdown


class AffiliateStats(BaseModel):
    """Per-affiliate performance derived from order history."""
    affiliate_id: UUID
    clicks: int
    orders: int
    total_sales: Decimal
    total_due: Decimal
    total_paid: Decimal
    conversion_rate: Decimal
