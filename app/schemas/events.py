"""
Audit event variants.

Each change to earnings or brand access is described by exactly one of these
typed events and persisted through AuditService.
"""
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field


class OrderRecorded(BaseModel):
    event_type: Literal["ORDER_RECORDED"] = "ORDER_RECORDED"
    brand_id: UUID
    external_order_id: str
    total_amount: Decimal
    brand_earnings: Decimal
    platform_share: Decimal
    affiliate_id: Optional[UUID] = None
    affiliate_due: Decimal = Decimal("0")
    referrer_email: Optional[str] = None
    referral_earnings: Decimal = Decimal("0")


class AccessGranted(BaseModel):
    event_type: Literal["ACCESS_GRANTED"] = "ACCESS_GRANTED"
    brand_id: UUID
    user_email: str
    role: str


class AccessRevoked(BaseModel):
    event_type: Literal["ACCESS_REVOKED"] = "ACCESS_REVOKED"
    brand_id: UUID
    user_email: str
    role: str


class RoleChanged(BaseModel):
    event_type: Literal["ROLE_CHANGED"] = "ROLE_CHANGED"
    brand_id: UUID
    user_email: str
    old_role: str
    new_role: str


class OwnershipTransferred(BaseModel):
    event_type: Literal["OWNERSHIP_TRANSFERRED"] = "OWNERSHIP_TRANSFERRED"
    brand_id: UUID
    previous_owner_email: str
    new_owner_email: str


class CommissionUpdated(BaseModel):
    event_type: Literal["COMMISSION_UPDATED"] = "COMMISSION_UPDATED"
    brand_id: Optional[UUID] = None
    genre_id: Optional[UUID] = None
    base_rate: Optional[Decimal] = None
    min_rate: Optional[Decimal] = None
    max_rate: Optional[Decimal] = None
    is_automatic: Optional[bool] = None
    tier_count: Optional[int] = None


class PayoutRequested(BaseModel):
    event_type: Literal["PAYOUT_REQUESTED"] = "PAYOUT_REQUESTED"
    user_id: UUID
    payout_id: UUID
    amount: Decimal
    idempotency_key: str


class PayoutCompleted(BaseModel):
    event_type: Literal["PAYOUT_COMPLETED"] = "PAYOUT_COMPLETED"
    user_id: UUID
    payout_id: UUID
    amount: Decimal
    transfer_id: str


class PayoutFailed(BaseModel):
    event_type: Literal["PAYOUT_FAILED"] = "PAYOUT_FAILED"
    user_id: UUID
    payout_id: UUID
    amount: Decimal
    reason: str


class PayoutUnresolved(BaseModel):
    """Transfer outcome unknown; the payout stays PROCESSING until resolved."""
    event_type: Literal["PAYOUT_UNRESOLVED"] = "PAYOUT_UNRESOLVED"
    user_id: UUID
    payout_id: UUID
    amount: Decimal
    reason: str


class AffiliateEnrolled(BaseModel):
    event_type: Literal["AFFILIATE_ENROLLED"] = "AFFILIATE_ENROLLED"
    brand_id: UUID
    affiliate_id: UUID
    user_id: UUID
    referral_code: str


class AffiliateStatusChanged(BaseModel):
    event_type: Literal["AFFILIATE_STATUS_CHANGED"] = "AFFILIATE_STATUS_CHANGED"
    brand_id: UUID
    affiliate_id: UUID
    action: str
    old_status: str
    new_status: str
    reason: Optional[str] = None


class AffiliateRateChanged(BaseModel):
    event_type: Literal["AFFILIATE_RATE_CHANGED"] = "AFFILIATE_RATE_CHANGED"
    brand_id: UUID
    affiliate_id: UUID
    old_rate: Decimal
    new_rate: Decimal


class ReferralJoined(BaseModel):
    event_type: Literal["REFERRAL_JOINED"] = "REFERRAL_JOINED"
    user_id: UUID
    referrer_email: str
    referred_email: str
    link_code: str


AuditEvent = Annotated[
    Union[
        OrderRecorded,
        AccessGranted,
        AccessRevoked,
        RoleChanged,
        OwnershipTransferred,
        CommissionUpdated,
        PayoutRequested,
        PayoutCompleted,
        PayoutFailed,
        PayoutUnresolved,
        AffiliateEnrolled,
        AffiliateStatusChanged,
        AffiliateRateChanged,
        ReferralJoined,
    ],
    Field(discriminator="event_type"),
]
