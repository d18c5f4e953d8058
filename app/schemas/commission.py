"""Pydantic schemas for commission configuration."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.base import BaseResponseSchema, BaseUpdateSchema


# ==================== Tier Schemas ====================

class CommissionTierIn(BaseModel):
    """Tier definition as submitted by an admin."""
    name: str = Field(..., min_length=1, max_length=100)
    min_sales: Decimal = Field(..., ge=0)
    rate: Decimal = Field(..., ge=0, le=1)


class CommissionTierResponse(BaseResponseSchema):
    id: UUID
    name: str
    min_sales: Decimal
    rate: Decimal


class TierReplaceRequest(BaseModel):
    tiers: List[CommissionTierIn]


# ==================== BrandCommission Schemas ====================

class BrandCommissionUpdate(BaseUpdateSchema):
    """Partial update of a brand's schedule; rates are fractions in [0, 1]."""
    base_rate: Optional[Decimal] = Field(None, ge=0, le=1)
    min_rate: Optional[Decimal] = Field(None, ge=0, le=1)
    max_rate: Optional[Decimal] = Field(None, ge=0, le=1)
    is_automatic: Optional[bool] = None


class BrandCommissionResponse(BaseResponseSchema):
    id: UUID
    brand_id: UUID
    base_rate: Decimal
    min_rate: Optional[Decimal] = None
    max_rate: Optional[Decimal] = None
    is_automatic: bool
    tiers: List[CommissionTierResponse] = []
    updated_at: datetime


class GenreCommissionUpdate(BaseModel):
    base_rate: Decimal = Field(..., ge=0, le=1)


class GenreCommissionResponse(BaseResponseSchema):
    id: UUID
    genre_id: UUID
    base_rate: Decimal


class CommissionListResponse(BaseModel):
    brand_commissions: List[BrandCommissionResponse]
    genre_commissions: List[GenreCommissionResponse]


class RatePreview(BaseModel):
    """Rate the next order of a brand would receive."""
    brand_id: UUID
    total_sales: Decimal
    brand_rate: Decimal
    source: str  # TIER, BRAND, GENRE, DEFAULT
    tier_name: Optional[str] = None
