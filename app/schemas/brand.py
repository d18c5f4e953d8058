"""Pydantic schemas for brands and brand access."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.schemas.base import BaseCreateSchema, BaseResponseSchema


# ==================== Brand Schemas ====================

class BrandCreate(BaseCreateSchema):
    name: str = Field(..., min_length=1, max_length=100)
    slug: str = Field(..., min_length=1, max_length=120, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    genre_id: Optional[UUID] = None


class BrandResponse(BaseResponseSchema):
    id: UUID
    name: str
    slug: str
    genre_id: Optional[UUID] = None
    is_approved: bool
    is_hidden: bool
    created_at: datetime


class BrandDetailResponse(BrandResponse):
    """Brand with totals; returned to members and admins."""
    total_sales: Decimal
    total_earnings: Decimal
    total_withdrawn: Decimal


# ==================== Access Schemas ====================

class BrandAccessResponse(BaseResponseSchema):
    id: UUID
    brand_id: UUID
    user_email: str
    role: str
    created_at: datetime


class BrandAccessListResponse(BaseModel):
    items: List[BrandAccessResponse]
    total: int


class AccessGrantRequest(BaseCreateSchema):
    email: str = Field(..., min_length=3, max_length=255)
    role: Literal["OWNER", "MANAGER"] = "MANAGER"

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class AccessRevokeRequest(BaseCreateSchema):
    email: str = Field(..., min_length=3, max_length=255)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class RoleChangeRequest(BaseModel):
    role: Literal["OWNER", "MANAGER"]


class OwnershipTransferRequest(BaseCreateSchema):
    new_owner_email: str = Field(..., min_length=3, max_length=255)

    @field_validator("new_owner_email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()
