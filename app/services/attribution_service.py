"""
Attribution Resolver

Given an order event, resolves the selling brand, the attributed affiliate and
the platform referrer of the earning account. Read-only: safe to retry.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFound
from app.models.affiliate import Affiliate, AffiliateStatus
from app.models.brand import Brand, BrandAccess
from app.models.role import Role
from app.models.user import User
from app.schemas.order import OrderEvent

logger = logging.getLogger(__name__)


@dataclass
class Attribution:
    brand: Brand
    affiliate: Optional[Affiliate]
    referrer_email: Optional[str]
    earning_account_email: Optional[str]

    @property
    def brand_id(self) -> uuid.UUID:
        return self.brand.id

    @property
    def affiliate_id(self) -> Optional[uuid.UUID]:
        return self.affiliate.id if self.affiliate else None


class AttributionService:
    """Resolves who participates in the earnings of an order."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(self, event: OrderEvent) -> Attribution:
        brand = await self.get_brand(event.brand_id)

        affiliate = None
        if event.referral_code:
            affiliate = await self.match_affiliate(brand.id, event.referral_code)
            if affiliate is None:
                # Invalid or expired codes never fail the order
                logger.info(
                    f"No active affiliate for code '{event.referral_code}' "
                    f"on brand {brand.id} (order {event.external_order_id})"
                )

        earning_email = event.earning_account_email or await self.get_owner_email(brand.id)
        referrer_email = await self.match_referrer(earning_email) if earning_email else None

        return Attribution(
            brand=brand,
            affiliate=affiliate,
            referrer_email=referrer_email,
            earning_account_email=earning_email,
        )

    async def get_brand(self, brand_id: uuid.UUID) -> Brand:
        result = await self.db.execute(
            select(Brand).where(Brand.id == brand_id, Brand.is_deleted == False)  # noqa: E712
        )
        brand = result.scalar_one_or_none()
        if not brand:
            raise NotFound("Brand not found", context={"brand_id": str(brand_id)})
        return brand

    async def match_affiliate(self, brand_id: uuid.UUID, referral_code: str) -> Optional[Affiliate]:
        """Approved affiliate of this brand holding the code, or None."""
        result = await self.db.execute(
            select(Affiliate).where(
                Affiliate.brand_id == brand_id,
                Affiliate.referral_code == referral_code,
                Affiliate.status == AffiliateStatus.APPROVED.value,
            )
        )
        return result.scalar_one_or_none()

    async def get_owner_email(self, brand_id: uuid.UUID) -> Optional[str]:
        result = await self.db.execute(
            select(BrandAccess.user_email).where(
                BrandAccess.brand_id == brand_id,
                BrandAccess.role == Role.OWNER.name,
            )
        )
        return result.scalar_one_or_none()

    async def match_referrer(self, email: str) -> Optional[str]:
        """Platform referrer of the earning account, ignoring self-referrals."""
        result = await self.db.execute(
            select(User.referred_by_email).where(User.email == email)
        )
        referrer = result.scalar_one_or_none()
        if not referrer or referrer == email:
            return None
        return referrer
