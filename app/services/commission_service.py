"""
Commission Service

Converts an attributed order into concrete shares:
- Brand rate from tiered, fixed, genre or platform-default schedules
- Platform share / brand earnings split with exact conservation
- Affiliate and platform-referral carve-outs from the brand's earnings
- Admin configuration of brand and genre schedules
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List, Sequence

from sqlalchemy import select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import NotFound, ValidationError
from app.core.permissions import PermissionChecker
from app.models.brand import Brand
from app.models.commission import BrandCommission, CommissionTier, GenreCommission
from app.models.role import Role
from app.models.user import User
from app.schemas.commission import BrandCommissionUpdate, CommissionTierIn
from app.schemas.events import CommissionUpdated
from app.services.attribution_service import Attribution
from app.services.audit_service import AuditService

logger = logging.getLogger(__name__)

# Share of a referred account's brand earnings paid to its platform referrer
REFERRAL_RATE = Decimal("0.05")

CENT = Decimal("0.01")


def quantize_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class RateDecision:
    rate: Decimal
    source: str  # TIER, BRAND, GENRE, DEFAULT
    tier_name: Optional[str] = None


@dataclass(frozen=True)
class CommissionSplit:
    brand_rate: Decimal
    platform_share: Decimal
    brand_earnings: Decimal
    affiliate_due: Decimal
    referral_earnings: Decimal


def clamp_rate(rate: Decimal, min_rate: Optional[Decimal], max_rate: Optional[Decimal]) -> Decimal:
    if min_rate is not None and rate < min_rate:
        rate = min_rate
    if max_rate is not None and rate > max_rate:
        rate = max_rate
    return rate


def select_tier(tiers: Sequence[CommissionTier], prior_sales: Decimal) -> Optional[CommissionTier]:
    """Tier with the highest min_sales not above the sales before this order."""
    qualifying = [t for t in tiers if Decimal(t.min_sales) <= prior_sales]
    if not qualifying:
        return None
    return max(qualifying, key=lambda t: Decimal(t.min_sales))


def select_brand_rate(
    commission: Optional[BrandCommission],
    prior_sales: Decimal,
    genre_rate: Optional[Decimal] = None,
    default_rate: Decimal = Decimal("0.50"),
) -> RateDecision:
    """
    Pick the brand's share of the order total.

    Order of precedence: automatic tier, brand base rate, genre base rate,
    platform default. Brand min/max bounds clamp the result.
    """
    if commission is None:
        if genre_rate is not None:
            return RateDecision(rate=Decimal(genre_rate), source="GENRE")
        return RateDecision(rate=Decimal(default_rate), source="DEFAULT")

    decision = RateDecision(rate=Decimal(commission.base_rate), source="BRAND")
    if commission.is_automatic and commission.tiers:
        tier = select_tier(commission.tiers, prior_sales)
        if tier is not None:
            decision = RateDecision(rate=Decimal(tier.rate), source="TIER", tier_name=tier.name)

    clamped = clamp_rate(decision.rate, commission.min_rate, commission.max_rate)
    return RateDecision(rate=clamped, source=decision.source, tier_name=decision.tier_name)


def calculate_split(
    total_amount: Decimal,
    brand_rate: Decimal,
    affiliate_rate: Optional[Decimal] = None,
    has_referrer: bool = False,
    cap_carve_outs: bool = True,
) -> CommissionSplit:
    """
    Split an order total.

    platform_share + brand_earnings == total_amount exactly. Affiliate and
    referral amounts are carve-outs of brand_earnings and are not deducted
    from platform_share.
    """
    total_amount = Decimal(total_amount)
    if total_amount <= 0:
        raise ValidationError("Order total must be positive", context={"total_amount": str(total_amount)})
    if not (Decimal("0") <= brand_rate <= Decimal("1")):
        raise ValidationError(f"Brand rate {brand_rate} outside [0, 1]")

    brand_earnings = quantize_money(total_amount * brand_rate)
    platform_share = quantize_money(total_amount) - brand_earnings

    affiliate_due = Decimal("0.00")
    if affiliate_rate is not None:
        affiliate_due = quantize_money(brand_earnings * Decimal(affiliate_rate))

    referral_earnings = Decimal("0.00")
    if has_referrer:
        referral_earnings = quantize_money(brand_earnings * REFERRAL_RATE)

    if cap_carve_outs and affiliate_due + referral_earnings > brand_earnings:
        capped = max(brand_earnings - affiliate_due, Decimal("0.00"))
        logger.warning(
            f"Carve-outs exceed brand earnings ({affiliate_due} + {referral_earnings} > {brand_earnings}); "
            f"referral share capped at {capped}"
        )
        referral_earnings = capped

    return CommissionSplit(
        brand_rate=Decimal(brand_rate),
        platform_share=platform_share,
        brand_earnings=brand_earnings,
        affiliate_due=affiliate_due,
        referral_earnings=referral_earnings,
    )


class CommissionService:
    """Service for commission schedules and share calculation"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    # ========================================================================
    # Calculation
    # ========================================================================

    async def resolve_rate(self, brand: Brand) -> RateDecision:
        commission = await self.get_brand_commission(brand.id)
        genre_rate = None
        if commission is None and brand.genre_id:
            result = await self.db.execute(
                select(GenreCommission.base_rate).where(GenreCommission.genre_id == brand.genre_id)
            )
            genre_rate = result.scalar_one_or_none()

        return select_brand_rate(
            commission,
            prior_sales=Decimal(brand.total_sales or 0),
            genre_rate=genre_rate,
            default_rate=settings.DEFAULT_BRAND_RATE,
        )

    async def calculate(self, attribution: Attribution, total_amount: Decimal) -> CommissionSplit:
        """Shares for an order; tiers use the brand's sales before this order."""
        decision = await self.resolve_rate(attribution.brand)
        return calculate_split(
            total_amount,
            decision.rate,
            affiliate_rate=attribution.affiliate.commission_rate if attribution.affiliate else None,
            has_referrer=attribution.referrer_email is not None,
            cap_carve_outs=settings.CARVE_OUT_CAP_ENABLED,
        )

    async def preview_rate(self, brand_id: uuid.UUID) -> dict:
        brand = await self._get_brand(brand_id)
        decision = await self.resolve_rate(brand)
        return {
            "brand_id": brand.id,
            "total_sales": brand.total_sales,
            "brand_rate": decision.rate,
            "source": decision.source,
            "tier_name": decision.tier_name,
        }

    # ========================================================================
    # Configuration
    # ========================================================================

    async def get_brand_commission(self, brand_id: uuid.UUID) -> Optional[BrandCommission]:
        result = await self.db.execute(
            select(BrandCommission)
            .options(selectinload(BrandCommission.tiers))
            .where(BrandCommission.brand_id == brand_id)
        )
        return result.scalar_one_or_none()

    async def list_commissions(self, brand_id: Optional[uuid.UUID] = None) -> dict:
        query = select(BrandCommission).options(selectinload(BrandCommission.tiers))
        if brand_id:
            query = query.where(BrandCommission.brand_id == brand_id)
        brand_result = await self.db.execute(query)

        genre_result = await self.db.execute(select(GenreCommission))

        return {
            "brand_commissions": list(brand_result.scalars().all()),
            "genre_commissions": list(genre_result.scalars().all()),
        }

    async def upsert_brand_commission(
        self,
        brand_id: uuid.UUID,
        data: BrandCommissionUpdate,
        actor: User,
    ) -> BrandCommission:
        """Create or update a brand's schedule. Platform admins only."""
        PermissionChecker(actor).require(Role.PLATFORM_ADMIN, "Only platform admins can change commissions")
        await self._get_brand(brand_id)

        commission = await self.get_brand_commission(brand_id)
        if commission is None:
            commission = BrandCommission(
                id=uuid.uuid4(),
                brand_id=brand_id,
                base_rate=settings.DEFAULT_BRAND_RATE,
                is_automatic=False,
            )
            self.db.add(commission)

        update_data = data.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            setattr(commission, field, value)

        self._validate_bounds(commission.base_rate, commission.min_rate, commission.max_rate)

        await self.audit.record(
            CommissionUpdated(
                brand_id=brand_id,
                base_rate=commission.base_rate,
                min_rate=commission.min_rate,
                max_rate=commission.max_rate,
                is_automatic=commission.is_automatic,
            ),
            actor_email=actor.email,
            description=f"Updated commission settings for brand {brand_id}",
        )
        await self.db.commit()

        self.db.expire(commission)
        logger.info(f"Commission for brand {brand_id} updated by {actor.email}: {update_data}")
        return await self.get_brand_commission(brand_id)

    async def replace_tiers(
        self,
        brand_id: uuid.UUID,
        tiers: List[CommissionTierIn],
        actor: User,
    ) -> BrandCommission:
        """Atomically replace all tiers of a brand's schedule."""
        PermissionChecker(actor).require(Role.PLATFORM_ADMIN, "Only platform admins can change commissions")

        thresholds = [t.min_sales for t in tiers]
        if len(set(thresholds)) != len(thresholds):
            raise ValidationError("Tier thresholds must be unique", context={"brand_id": str(brand_id)})

        commission = await self.get_brand_commission(brand_id)
        if commission is None:
            raise NotFound("Brand commission not configured", context={"brand_id": str(brand_id)})

        # Old rows must be gone before new thresholds are inserted
        commission.tiers.clear()
        await self.db.flush()
        for tier in sorted(tiers, key=lambda t: t.min_sales):
            commission.tiers.append(CommissionTier(
                id=uuid.uuid4(),
                name=tier.name,
                min_sales=tier.min_sales,
                rate=tier.rate,
            ))

        await self.audit.record(
            CommissionUpdated(brand_id=brand_id, tier_count=len(tiers)),
            actor_email=actor.email,
            description=f"Updated commission tiers for brand {brand_id}",
        )
        await self.db.commit()

        self.db.expire(commission)
        logger.info(f"Replaced {len(tiers)} commission tiers for brand {brand_id}")
        return await self.get_brand_commission(brand_id)

    async def set_genre_commission(
        self,
        genre_id: uuid.UUID,
        base_rate: Decimal,
        actor: User,
    ) -> GenreCommission:
        PermissionChecker(actor).require(Role.PLATFORM_ADMIN, "Only platform admins can change commissions")
        self._validate_bounds(base_rate, None, None)

        result = await self.db.execute(
            select(GenreCommission).where(GenreCommission.genre_id == genre_id)
        )
        genre_commission = result.scalar_one_or_none()
        if genre_commission is None:
            genre_commission = GenreCommission(id=uuid.uuid4(), genre_id=genre_id, base_rate=base_rate)
            self.db.add(genre_commission)
        else:
            genre_commission.base_rate = base_rate

        await self.audit.record(
            CommissionUpdated(genre_id=genre_id, base_rate=base_rate),
            actor_email=actor.email,
        )
        await self.db.commit()
        await self.db.refresh(genre_commission)
        return genre_commission

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _get_brand(self, brand_id: uuid.UUID) -> Brand:
        result = await self.db.execute(select(Brand).where(Brand.id == brand_id))
        brand = result.scalar_one_or_none()
        if not brand:
            raise NotFound("Brand not found", context={"brand_id": str(brand_id)})
        return brand

    @staticmethod
    def _validate_bounds(
        base_rate: Optional[Decimal],
        min_rate: Optional[Decimal],
        max_rate: Optional[Decimal],
    ) -> None:
        for name, value in (("base_rate", base_rate), ("min_rate", min_rate), ("max_rate", max_rate)):
            if value is not None and not (Decimal("0") <= Decimal(value) <= Decimal("1")):
                raise ValidationError(f"{name} must be between 0 and 1")
        if min_rate is not None and max_rate is not None and min_rate > max_rate:
            raise ValidationError("min_rate cannot exceed max_rate")
        if base_rate is not None:
            if min_rate is not None and base_rate < min_rate:
                raise ValidationError("base_rate is below min_rate")
            if max_rate is not None and base_rate > max_rate:
                raise ValidationError("base_rate is above max_rate")
