"""
Affiliate Program

- Users apply to promote a brand and get a per-brand referral code
- Platform admins approve, reject, suspend and reinstate affiliates
- Only APPROVED affiliates are attributed on new orders
"""

import logging
import random
import string
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Tuple

from sqlalchemy import select, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ConflictError, NotFound, ValidationError
from app.core.permissions import PermissionChecker
from app.models.affiliate import Affiliate, AffiliateStatus
from app.models.brand import Brand
from app.models.order import Order
from app.models.role import Role
from app.models.user import User
from app.schemas.events import AffiliateEnrolled, AffiliateStatusChanged, AffiliateRateChanged
from app.services.audit_service import AuditService
from app.services.brand_access_service import BrandAccessService

logger = logging.getLogger(__name__)


# action -> (statuses it applies to, resulting status)
ACTIONS = {
    "approve": ((AffiliateStatus.PENDING,), AffiliateStatus.APPROVED),
    "reject": ((AffiliateStatus.PENDING,), AffiliateStatus.REJECTED),
    "suspend": (
        (AffiliateStatus.PENDING, AffiliateStatus.APPROVED, AffiliateStatus.REJECTED),
        AffiliateStatus.SUSPENDED,
    ),
    "reinstate": ((AffiliateStatus.SUSPENDED,), AffiliateStatus.APPROVED),
}
REASON_REQUIRED = ("reject", "suspend")


class AffiliateService:
    """Service for affiliate applications and their review"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)
        self.brands = BrandAccessService(db)

    # ========================================================================
    # Referral codes
    # ========================================================================

    async def _code_taken(self, brand_id: uuid.UUID, code: str) -> bool:
        result = await self.db.execute(
            select(Affiliate.id).where(Affiliate.brand_id == brand_id, Affiliate.referral_code == code)
        )
        return result.scalar_one_or_none() is not None

    async def generate_referral_code(self, brand_id: uuid.UUID, name: str) -> str:
        """
        Unique code within the brand from the user's name.
        Example: RAVI2K5M (first 4 letters of name + 4 random)
        """
        prefix = ''.join(c for c in (name or "").upper() if c.isalpha())[:4]
        if len(prefix) < 4:
            prefix = prefix.ljust(4, 'X')

        while True:
            suffix = ''.join(random.choices(string.ascii_uppercase + string.digits, k=4))
            code = f"{prefix}{suffix}"
            if not await self._code_taken(brand_id, code):
                return code

    # ========================================================================
    # Applications
    # ========================================================================

    async def apply(self, user: User, brand_id: uuid.UUID, referral_code: Optional[str] = None) -> Affiliate:
        """Create a PENDING affiliate of a public brand for the user."""
        brand = await self.brands.get_brand(brand_id)
        if not brand.is_publicly_visible:
            raise NotFound("Brand not found", context={"brand_id": str(brand_id)})

        checker = await self.brands.checker_for(brand_id, user)
        if checker.is_member():
            raise ValidationError(
                "Brand members cannot be affiliates of their own brand",
                context={"brand_id": str(brand_id), "user": user.email},
            )

        existing = await self.db.execute(
            select(Affiliate.id).where(Affiliate.brand_id == brand_id, Affiliate.user_id == user.id)
        )
        if existing.scalar_one_or_none():
            raise ConflictError("Already an affiliate of this brand", context={"brand_id": str(brand_id)})

        if referral_code:
            if await self._code_taken(brand_id, referral_code):
                raise ConflictError(
                    f"Referral code {referral_code} is taken",
                    context={"brand_id": str(brand_id)},
                )
        else:
            referral_code = await self.generate_referral_code(brand_id, user.name or user.email)

        affiliate = Affiliate(
            id=uuid.uuid4(),
            brand_id=brand_id,
            user_id=user.id,
            referral_code=referral_code,
            commission_rate=settings.DEFAULT_AFFILIATE_RATE,
            status=AffiliateStatus.PENDING.value,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(affiliate)
                await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(
                "Affiliate application conflicts with an existing one",
                context={"brand_id": str(brand_id), "referral_code": referral_code},
            )

        await self.audit.record(
            AffiliateEnrolled(
                brand_id=brand_id,
                affiliate_id=affiliate.id,
                user_id=user.id,
                referral_code=referral_code,
            ),
            actor_email=user.email,
        )
        await self.db.commit()

        logger.info(f"User {user.email} applied as affiliate of brand {brand_id} with code {referral_code}")
        return affiliate

    async def list_links(self, user: User) -> List[dict]:
        """Approved affiliates of the user with the brand they promote and order counts."""
        order_counts = (
            select(Order.affiliate_id.label("affiliate_id"), func.count(Order.id).label("orders"))
            .where(Order.affiliate_id.is_not(None))
            .group_by(Order.affiliate_id)
            .subquery()
        )
        result = await self.db.execute(
            select(Affiliate, Brand.name, Brand.slug, order_counts.c.orders)
            .join(Brand, Brand.id == Affiliate.brand_id)
            .outerjoin(order_counts, order_counts.c.affiliate_id == Affiliate.id)
            .where(
                Affiliate.user_id == user.id,
                Affiliate.status == AffiliateStatus.APPROVED.value,
                Brand.is_deleted == False,  # noqa: E712
            )
            .order_by(Affiliate.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return [
            {
                "affiliate_id": affiliate.id,
                "brand_id": affiliate.brand_id,
                "brand_name": name,
                "brand_slug": slug,
                "referral_code": affiliate.referral_code,
                "commission_rate": affiliate.commission_rate,
                "clicks": affiliate.click_count,
                "orders": orders or 0,
                "total_sales": affiliate.total_sales,
                "total_due": affiliate.total_due,
                "outstanding": affiliate.outstanding,
            }
            for affiliate, name, slug, orders in result.all()
        ]

    # ========================================================================
    # Admin review
    # ========================================================================

    async def list_affiliates(
        self,
        admin: User,
        status: Optional[str] = None,
        brand_id: Optional[uuid.UUID] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[Affiliate], int]:
        """
        List affiliates with filters and pagination.
        """
        PermissionChecker(admin).require(Role.PLATFORM_ADMIN)

        filters = []
        if status:
            filters.append(Affiliate.status == status.upper())
        if brand_id:
            filters.append(Affiliate.brand_id == brand_id)

        query = select(Affiliate)
        count_query = select(func.count(Affiliate.id))
        if filters:
            query = query.where(and_(*filters))
            count_query = count_query.where(and_(*filters))

        total_result = await self.db.execute(count_query)
        total = total_result.scalar() or 0

        query = query.order_by(Affiliate.created_at.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def _get_for_update(self, affiliate_id: uuid.UUID) -> Affiliate:
        result = await self.db.execute(
            select(Affiliate)
            .where(Affiliate.id == affiliate_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        affiliate = result.scalar_one_or_none()
        if not affiliate:
            raise NotFound("Affiliate not found", context={"affiliate_id": str(affiliate_id)})
        return affiliate

    async def apply_action(
        self,
        affiliate_id: uuid.UUID,
        admin: User,
        action: str,
        reason: Optional[str] = None,
    ) -> Affiliate:
        """
        Move an affiliate through its review states.

        approve/reject: PENDING only; reject needs a reason
        suspend: anything not already suspended; needs a reason
        reinstate: SUSPENDED back to APPROVED
        """
        PermissionChecker(admin).require(Role.PLATFORM_ADMIN, "Only platform admins can review affiliates")
        if action not in ACTIONS:
            raise ValidationError(f"Unknown affiliate action: {action}")
        allowed_from, new_status = ACTIONS[action]
        reason = (reason or "").strip() or None
        if action in REASON_REQUIRED and not reason:
            raise ValidationError(f"A reason is required to {action} an affiliate")

        affiliate = await self._get_for_update(affiliate_id)
        old_status = affiliate.status
        if old_status not in [s.value for s in allowed_from]:
            raise ConflictError(
                f"Cannot {action} an affiliate that is {old_status}",
                context={"affiliate_id": str(affiliate_id)},
            )

        affiliate.status = new_status.value
        affiliate.status_reason = reason
        affiliate.reviewed_by_email = admin.email
        affiliate.reviewed_at = datetime.now(timezone.utc)

        await self.audit.record(
            AffiliateStatusChanged(
                brand_id=affiliate.brand_id,
                affiliate_id=affiliate.id,
                action=action,
                old_status=old_status,
                new_status=new_status.value,
                reason=reason,
            ),
            actor_email=admin.email,
        )
        await self.db.commit()

        logger.info(f"Affiliate {affiliate.id}: {old_status} -> {new_status.value} ({action} by {admin.email})")
        return affiliate

    async def update_commission_rate(self, affiliate_id: uuid.UUID, admin: User, rate: Decimal) -> Affiliate:
        """Applies to orders recorded after the change."""
        PermissionChecker(admin).require(Role.PLATFORM_ADMIN, "Only platform admins can change affiliate rates")
        if rate < 0 or rate > 1:
            raise ValidationError("Commission rate must be between 0 and 1", context={"rate": str(rate)})

        affiliate = await self._get_for_update(affiliate_id)
        old_rate = affiliate.commission_rate
        affiliate.commission_rate = rate

        await self.audit.record(
            AffiliateRateChanged(
                brand_id=affiliate.brand_id,
                affiliate_id=affiliate.id,
                old_rate=old_rate,
                new_rate=rate,
            ),
            actor_email=admin.email,
        )
        await self.db.commit()

        logger.info(f"Affiliate {affiliate.id} rate changed from {old_rate} to {rate} by {admin.email}")
        return affiliate
