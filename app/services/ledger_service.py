"""
Earnings Ledger

Ingests attributed orders and maintains the running counters:
- Brand total_sales / total_earnings (total_withdrawn is moved by payouts)
- Affiliate total_sales / total_due, click_count
- Platform referral earnings
- Owner user.total_earnings cache

Every counter is also reproducible by aggregation over Order rows; reconcile()
reports any difference between the two.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Tuple

from sqlalchemy import select, update, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFound, ValidationError
from app.models.affiliate import Affiliate, AffiliateStatus
from app.models.brand import Brand, BrandAccess
from app.models.order import Order
from app.models.payout import PayoutRecord, PayoutStatus
from app.models.referral import PlatformReferral, ReferralStatus
from app.models.role import Role
from app.models.user import User, normalize_email
from app.schemas.events import OrderRecorded
from app.schemas.order import OrderEvent
from app.services.attribution_service import AttributionService
from app.services.audit_service import AuditService
from app.services.commission_service import CommissionService

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass
class CounterDrift:
    """Incremental counter that disagrees with the order history."""
    entity: str
    entity_id: str
    field: str
    recorded: Decimal
    derived: Decimal


def owned_brand_earnings(email, column=None):
    """Scalar subquery: sum of a brand column (total_earnings by default) over brands owned by email."""
    if isinstance(email, str):
        email = normalize_email(email)
    column = Brand.total_earnings if column is None else column
    return (
        select(func.coalesce(func.sum(column), 0))
        .join(BrandAccess, BrandAccess.brand_id == Brand.id)
        .where(
            BrandAccess.user_email == email,
            BrandAccess.role == Role.OWNER.name,
            Brand.is_deleted == False,  # noqa: E712
        )
        .scalar_subquery()
    )


class LedgerService:
    """Service for order ingestion and earnings aggregation"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.attribution = AttributionService(db)
        self.commissions = CommissionService(db)
        self.audit = AuditService(db)

    # ========================================================================
    # Ingestion
    # ========================================================================

    async def record_order(self, event: OrderEvent) -> Tuple[Order, bool]:
        """
        Record a completed order exactly once.

        Returns (order, duplicate). A replayed external_order_id returns the
        stored order with duplicate=True and changes nothing.
        """
        if event.total_amount <= 0:
            raise ValidationError(
                "Order total must be positive",
                context={"order_id": event.external_order_id, "brand_id": str(event.brand_id)},
            )

        existing = await self.get_order_by_external_id(event.external_order_id)
        if existing:
            logger.info(f"Duplicate order {event.external_order_id} for brand {existing.brand_id} ignored")
            return existing, True

        attribution = await self.attribution.resolve(event)

        try:
            # Serialize ingestion per brand so tier selection sees settled prior sales
            brand = await self._lock_brand(attribution.brand_id)
            attribution.brand = brand

            if await self.get_order_by_external_id(event.external_order_id):
                await self.db.rollback()
                return await self.get_order_by_external_id(event.external_order_id), True

            split = await self.commissions.calculate(attribution, event.total_amount)

            order = Order(
                id=uuid.uuid4(),
                external_order_id=event.external_order_id,
                brand_id=brand.id,
                customer_ref=event.customer_ref,
                earning_account_email=attribution.earning_account_email,
                total_amount=event.total_amount,
                brand_rate=split.brand_rate,
                brand_earnings=split.brand_earnings,
                platform_share=split.platform_share,
                affiliate_id=attribution.affiliate_id,
                affiliate_due=split.affiliate_due,
                referrer_email=attribution.referrer_email,
                referral_earnings=split.referral_earnings,
            )
            try:
                async with self.db.begin_nested():
                    self.db.add(order)
                    await self.db.flush()
            except IntegrityError:
                await self.db.rollback()
                existing = await self.get_order_by_external_id(event.external_order_id)
                if existing is None:
                    raise
                logger.info(f"Order {event.external_order_id} recorded concurrently; treating as duplicate")
                return existing, True

            await self._apply_increments(order, event.total_amount)

            await self.audit.record(
                OrderRecorded(
                    brand_id=order.brand_id,
                    external_order_id=order.external_order_id,
                    total_amount=order.total_amount,
                    brand_earnings=order.brand_earnings,
                    platform_share=order.platform_share,
                    affiliate_id=order.affiliate_id,
                    affiliate_due=order.affiliate_due,
                    referrer_email=order.referrer_email,
                    referral_earnings=order.referral_earnings,
                ),
                description=f"Order {order.external_order_id} recorded",
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.error(f"Failed to record order {event.external_order_id} for brand {event.brand_id}")
            raise

        logger.info(
            f"Recorded order {order.external_order_id} for brand {order.brand_id}: "
            f"total={order.total_amount} brand={order.brand_earnings} platform={order.platform_share} "
            f"affiliate={order.affiliate_due} referral={order.referral_earnings}"
        )
        return order, False

    async def _apply_increments(self, order: Order, total_amount: Decimal) -> None:
        await self.db.execute(
            update(Brand)
            .where(Brand.id == order.brand_id)
            .values(
                total_sales=Brand.total_sales + total_amount,
                total_earnings=Brand.total_earnings + order.brand_earnings,
            )
        )

        owner_email = await self.attribution.get_owner_email(order.brand_id)
        if owner_email:
            await self.refresh_user_earnings(owner_email)

        if order.affiliate_id:
            await self.db.execute(
                update(Affiliate)
                .where(Affiliate.id == order.affiliate_id)
                .values(
                    total_sales=Affiliate.total_sales + total_amount,
                    total_due=Affiliate.total_due + order.affiliate_due,
                )
            )

        if order.referrer_email and order.earning_account_email:
            await self._credit_referral(
                order.referrer_email,
                order.earning_account_email,
                order.referral_earnings,
            )

    async def _credit_referral(self, referrer_email: str, referred_email: str, amount: Decimal) -> None:
        now = datetime.now(timezone.utc)
        result = await self.db.execute(
            update(PlatformReferral)
            .where(
                PlatformReferral.referrer_email == referrer_email,
                PlatformReferral.referred_email == referred_email,
            )
            .values(
                earnings=PlatformReferral.earnings + amount,
                status=ReferralStatus.COMPLETED.value,
                completed_at=func.coalesce(PlatformReferral.completed_at, now),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # Referrer set on the user without a tracked referral row
            self.db.add(PlatformReferral(
                id=uuid.uuid4(),
                referrer_email=referrer_email,
                referred_email=referred_email,
                earnings=amount,
                status=ReferralStatus.COMPLETED.value,
                completed_at=now,
            ))
            await self.db.flush()

    async def refresh_user_earnings(self, email: str) -> None:
        """Recompute the user's cached total from the brands they own."""
        email = normalize_email(email)
        await self.db.execute(
            update(User)
            .where(User.email == email)
            .values(total_earnings=owned_brand_earnings(email))
            .execution_options(synchronize_session="fetch")
        )

    async def record_click(self, brand_id: uuid.UUID, referral_code: str) -> bool:
        """Count a referral-link click. Unknown or inactive codes are ignored."""
        result = await self.db.execute(
            update(Affiliate)
            .where(
                Affiliate.brand_id == brand_id,
                Affiliate.referral_code == referral_code,
                Affiliate.status == AffiliateStatus.APPROVED.value,
            )
            .values(click_count=Affiliate.click_count + 1)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        counted = result.rowcount > 0
        if not counted:
            logger.info(f"Click for unknown affiliate code '{referral_code}' on brand {brand_id}")
        return counted

    # ========================================================================
    # Derived views
    # ========================================================================

    async def get_order_by_external_id(self, external_order_id: str) -> Optional[Order]:
        result = await self.db.execute(
            select(Order).where(Order.external_order_id == external_order_id)
        )
        return result.scalar_one_or_none()

    async def referral_earnings_for(self, email: str) -> Decimal:
        result = await self.db.execute(
            select(func.coalesce(func.sum(Order.referral_earnings), 0))
            .where(Order.referrer_email == email)
        )
        return Decimal(result.scalar_one())

    async def affiliate_stats(self, affiliate_id: uuid.UUID) -> dict:
        # Counters are updated in SQL; bypass the identity map
        result = await self.db.execute(
            select(Affiliate)
            .where(Affiliate.id == affiliate_id)
            .execution_options(populate_existing=True)
        )
        affiliate = result.scalar_one_or_none()
        if not affiliate:
            raise NotFound("Affiliate not found", context={"affiliate_id": str(affiliate_id)})

        result = await self.db.execute(
            select(
                func.count(Order.id),
                func.coalesce(func.sum(Order.total_amount), 0),
                func.coalesce(func.sum(Order.affiliate_due), 0),
            ).where(Order.affiliate_id == affiliate_id)
        )
        orders, total_sales, total_due = result.one()

        conversion_rate = ZERO
        if affiliate.click_count:
            conversion_rate = (Decimal(orders) / Decimal(affiliate.click_count)).quantize(Decimal("0.0001"))

        return {
            "affiliate_id": affiliate.id,
            "clicks": affiliate.click_count,
            "orders": orders,
            "total_sales": Decimal(total_sales),
            "total_due": Decimal(total_due),
            "total_paid": affiliate.total_paid,
            "conversion_rate": conversion_rate,
        }

    async def brand_recent_orders(
        self,
        brand_id: uuid.UUID,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Order], int]:
        count_result = await self.db.execute(
            select(func.count(Order.id)).where(Order.brand_id == brand_id)
        )
        total = count_result.scalar() or 0

        result = await self.db.execute(
            select(Order)
            .where(Order.brand_id == brand_id)
            .order_by(Order.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    # ========================================================================
    # Reconciliation
    # ========================================================================

    async def reconcile(self) -> List[CounterDrift]:
        """Compare every incremental counter with its order-history aggregate."""
        drift: List[CounterDrift] = []

        brand_totals = (
            select(
                Order.brand_id.label("brand_id"),
                func.sum(Order.total_amount).label("sales"),
                func.sum(Order.brand_earnings).label("earnings"),
            )
            .group_by(Order.brand_id)
            .subquery()
        )
        result = await self.db.execute(
            select(Brand, brand_totals.c.sales, brand_totals.c.earnings)
            .outerjoin(brand_totals, brand_totals.c.brand_id == Brand.id)
            .execution_options(populate_existing=True)
        )
        withdrawn = await self._brand_withdrawals()
        for brand, sales, earnings in result.all():
            self._compare(drift, "brand", brand.id, "total_sales", brand.total_sales, sales)
            self._compare(drift, "brand", brand.id, "total_earnings", brand.total_earnings, earnings)
            self._compare(
                drift, "brand", brand.id, "total_withdrawn",
                brand.total_withdrawn, withdrawn.get(str(brand.id), ZERO),
            )

        affiliate_totals = (
            select(
                Order.affiliate_id.label("affiliate_id"),
                func.sum(Order.total_amount).label("sales"),
                func.sum(Order.affiliate_due).label("due"),
            )
            .where(Order.affiliate_id.is_not(None))
            .group_by(Order.affiliate_id)
            .subquery()
        )
        result = await self.db.execute(
            select(Affiliate, affiliate_totals.c.sales, affiliate_totals.c.due)
            .outerjoin(affiliate_totals, affiliate_totals.c.affiliate_id == Affiliate.id)
            .execution_options(populate_existing=True)
        )
        for affiliate, sales, due in result.all():
            self._compare(drift, "affiliate", affiliate.id, "total_sales", affiliate.total_sales, sales)
            self._compare(drift, "affiliate", affiliate.id, "total_due", affiliate.total_due, due)

        referral_totals = (
            select(
                Order.referrer_email.label("referrer_email"),
                Order.earning_account_email.label("referred_email"),
                func.sum(Order.referral_earnings).label("earnings"),
            )
            .where(Order.referrer_email.is_not(None))
            .group_by(Order.referrer_email, Order.earning_account_email)
            .subquery()
        )
        result = await self.db.execute(
            select(PlatformReferral, referral_totals.c.earnings)
            .outerjoin(
                referral_totals,
                and_(
                    referral_totals.c.referrer_email == PlatformReferral.referrer_email,
                    referral_totals.c.referred_email == PlatformReferral.referred_email,
                ),
            )
        )
        for referral, earnings in result.all():
            self._compare(drift, "platform_referral", referral.id, "earnings", referral.earnings, earnings)

        owners = await self.db.execute(
            select(User, owned_brand_earnings(User.email))
            .execution_options(populate_existing=True)
        )
        for user, owned in owners.all():
            self._compare(drift, "user", user.id, "total_earnings", user.total_earnings, owned)

        for item in drift:
            logger.warning(
                f"Ledger drift on {item.entity} {item.entity_id}.{item.field}: "
                f"recorded={item.recorded} derived={item.derived}"
            )
        return drift

    async def _brand_withdrawals(self) -> dict:
        """Brand allocations of PROCESSING and COMPLETED payouts, summed per brand id."""
        result = await self.db.execute(
            select(PayoutRecord.brand_allocations).where(
                PayoutRecord.status.in_([PayoutStatus.PROCESSING.value, PayoutStatus.COMPLETED.value])
            )
        )
        totals: dict = {}
        for allocations in result.scalars().all():
            for brand_id, amount in (allocations or {}).items():
                totals[brand_id] = totals.get(brand_id, ZERO) + Decimal(amount)
        return totals

    @staticmethod
    def _compare(drift, entity, entity_id, field, recorded, derived) -> None:
        recorded = Decimal(recorded or 0).quantize(ZERO)
        derived = Decimal(derived or 0).quantize(ZERO)
        if recorded != derived:
            drift.append(CounterDrift(
                entity=entity,
                entity_id=str(entity_id),
                field=field,
                recorded=recorded,
                derived=derived,
            ))

    # ========================================================================
    # Earnings
    # ========================================================================

    async def _get_user(self, user_id: uuid.UUID) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFound("User not found", context={"user_id": str(user_id)})
        return user

    async def get_earnings_summary(self, user_id: uuid.UUID) -> dict:
        """
        Earnings summary of a user.

        total = owned brands' earnings + platform referral earnings + affiliate dues.
        PROCESSING payouts are pending and COMPLETED payouts are paid out, both
        counted for this user. Availability is counted per source, so brand
        earnings already withdrawn by a previous owner are not available again.
        """
        user = await self._get_user(user_id)
        components = await self.earning_components(user)
        total = sum(components.values(), ZERO)
        available = await self.available_by_source(user)

        payouts = await self.db.execute(
            select(
                PayoutRecord.status,
                func.coalesce(func.sum(PayoutRecord.amount), 0),
            )
            .where(
                PayoutRecord.user_id == user.id,
                PayoutRecord.status.in_([PayoutStatus.PROCESSING.value, PayoutStatus.COMPLETED.value]),
            )
            .group_by(PayoutRecord.status)
        )
        sums = {status: Decimal(amount) for status, amount in payouts.all()}
        pending = sums.get(PayoutStatus.PROCESSING.value, ZERO)
        paid_out = sums.get(PayoutStatus.COMPLETED.value, ZERO)

        last_result = await self.db.execute(
            select(func.max(PayoutRecord.completed_at)).where(
                PayoutRecord.user_id == user.id,
                PayoutRecord.status == PayoutStatus.COMPLETED.value,
            )
        )

        return {
            "total_earnings": total,
            "available_for_payout": sum(available.values(), ZERO),
            "pending_earnings": pending,
            "paid_out": paid_out,
            "last_payout_at": last_result.scalar_one_or_none(),
        }

    async def earning_components(self, user: User) -> dict:
        brand_result = await self.db.execute(select(owned_brand_earnings(user.email)))
        referral_result = await self.db.execute(
            select(func.coalesce(func.sum(PlatformReferral.earnings), 0))
            .where(PlatformReferral.referrer_email == user.email)
        )
        affiliate_result = await self.db.execute(
            select(func.coalesce(func.sum(Affiliate.total_due), 0))
            .where(Affiliate.user_id == user.id)
        )
        return {
            "brand": Decimal(brand_result.scalar_one()),
            "referral": Decimal(referral_result.scalar_one()),
            "affiliate": Decimal(affiliate_result.scalar_one()),
        }

    async def available_by_source(self, user: User) -> dict:
        """
        Withdrawable amount per earnings source.

        brand: headroom of the brands the user owns now (total_earnings - total_withdrawn).
        referral, affiliate: earned minus this user's PROCESSING and COMPLETED payouts.
        """
        components = await self.earning_components(user)
        brand_result = await self.db.execute(
            select(owned_brand_earnings(user.email, Brand.total_earnings - Brand.total_withdrawn))
        )
        reserved = await self.db.execute(
            select(
                func.coalesce(func.sum(PayoutRecord.referral_amount), 0),
                func.coalesce(func.sum(PayoutRecord.affiliate_amount), 0),
            ).where(
                PayoutRecord.user_id == user.id,
                PayoutRecord.status.in_([PayoutStatus.PROCESSING.value, PayoutStatus.COMPLETED.value]),
            )
        )
        used_referral, used_affiliate = (Decimal(v) for v in reserved.one())

        return {
            "brand": max(Decimal(brand_result.scalar_one()), ZERO),
            "referral": max(components["referral"] - used_referral, ZERO),
            "affiliate": max(components["affiliate"] - used_affiliate, ZERO),
        }

    async def get_earnings(self, user_id: uuid.UUID) -> dict:
        """Summary plus per-source breakdown."""
        user = await self._get_user(user_id)
        summary = await self.get_earnings_summary(user_id)

        brands = await self.db.execute(
            select(Brand)
            .join(BrandAccess, BrandAccess.brand_id == Brand.id)
            .where(
                BrandAccess.user_email == user.email,
                BrandAccess.role == Role.OWNER.name,
                Brand.is_deleted == False,  # noqa: E712
            )
            .order_by(Brand.name)
            .execution_options(populate_existing=True)
        )
        referrals = await self.db.execute(
            select(PlatformReferral)
            .where(PlatformReferral.referrer_email == user.email)
            .order_by(PlatformReferral.created_at)
        )
        affiliates = await self.db.execute(
            select(Affiliate)
            .where(Affiliate.user_id == user.id)
            .order_by(Affiliate.created_at)
            .execution_options(populate_existing=True)
        )

        return {
            "summary": summary,
            "breakdown": {
                "brand_earnings": [
                    {
                        "brand_id": b.id,
                        "brand_name": b.name,
                        "total_sales": b.total_sales,
                        "amount": b.total_earnings,
                        "withdrawn": b.total_withdrawn,
                        "available": max(b.available_earnings, ZERO),
                    }
                    for b in brands.scalars().all()
                ],
                "referral_earnings": [
                    {"referred_email": r.referred_email, "status": r.status, "amount": r.earnings}
                    for r in referrals.scalars().all()
                ],
                "affiliate_earnings": [
                    {
                        "affiliate_id": a.id,
                        "brand_id": a.brand_id,
                        "referral_code": a.referral_code,
                        "total_sales": a.total_sales,
                        "total_due": a.total_due,
                        "total_paid": a.total_paid,
                    }
                    for a in affiliates.scalars().all()
                ],
            },
        }

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _lock_brand(self, brand_id: uuid.UUID) -> Brand:
        result = await self.db.execute(
            select(Brand)
            .where(Brand.id == brand_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()
