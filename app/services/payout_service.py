"""
Payout Request Processor

Turns a user's available earnings into a transfer on the payment rail:
- Per-user payout-in-flight flag acquired with a conditional UPDATE
- PROCESSING reservation committed before the external call; brand earnings
  are reserved on the brand itself so a later owner cannot withdraw them again
- COMPLETED or FAILED (compensation) after the call, never retried
- A timed-out call leaves the payout PROCESSING until an admin resolves it
"""

import hashlib
import logging
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, List, Tuple

from sqlalchemy import select, update, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    ConflictError,
    DomainError,
    ExternalServiceError,
    ExternalServiceTimeout,
    NotFound,
    ValidationError,
)
from app.core.permissions import PermissionChecker
from app.models.affiliate import Affiliate
from app.models.brand import Brand, BrandAccess
from app.models.payout import PaymentMethod, PayoutRecord, PayoutStatus
from app.models.role import Role
from app.models.user import User
from app.schemas.events import PayoutRequested, PayoutCompleted, PayoutFailed, PayoutUnresolved
from app.services.audit_service import AuditService
from app.services.ledger_service import LedgerService, ZERO
from app.services.payment_rail import PaymentRail

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("razorpay",)


def payout_idempotency_key(user_id: uuid.UUID, total_earnings: Decimal, payout_count: int) -> str:
    raw = f"{user_id}:{total_earnings}:{payout_count}"
    return hashlib.sha256(raw.encode()).hexdigest()


class PayoutService:
    """Service for payout requests and payout destinations"""

    def __init__(self, db: AsyncSession, rail: PaymentRail):
        self.db = db
        self.rail = rail
        self.ledger = LedgerService(db)
        self.audit = AuditService(db)

    # ========================================================================
    # Payout destinations
    # ========================================================================

    async def set_payment_method(
        self,
        user: User,
        provider: str,
        account_ref: str,
        is_default: bool = True,
    ) -> PaymentMethod:
        provider = provider.lower()
        if provider not in SUPPORTED_PROVIDERS:
            raise ValidationError(f"Unsupported payout provider: {provider}")

        result = await self.db.execute(
            select(PaymentMethod).where(
                PaymentMethod.user_id == user.id,
                PaymentMethod.provider == provider,
            )
        )
        method = result.scalar_one_or_none()
        if method is None:
            method = PaymentMethod(id=uuid.uuid4(), user_id=user.id, provider=provider)
            self.db.add(method)

        method.account_ref = account_ref
        method.is_default = is_default
        if is_default:
            await self.db.execute(
                update(PaymentMethod)
                .where(PaymentMethod.user_id == user.id, PaymentMethod.provider != provider)
                .values(is_default=False)
                .execution_options(synchronize_session=False)
            )

        await self.db.commit()
        logger.info(f"Payout destination for user {user.id} set to {provider}")
        return method

    async def get_destination(self, user_id: uuid.UUID) -> Optional[PaymentMethod]:
        """Default payment method, or the only one."""
        result = await self.db.execute(
            select(PaymentMethod).where(PaymentMethod.user_id == user_id)
        )
        methods = list(result.scalars().all())
        if len(methods) == 1:
            return methods[0]
        for method in methods:
            if method.is_default:
                return method
        return None

    # ========================================================================
    # Payout lock
    # ========================================================================

    async def _acquire_lock(self, user_id: uuid.UUID) -> None:
        now = datetime.now(timezone.utc)
        stale_before = now - timedelta(seconds=settings.PAYOUT_LOCK_TIMEOUT_SECONDS)
        result = await self.db.execute(
            update(User)
            .where(
                User.id == user_id,
                or_(User.payout_locked_at.is_(None), User.payout_locked_at < stale_before),
            )
            .values(payout_locked_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if result.rowcount == 0:
            raise ConflictError("Payout already in progress", context={"user_id": str(user_id)})

    async def _release_lock(self, user_id: uuid.UUID) -> None:
        if not self.db.is_active:
            await self.db.rollback()
        await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(payout_locked_at=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    async def release_stale_payout_locks(self) -> int:
        """Clear payout flags older than the lock timeout (scheduled job)."""
        stale_before = datetime.now(timezone.utc) - timedelta(seconds=settings.PAYOUT_LOCK_TIMEOUT_SECONDS)
        result = await self.db.execute(
            update(User)
            .where(User.payout_locked_at.is_not(None), User.payout_locked_at < stale_before)
            .values(payout_locked_at=None)
            .execution_options(synchronize_session=False)
        )

        stuck = await self.db.execute(
            select(func.count(PayoutRecord.id)).where(
                PayoutRecord.status == PayoutStatus.PROCESSING.value,
                PayoutRecord.created_at < stale_before,
            )
        )
        await self.db.commit()

        stuck_count = stuck.scalar() or 0
        if stuck_count:
            logger.warning(f"{stuck_count} payouts stuck in PROCESSING; verify with the payment provider")
        if result.rowcount:
            logger.info(f"Released {result.rowcount} stale payout locks")
        return result.rowcount

    # ========================================================================
    # Payout request
    # ========================================================================

    async def request_payout(self, user_id: uuid.UUID) -> dict:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFound("User not found", context={"user_id": str(user_id)})

        destination = await self.get_destination(user.id)
        if destination is None:
            raise ValidationError(
                "Configure a payout destination first",
                context={"user_id": str(user.id)},
            )
        if destination.provider != self.rail.provider:
            raise ValidationError(
                f"Payouts to {destination.provider} are not available",
                context={"user_id": str(user.id)},
            )

        await self._acquire_lock(user.id)
        try:
            record = await self._reserve(user, destination)
            return await self._execute(user, record)
        finally:
            await self._release_lock(user_id)

    async def _reserve(self, user: User, destination: PaymentMethod) -> PayoutRecord:
        """Write the PROCESSING record that takes the amount out of available earnings."""
        try:
            summary = await self.ledger.get_earnings_summary(user.id)
            available = summary["available_for_payout"]
            if available < settings.MIN_PAYOUT_AMOUNT:
                raise ValidationError(
                    f"Minimum payout amount is {settings.MIN_PAYOUT_AMOUNT}",
                    context={"user_id": str(user.id), "available": str(available)},
                )

            sources = await self.ledger.available_by_source(user)
            brand_allocations = await self._reserve_brands(user, sources["brand"])
            affiliate_allocations = await self._allocate_affiliates(user.id, sources["affiliate"])

            count_result = await self.db.execute(
                select(func.count(PayoutRecord.id)).where(PayoutRecord.user_id == user.id)
            )
            key = payout_idempotency_key(user.id, summary["total_earnings"], count_result.scalar() or 0)

            record = PayoutRecord(
                id=uuid.uuid4(),
                user_id=user.id,
                amount=available,
                brand_amount=sources["brand"],
                referral_amount=sources["referral"],
                affiliate_amount=sources["affiliate"],
                brand_allocations={str(k): str(v) for k, v in brand_allocations.items()},
                affiliate_allocations={str(k): str(v) for k, v in affiliate_allocations.items()},
                status=PayoutStatus.PROCESSING.value,
                idempotency_key=key,
                provider=destination.provider,
                destination=destination.account_ref,
            )
            self.db.add(record)
            await self.audit.record(
                PayoutRequested(user_id=user.id, payout_id=record.id, amount=available, idempotency_key=key),
                actor_email=user.email,
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Payout {record.id} of {available} reserved for user {user.id}")
        return record

    async def _reserve_brands(self, user: User, amount: Decimal) -> dict:
        """
        Move amount into total_withdrawn of the user's owned brands.

        The conditional UPDATE never lets a brand's withdrawals exceed its
        earnings, whoever requests them.
        """
        allocations = {}
        if amount <= 0:
            return allocations

        result = await self.db.execute(
            select(Brand)
            .join(BrandAccess, BrandAccess.brand_id == Brand.id)
            .where(
                BrandAccess.user_email == user.email,
                BrandAccess.role == Role.OWNER.name,
                Brand.is_deleted == False,  # noqa: E712
            )
            .order_by(Brand.created_at)
            .execution_options(populate_existing=True)
        )
        remaining = amount
        for brand in result.scalars().all():
            share = min(max(brand.available_earnings, ZERO), remaining)
            if share <= 0:
                continue
            reserved = await self.db.execute(
                update(Brand)
                .where(
                    Brand.id == brand.id,
                    Brand.total_withdrawn + share <= Brand.total_earnings,
                )
                .values(total_withdrawn=Brand.total_withdrawn + share)
                .execution_options(synchronize_session=False)
            )
            if reserved.rowcount == 0:
                raise ConflictError(
                    "Brand earnings changed during payout; retry",
                    context={"brand_id": str(brand.id)},
                )
            allocations[brand.id] = share
            remaining -= share
            if remaining <= 0:
                break

        if remaining > 0:
            raise ConflictError(
                "Brand earnings changed during payout; retry",
                context={"user_id": str(user.id), "short": str(remaining)},
            )
        return allocations

    async def _release_brands(self, record: PayoutRecord) -> None:
        for brand_id, amount in (record.brand_allocations or {}).items():
            await self.db.execute(
                update(Brand)
                .where(Brand.id == uuid.UUID(brand_id))
                .values(total_withdrawn=Brand.total_withdrawn - Decimal(amount))
                .execution_options(synchronize_session=False)
            )

    async def _execute(self, user: User, record: PayoutRecord) -> dict:
        try:
            result = await self.rail.transfer(
                destination=record.destination,
                amount=record.amount,
                currency=settings.PAYOUT_CURRENCY,
                idempotency_key=record.idempotency_key,
            )
        except ExternalServiceTimeout as e:
            await self._mark_unresolved(user, record, str(e))
            raise
        except Exception as e:
            reason = str(e) or e.__class__.__name__
            await self._mark_failed(user, record, reason)
            if isinstance(e, DomainError):
                raise
            raise ExternalServiceError(
                "Payout transfer failed",
                context={"user_id": str(user.id), "payout_id": str(record.id)},
            ) from e

        await self._mark_completed(user, record, result.transfer_id)
        return {"payout_id": record.id, "transfer_id": result.transfer_id, "amount": record.amount}

    async def _mark_completed(self, user: User, record: PayoutRecord, transfer_id: str) -> None:
        record.status = PayoutStatus.COMPLETED.value
        record.transfer_id = transfer_id
        record.failure_reason = None
        record.completed_at = datetime.now(timezone.utc)
        for affiliate_id, amount in (record.affiliate_allocations or {}).items():
            await self.db.execute(
                update(Affiliate)
                .where(Affiliate.id == uuid.UUID(affiliate_id))
                .values(total_paid=Affiliate.total_paid + Decimal(amount))
                .execution_options(synchronize_session=False)
            )
        await self.audit.record(
            PayoutCompleted(
                user_id=user.id,
                payout_id=record.id,
                amount=record.amount,
                transfer_id=transfer_id,
            ),
            actor_email=user.email,
        )
        await self.db.commit()

        logger.info(
            f"Payout {record.id} of {record.amount} for user {user.id} completed "
            f"(transfer {transfer_id})"
        )

    async def _mark_failed(self, user: User, record: PayoutRecord, reason: str) -> None:
        """Compensation: the reservation goes back to the user and their brands."""
        record.status = PayoutStatus.FAILED.value
        record.failure_reason = reason
        await self._release_brands(record)
        await self.audit.record(
            PayoutFailed(user_id=user.id, payout_id=record.id, amount=record.amount, reason=reason),
            actor_email=user.email,
        )
        await self.db.commit()

        logger.error(f"Payout {record.id} of {record.amount} for user {user.id} failed: {reason}")

    async def _mark_unresolved(self, user: User, record: PayoutRecord, reason: str) -> None:
        record.failure_reason = reason
        await self.audit.record(
            PayoutUnresolved(user_id=user.id, payout_id=record.id, amount=record.amount, reason=reason),
            actor_email=user.email,
        )
        await self.db.commit()

        logger.warning(
            f"Payout {record.id} of {record.amount} for user {user.id} left PROCESSING: {reason}; "
            f"verify transfer {record.idempotency_key} with {record.provider}"
        )

    async def resolve_payout(
        self,
        payout_id: uuid.UUID,
        actor: User,
        succeeded: bool,
        transfer_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> PayoutRecord:
        """
        Settle a PROCESSING payout after checking the transfer with the provider.
        Admin only.
        """
        PermissionChecker(actor).require(Role.PLATFORM_ADMIN, "Only platform admins can resolve payouts")

        result = await self.db.execute(
            select(PayoutRecord)
            .where(PayoutRecord.id == payout_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        record = result.scalar_one_or_none()
        if not record:
            raise NotFound("Payout not found", context={"payout_id": str(payout_id)})
        if record.status != PayoutStatus.PROCESSING.value:
            raise ConflictError(
                f"Payout is already {record.status}",
                context={"payout_id": str(payout_id)},
            )

        user = await self.db.get(User, record.user_id)
        if succeeded:
            if not transfer_id:
                raise ValidationError("transfer_id is required for a completed payout")
            await self._mark_completed(user, record, transfer_id)
        else:
            await self._mark_failed(user, record, reason or "Transfer not found at provider")

        logger.info(f"Payout {record.id} resolved as {record.status} by {actor.email}")
        return record

    async def _allocate_affiliates(self, user_id: uuid.UUID, amount: Decimal) -> dict:
        allocations = {}
        if amount <= 0:
            return allocations

        result = await self.db.execute(
            select(Affiliate)
            .where(Affiliate.user_id == user_id)
            .order_by(Affiliate.created_at)
            .execution_options(populate_existing=True)
        )
        remaining = amount
        for affiliate in result.scalars().all():
            share = min(max(affiliate.outstanding, ZERO), remaining)
            if share > 0:
                allocations[affiliate.id] = share
                remaining -= share
            if remaining <= 0:
                break
        return allocations

    # ========================================================================
    # History
    # ========================================================================

    async def list_payouts(
        self,
        user_id: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[PayoutRecord], int]:
        count_result = await self.db.execute(
            select(func.count(PayoutRecord.id)).where(PayoutRecord.user_id == user_id)
        )
        total = count_result.scalar() or 0

        result = await self.db.execute(
            select(PayoutRecord)
            .where(PayoutRecord.user_id == user_id)
            .order_by(PayoutRecord.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total
