"""Payout requests against a fake payment rail."""
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select, update

from app.core.exceptions import (
    ConflictError,
    ExternalServiceError,
    ExternalServiceTimeout,
    Forbidden,
    ValidationError,
)
from app.models.brand import Brand
from app.models.payout import PayoutRecord, PayoutStatus
from app.models.user import User
from app.services.brand_access_service import BrandAccessService
from app.services.ledger_service import LedgerService
from app.services.payout_service import PayoutService, payout_idempotency_key

from tests.conftest import make_affiliate, make_brand, make_user, order_event


async def _earner(db, rail, order_total="2.00", with_destination=True):
    """Brand owner whose earnings are half of order_total."""
    owner = await make_user(db, "owner@example.com")
    brand = await make_brand(db, owner, "payday")
    await LedgerService(db).record_order(order_event(brand.id, "ord-1", order_total))
    service = PayoutService(db, rail)
    if with_destination:
        await service.set_payment_method(owner, "razorpay", "acc_owner")
    return service, owner.id


async def _lock_value(db, user_id):
    result = await db.execute(select(User.payout_locked_at).where(User.id == user_id))
    return result.scalar_one()


async def test_payout_below_minimum_rejected(db, rail):
    service, user_id = await _earner(db, rail, order_total="1.00")

    with pytest.raises(ValidationError):
        await service.request_payout(user_id)

    assert rail.calls == []
    assert await _lock_value(db, user_id) is None


async def test_payout_transfers_available_amount(db, rail):
    service, user_id = await _earner(db, rail, order_total="2.00")

    result = await service.request_payout(user_id)

    assert result["amount"] == Decimal("1.00")
    assert result["transfer_id"] == "trf_1"
    assert rail.calls[0]["destination"] == "acc_owner"
    assert rail.calls[0]["amount"] == Decimal("1.00")
    assert rail.calls[0]["currency"] == "INR"

    summary = await LedgerService(db).get_earnings_summary(user_id)
    assert summary["paid_out"] == Decimal("1.00")
    assert summary["available_for_payout"] == Decimal("0")
    assert summary["last_payout_at"] is not None

    records, total = await service.list_payouts(user_id)
    assert total == 1
    assert records[0].status == PayoutStatus.COMPLETED.value
    assert records[0].brand_amount == Decimal("1.00")
    assert await _lock_value(db, user_id) is None


async def test_second_payout_has_nothing_available(db, rail):
    service, user_id = await _earner(db, rail, order_total="10.00")
    await service.request_payout(user_id)

    with pytest.raises(ValidationError):
        await service.request_payout(user_id)
    assert len(rail.calls) == 1


async def test_payout_without_destination(db, rail):
    service, user_id = await _earner(db, rail, with_destination=False)

    with pytest.raises(ValidationError):
        await service.request_payout(user_id)
    assert rail.calls == []


async def test_unsupported_provider_rejected(db, rail):
    owner = await make_user(db, "owner@example.com")

    with pytest.raises(ValidationError):
        await PayoutService(db, rail).set_payment_method(owner, "paypal", "someone@example.com")


async def test_failed_transfer_releases_reservation(db, rail):
    service, user_id = await _earner(db, rail, order_total="10.00")
    rail.fail = True

    with pytest.raises(ExternalServiceError):
        await service.request_payout(user_id)

    summary = await LedgerService(db).get_earnings_summary(user_id)
    assert summary["available_for_payout"] == Decimal("5.00")
    assert summary["pending_earnings"] == Decimal("0")

    records, _ = await service.list_payouts(user_id)
    assert records[0].status == PayoutStatus.FAILED.value
    assert records[0].failure_reason
    assert await _lock_value(db, user_id) is None


async def test_retry_after_failure_uses_new_idempotency_key(db, rail):
    service, user_id = await _earner(db, rail, order_total="10.00")
    rail.fail = True
    with pytest.raises(ExternalServiceError):
        await service.request_payout(user_id)

    rail.fail = False
    await service.request_payout(user_id)

    keys = [call["idempotency_key"] for call in rail.calls]
    assert len(keys) == 2
    assert keys[0] != keys[1]


async def test_payout_in_flight_conflicts(db, rail):
    service, user_id = await _earner(db, rail, order_total="10.00")
    await db.execute(
        update(User).where(User.id == user_id).values(payout_locked_at=datetime.now(timezone.utc))
    )
    await db.commit()

    with pytest.raises(ConflictError):
        await service.request_payout(user_id)
    assert rail.calls == []


async def test_stale_lock_is_taken_over(db, rail):
    service, user_id = await _earner(db, rail, order_total="10.00")
    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(payout_locked_at=datetime.now(timezone.utc) - timedelta(hours=1))
    )
    await db.commit()

    result = await service.request_payout(user_id)
    assert result["amount"] == Decimal("5.00")


async def test_release_stale_payout_locks(db, rail):
    stale = await make_user(db, "stale@example.com")
    fresh = await make_user(db, "fresh@example.com")
    stale_id, fresh_id = stale.id, fresh.id
    now = datetime.now(timezone.utc)
    await db.execute(update(User).where(User.id == stale_id).values(payout_locked_at=now - timedelta(hours=1)))
    await db.execute(update(User).where(User.id == fresh_id).values(payout_locked_at=now))
    await db.commit()

    released = await PayoutService(db, rail).release_stale_payout_locks()

    assert released == 1
    assert await _lock_value(db, stale_id) is None
    assert await _lock_value(db, fresh_id) is not None


async def test_affiliate_payout_marks_dues_paid(db, rail):
    owner = await make_user(db, "owner@example.com")
    promoter = await make_user(db, "promoter@example.com")
    brand = await make_brand(db, owner, "shop")
    affiliate = await make_affiliate(db, brand.id, promoter, "PROMO", rate="0.20")
    promoter_id = promoter.id

    # brand earnings 50.00, affiliate due 10.00
    await LedgerService(db).record_order(order_event(brand.id, "ord-1", "100.00", referral_code="PROMO"))

    service = PayoutService(db, rail)
    await service.set_payment_method(promoter, "razorpay", "acc_promoter")
    result = await service.request_payout(promoter_id)
    assert result["amount"] == Decimal("10.00")

    record = (await db.execute(select(PayoutRecord))).scalar_one()
    assert record.affiliate_amount == Decimal("10.00")
    assert record.brand_amount == Decimal("0")

    await db.refresh(affiliate)
    assert affiliate.total_paid == Decimal("10.00")
    assert affiliate.outstanding == Decimal("0")


async def test_brand_earnings_paid_once_across_ownership_transfer(db, rail):
    owner = await make_user(db, "owner@example.com")
    buyer = await make_user(db, "buyer@example.com")
    brand = await make_brand(db, owner, "handover")
    owner_id, buyer_id, brand_id = owner.id, buyer.id, brand.id
    await LedgerService(db).record_order(order_event(brand_id, "ord-1", "10.00"))

    service = PayoutService(db, rail)
    await service.set_payment_method(owner, "razorpay", "acc_owner")
    await service.set_payment_method(buyer, "razorpay", "acc_buyer")
    await service.request_payout(owner_id)

    await BrandAccessService(db).transfer_ownership(brand_id, owner, buyer.email)

    summary = await LedgerService(db).get_earnings_summary(buyer_id)
    assert summary["total_earnings"] == Decimal("5.00")
    assert summary["available_for_payout"] == Decimal("0")
    with pytest.raises(ValidationError):
        await service.request_payout(buyer_id)
    assert len(rail.calls) == 1

    brand = (await db.execute(
        select(Brand).where(Brand.id == brand_id).execution_options(populate_existing=True)
    )).scalar_one()
    assert brand.total_withdrawn == brand.total_earnings == Decimal("5.00")


async def test_new_owner_receives_only_earnings_after_transfer(db, rail):
    owner = await make_user(db, "owner@example.com")
    buyer = await make_user(db, "buyer@example.com")
    brand = await make_brand(db, owner, "handover")
    owner_id, buyer_id, brand_id = owner.id, buyer.id, brand.id
    ledger = LedgerService(db)
    await ledger.record_order(order_event(brand_id, "ord-1", "10.00"))

    service = PayoutService(db, rail)
    await service.set_payment_method(owner, "razorpay", "acc_owner")
    await service.set_payment_method(buyer, "razorpay", "acc_buyer")
    await service.request_payout(owner_id)
    await BrandAccessService(db).transfer_ownership(brand_id, owner, buyer.email)
    await ledger.record_order(order_event(brand_id, "ord-2", "4.00"))

    result = await service.request_payout(buyer_id)

    assert result["amount"] == Decimal("2.00")
    assert [call["destination"] for call in rail.calls] == ["acc_owner", "acc_buyer"]


async def test_failed_transfer_returns_brand_headroom(db, rail):
    service, user_id = await _earner(db, rail, order_total="10.00")
    rail.fail = True
    with pytest.raises(ExternalServiceError):
        await service.request_payout(user_id)

    brand = (await db.execute(
        select(Brand).execution_options(populate_existing=True)
    )).scalar_one()
    assert brand.total_withdrawn == Decimal("0")

    record = (await db.execute(select(PayoutRecord))).scalar_one()
    assert {k: Decimal(v) for k, v in record.brand_allocations.items()} == {str(brand.id): Decimal("5.00")}


async def test_timeout_leaves_payout_processing(db, rail):
    service, user_id = await _earner(db, rail, order_total="10.00")
    rail.timeout = True

    with pytest.raises(ExternalServiceTimeout):
        await service.request_payout(user_id)

    record = (await db.execute(select(PayoutRecord))).scalar_one()
    assert record.status == PayoutStatus.PROCESSING.value
    assert record.failure_reason

    summary = await LedgerService(db).get_earnings_summary(user_id)
    assert summary["pending_earnings"] == Decimal("5.00")
    assert summary["available_for_payout"] == Decimal("0")
    assert await _lock_value(db, user_id) is None
    assert await LedgerService(db).reconcile() == []

    rail.timeout = False
    with pytest.raises(ValidationError):
        await service.request_payout(user_id)
    assert len(rail.calls) == 1


async def test_admin_resolves_timed_out_payout_as_completed(db, rail):
    service, user_id = await _earner(db, rail, order_total="10.00")
    admin = await make_user(db, "admin@example.com", role="PLATFORM_ADMIN")
    rail.timeout = True
    with pytest.raises(ExternalServiceTimeout):
        await service.request_payout(user_id)
    record = (await db.execute(select(PayoutRecord))).scalar_one()

    resolved = await service.resolve_payout(record.id, admin, succeeded=True, transfer_id="trf_late")

    assert resolved.status == PayoutStatus.COMPLETED.value
    assert resolved.transfer_id == "trf_late"
    summary = await LedgerService(db).get_earnings_summary(user_id)
    assert summary["paid_out"] == Decimal("5.00")
    assert summary["available_for_payout"] == Decimal("0")

    with pytest.raises(ConflictError):
        await service.resolve_payout(record.id, admin, succeeded=False)


async def test_admin_resolves_timed_out_payout_as_failed(db, rail):
    service, user_id = await _earner(db, rail, order_total="10.00")
    admin = await make_user(db, "admin@example.com", role="PLATFORM_ADMIN")
    rail.timeout = True
    with pytest.raises(ExternalServiceTimeout):
        await service.request_payout(user_id)
    record = (await db.execute(select(PayoutRecord))).scalar_one()

    await service.resolve_payout(record.id, admin, succeeded=False, reason="not found at provider")

    summary = await LedgerService(db).get_earnings_summary(user_id)
    assert summary["available_for_payout"] == Decimal("5.00")
    assert summary["pending_earnings"] == Decimal("0")


async def test_only_admin_resolves_payouts(db, rail):
    service, user_id = await _earner(db, rail, order_total="10.00")
    owner = await db.get(User, user_id)

    with pytest.raises(Forbidden):
        await service.resolve_payout(uuid.uuid4(), owner, succeeded=True, transfer_id="trf_x")


def test_idempotency_key_is_deterministic():
    user_id = uuid.uuid4()
    assert payout_idempotency_key(user_id, Decimal("5.00"), 0) == payout_idempotency_key(user_id, Decimal("5.00"), 0)
    assert payout_idempotency_key(user_id, Decimal("5.00"), 0) != payout_idempotency_key(user_id, Decimal("5.00"), 1)
