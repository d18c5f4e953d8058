"""Audit trail written alongside ledger and access changes."""
from decimal import Decimal

from app.models.role import Role
from app.schemas.events import AccessGranted, OrderRecorded
from app.services.audit_service import AuditService
from app.services.brand_access_service import BrandAccessService
from app.services.ledger_service import LedgerService

from tests.conftest import make_brand, make_user, order_event


async def test_order_event_round_trips_through_activity_log(db):
    owner = await make_user(db, "owner@example.com")
    brand = await make_brand(db, owner, "audited")
    await LedgerService(db).record_order(order_event(brand.id, "ord-1", "100.00"))

    entries = await AuditService(db).list_events(brand_id=brand.id, event_type="ORDER_RECORDED")

    assert len(entries) == 1
    event = AuditService.parse(entries[0])
    assert isinstance(event, OrderRecorded)
    assert event.external_order_id == "ord-1"
    assert event.brand_earnings == Decimal("50.00")


async def test_access_grant_is_audited_with_actor(db):
    owner = await make_user(db, "owner@example.com")
    manager = await make_user(db, "manager@example.com")
    brand = await make_brand(db, owner, "audited-team")
    await BrandAccessService(db).grant_access(brand.id, owner, manager.email, Role.MANAGER)

    entries = await AuditService(db).list_events(brand_id=brand.id, event_type="ACCESS_GRANTED")
    grants = [AuditService.parse(entry) for entry in entries]

    assert all(isinstance(grant, AccessGranted) for grant in grants)
    assert {grant.user_email for grant in grants} == {"owner@example.com", "manager@example.com"}
    manager_entry = next(e for e in entries if e.payload["user_email"] == "manager@example.com")
    assert manager_entry.actor_email == "owner@example.com"
    assert manager_entry.payload["role"] == "MANAGER"


async def test_list_events_filters_by_user(db):
    owner = await make_user(db, "owner@example.com")
    await make_brand(db, owner, "quiet")

    assert await AuditService(db).list_events(user_id=owner.id) == []
