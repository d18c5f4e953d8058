"""Brand ownership, team access and visibility."""
import uuid
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ConflictError, Forbidden, NotFound
from app.models.brand import BrandAccess
from app.models.role import Role
from app.services.brand_access_service import BrandAccessService
from app.services.ledger_service import LedgerService

from tests.conftest import make_brand, make_user, order_event


async def _team(db):
    owner = await make_user(db, "owner@example.com")
    manager = await make_user(db, "manager@example.com")
    outsider = await make_user(db, "outsider@example.com")
    brand = await make_brand(db, owner, "team-brand")
    service = BrandAccessService(db)
    await service.grant_access(brand.id, owner, manager.email, Role.MANAGER)
    return service, brand, owner, manager, outsider


async def test_create_brand_assigns_single_owner(db):
    owner = await make_user(db, "owner@example.com")
    brand = await make_brand(db, owner, "fresh", approved=False)
    service = BrandAccessService(db)

    assert await service.count_owners(brand.id) == 1
    access = await service.get_owner_access(brand.id)
    assert access.user_email == "owner@example.com"
    assert await service.owned_brand_ids(owner.email) == [brand.id]


async def test_duplicate_slug_conflicts(db):
    owner = await make_user(db, "owner@example.com")
    await make_brand(db, owner, "taken")

    with pytest.raises(ConflictError):
        await BrandAccessService(db).create_brand(owner, "Other", "taken")


async def test_second_owner_row_rejected_by_database(db):
    owner = await make_user(db, "owner@example.com")
    brand = await make_brand(db, owner, "solo")

    db.add(BrandAccess(id=uuid.uuid4(), brand_id=brand.id, user_email="x@example.com", role="OWNER"))
    with pytest.raises(IntegrityError):
        await db.flush()
    await db.rollback()


# ==================== Grant ====================

async def test_grant_manager(db):
    service, brand, owner, manager, _ = await _team(db)

    access = await service.get_access(brand.id, manager.email)
    assert access.role == "MANAGER"
    entries = await service.list_access(brand.id, owner)
    assert {e.user_email for e in entries} == {"owner@example.com", "manager@example.com"}


async def test_grant_existing_member_conflicts(db):
    service, brand, owner, manager, _ = await _team(db)

    with pytest.raises(ConflictError):
        await service.grant_access(brand.id, owner, manager.email, Role.MANAGER)


async def test_grant_unknown_user_not_found(db):
    service, brand, owner, _, _ = await _team(db)

    with pytest.raises(NotFound):
        await service.grant_access(brand.id, owner, "nobody@example.com", Role.MANAGER)


async def test_manager_can_add_manager_but_not_owner(db):
    service, brand, _, manager, outsider = await _team(db)
    outsider_email = outsider.email

    with pytest.raises(Forbidden):
        await service.grant_access(brand.id, manager, outsider_email, Role.OWNER)

    await service.grant_access(brand.id, manager, outsider_email, Role.MANAGER)
    assert (await service.get_access(brand.id, outsider_email)).role == "MANAGER"


async def test_outsider_cannot_grant(db):
    service, brand, _, _, outsider = await _team(db)
    await make_user(db, "friend@example.com")

    with pytest.raises(Forbidden):
        await service.grant_access(brand.id, outsider, "friend@example.com", Role.MANAGER)


async def test_platform_role_cannot_be_granted_on_brand(db):
    service, brand, owner, _, outsider = await _team(db)

    with pytest.raises(Forbidden):
        await service.grant_access(brand.id, owner, outsider.email, Role.PLATFORM_ADMIN)


async def test_granting_owner_hands_over_ownership(db):
    service, brand, owner, _, outsider = await _team(db)

    await service.grant_access(brand.id, owner, outsider.email, Role.OWNER)

    assert await service.count_owners(brand.id) == 1
    assert (await service.get_owner_access(brand.id)).user_email == outsider.email
    assert (await service.get_access(brand.id, owner.email)).role == "MANAGER"


# ==================== Revoke ====================

async def test_owner_removes_manager(db):
    service, brand, owner, manager, _ = await _team(db)

    await service.revoke_access(brand.id, owner, manager.email)
    assert await service.get_access(brand.id, manager.email) is None


async def test_owner_cannot_remove_self(db):
    service, brand, owner, _, _ = await _team(db)

    with pytest.raises(ConflictError):
        await service.revoke_access(brand.id, owner, owner.email)
    assert await service.count_owners(brand.id) == 1


async def test_admin_cannot_remove_owner(db):
    service, brand, owner, _, _ = await _team(db)
    admin = await make_user(db, "admin@example.com", role="PLATFORM_ADMIN")

    with pytest.raises(ConflictError):
        await service.revoke_access(brand.id, admin, owner.email)


async def test_manager_cannot_remove_owner(db):
    service, brand, owner, manager, _ = await _team(db)

    with pytest.raises(Forbidden):
        await service.revoke_access(brand.id, manager, owner.email)


async def test_outsider_cannot_remove(db):
    service, brand, _, manager, outsider = await _team(db)

    with pytest.raises(Forbidden):
        await service.revoke_access(brand.id, outsider, manager.email)


async def test_remove_missing_entry(db):
    service, brand, owner, _, outsider = await _team(db)

    with pytest.raises(NotFound):
        await service.revoke_access(brand.id, owner, outsider.email)


# ==================== Transfer ====================

async def test_transfer_ownership_keeps_single_owner(db):
    service, brand, owner, manager, _ = await _team(db)

    await service.transfer_ownership(brand.id, owner, manager.email)

    assert await service.count_owners(brand.id) == 1
    assert (await service.get_access(brand.id, manager.email)).role == "OWNER"
    assert (await service.get_access(brand.id, owner.email)).role == "MANAGER"


async def test_transfer_moves_cached_earnings(db):
    service, brand, owner, manager, _ = await _team(db)
    await LedgerService(db).record_order(order_event(brand.id, "ord-1", "100.00"))

    await service.transfer_ownership(brand.id, owner, manager.email)

    await db.refresh(owner)
    await db.refresh(manager)
    assert owner.total_earnings == Decimal("0")
    assert manager.total_earnings == Decimal("50.00")


async def test_transfer_to_self_conflicts(db):
    service, brand, owner, _, _ = await _team(db)

    with pytest.raises(ConflictError):
        await service.transfer_ownership(brand.id, owner, owner.email)


async def test_manager_cannot_transfer(db):
    service, brand, _, manager, outsider = await _team(db)

    with pytest.raises(Forbidden):
        await service.transfer_ownership(brand.id, manager, outsider.email)


async def test_admin_can_transfer(db):
    service, brand, _, _, outsider = await _team(db)
    admin = await make_user(db, "admin@example.com", role="SUPER_ADMIN")

    await service.transfer_ownership(brand.id, admin, outsider.email)
    assert (await service.get_owner_access(brand.id)).user_email == outsider.email


# ==================== Role change ====================

async def test_owner_cannot_demote_self(db):
    service, brand, owner, _, _ = await _team(db)

    with pytest.raises(ConflictError):
        await service.change_role(brand.id, owner, owner.email, Role.MANAGER)


async def test_promoting_manager_transfers_ownership(db):
    service, brand, owner, manager, _ = await _team(db)

    await service.change_role(brand.id, owner, manager.email, Role.OWNER)

    assert await service.count_owners(brand.id) == 1
    assert (await service.get_owner_access(brand.id)).user_email == manager.email


async def test_manager_cannot_change_roles(db):
    service, brand, owner, manager, _ = await _team(db)

    with pytest.raises(Forbidden):
        await service.change_role(brand.id, manager, owner.email, Role.MANAGER)


# ==================== Visibility ====================

async def test_unapproved_brand_hidden_from_outsiders(db):
    owner = await make_user(db, "owner@example.com")
    outsider = await make_user(db, "outsider@example.com")
    admin = await make_user(db, "admin@example.com", role="PLATFORM_ADMIN")
    brand = await make_brand(db, owner, "pending", approved=False)
    service = BrandAccessService(db)

    with pytest.raises(NotFound):
        await service.get_brand_for_viewer(brand.id, outsider)
    with pytest.raises(NotFound):
        await service.get_brand_for_viewer(brand.id, None)

    assert (await service.get_brand_for_viewer(brand.id, owner)).id == brand.id
    assert (await service.get_brand_for_viewer(brand.id, admin)).id == brand.id


async def test_hidden_brand_hidden_from_public(db):
    owner = await make_user(db, "owner@example.com")
    brand = await make_brand(db, owner, "shy")
    service = BrandAccessService(db)

    assert await service.can_view(brand, None) is True
    brand.is_hidden = True
    await db.commit()
    assert await service.can_view(brand, None) is False
    assert await service.can_view(brand, owner) is True


async def test_earnings_authorization(db):
    service, brand, owner, manager, outsider = await _team(db)

    await service.authorize_earnings(brand.id, manager)
    await service.authorize_earnings(brand.id, owner, withdraw=True)

    with pytest.raises(Forbidden):
        await service.authorize_earnings(brand.id, manager, withdraw=True)
    with pytest.raises(Forbidden):
        await service.authorize_earnings(brand.id, outsider)


async def test_list_access_requires_membership(db):
    service, brand, _, _, outsider = await _team(db)

    with pytest.raises(Forbidden):
        await service.list_access(brand.id, outsider)


# ==================== Email case ====================

async def test_mixed_case_owner_email_keeps_control(db):
    owner = await make_user(db, "Owner@Example.COM ")
    manager = await make_user(db, "manager@example.com")
    brand = await make_brand(db, owner, "cased")
    service = BrandAccessService(db)

    assert owner.email == "owner@example.com"
    assert (await service.get_owner_access(brand.id)).user_email == "owner@example.com"

    await service.grant_access(brand.id, owner, "MANAGER@example.com", Role.MANAGER)

    assert (await service.get_access(brand.id, manager.email)).role == "MANAGER"
    assert await service.owned_brand_ids("OWNER@example.com") == [brand.id]


async def test_mixed_case_owner_receives_brand_earnings(db):
    owner = await make_user(db, "Owner@Example.com")
    brand = await make_brand(db, owner, "cased-earnings")

    await LedgerService(db).record_order(order_event(brand.id, "ord-1", "100.00"))

    summary = await LedgerService(db).get_earnings_summary(owner.id)
    assert summary["total_earnings"] == Decimal("50.00")
    await db.refresh(owner)
    assert owner.total_earnings == Decimal("50.00")
