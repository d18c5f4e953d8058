"""Role parsing and the brand permission checker."""
import pytest

from app.core.exceptions import Forbidden, ValidationError
from app.core.permissions import PermissionChecker, has_role_permission, parse_role
from app.models.brand import Brand, BrandAccess
from app.models.role import Role
from app.models.user import User


@pytest.mark.parametrize("raw,expected", [
    ("superAdmin", Role.SUPER_ADMIN),
    ("SUPER_ADMIN", Role.SUPER_ADMIN),
    ("super-admin", Role.SUPER_ADMIN),
    ("platform_admin", Role.PLATFORM_ADMIN),
    ("PLATFORM-MODERATOR", Role.PLATFORM_ADMIN),
    ("Owner", Role.OWNER),
    ("manager", Role.MANAGER),
    ("user", Role.USER),
    (Role.OWNER, Role.OWNER),
])
def test_parse_role_spellings(raw, expected):
    assert parse_role(raw) is expected


def test_parse_unknown_role():
    with pytest.raises(ValidationError):
        parse_role("janitor")


def test_role_ordering():
    assert has_role_permission("OWNER", "MANAGER")
    assert has_role_permission("superAdmin", Role.OWNER)
    assert not has_role_permission("MANAGER", "OWNER")
    assert not has_role_permission(Role.USER, Role.MANAGER)


def _user(role="USER"):
    return User(email="someone@example.com", role=role)


def _access(role):
    return BrandAccess(user_email="someone@example.com", role=role)


def test_effective_role_is_the_higher_one():
    assert PermissionChecker(_user(), _access("MANAGER")).effective_role is Role.MANAGER
    assert PermissionChecker(_user("PLATFORM_ADMIN"), _access("MANAGER")).effective_role is Role.PLATFORM_ADMIN
    assert PermissionChecker(_user(), None).effective_role is Role.USER


def test_require_raises_forbidden():
    checker = PermissionChecker(_user(), _access("MANAGER"))
    checker.require(Role.MANAGER)
    with pytest.raises(Forbidden):
        checker.require(Role.OWNER)


def test_grant_rules():
    owner = PermissionChecker(_user(), _access("OWNER"))
    manager = PermissionChecker(_user(), _access("MANAGER"))
    outsider = PermissionChecker(_user(), None)

    assert owner.can_grant(Role.OWNER) and owner.can_grant(Role.MANAGER)
    assert manager.can_grant(Role.MANAGER) and not manager.can_grant(Role.OWNER)
    assert not outsider.can_grant(Role.MANAGER)


def test_revoke_requires_equal_or_higher_role():
    manager = PermissionChecker(_user(), _access("MANAGER"))
    assert manager.can_revoke(Role.MANAGER)
    assert not manager.can_revoke(Role.OWNER)


def test_brand_visibility():
    pending = Brand(name="Pending", slug="pending", is_approved=False, is_hidden=False, is_deleted=False)
    live = Brand(name="Live", slug="live", is_approved=True, is_hidden=False, is_deleted=False)
    deleted = Brand(name="Gone", slug="gone", is_approved=True, is_hidden=False, is_deleted=True)

    anonymous = PermissionChecker(None)
    member = PermissionChecker(_user(), _access("MANAGER"))
    admin = PermissionChecker(_user("SUPER_ADMIN"))

    assert anonymous.can_view_brand(live)
    assert not anonymous.can_view_brand(pending)
    assert member.can_view_brand(pending)
    assert not member.can_view_brand(deleted)
    assert admin.can_view_brand(deleted)
