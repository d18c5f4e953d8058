from typing import Optional, Union

from app.core.exceptions import Forbidden, ValidationError
from app.models.brand import Brand, BrandAccess
from app.models.role import Role
from app.models.user import User


# Legacy spellings seen in stored data and identity-provider claims.
# Keys are normalized: lower-cased with "-", "_" and spaces removed.
ROLE_ALIASES = {
    "user": Role.USER,
    "manager": Role.MANAGER,
    "owner": Role.OWNER,
    "platformadmin": Role.PLATFORM_ADMIN,
    "platformmoderator": Role.PLATFORM_ADMIN,
    "superadmin": Role.SUPER_ADMIN,
}


def parse_role(value: Union[str, Role]) -> Role:
    """Convert any stored role spelling ("superAdmin", "SUPER_ADMIN", "super-admin") to Role."""
    if isinstance(value, Role):
        return value
    key = str(value).replace("-", "").replace("_", "").replace(" ", "").lower()
    try:
        return ROLE_ALIASES[key]
    except KeyError:
        raise ValidationError(f"Unknown role: {value}")


def has_role_permission(user_role: Union[str, Role], required_role: Union[str, Role]) -> bool:
    """Single ordering rule for every role comparison."""
    return parse_role(user_role) >= parse_role(required_role)


class PermissionChecker:
    """
    Resolves what a user may do on one brand.

    The effective role is the higher of the user's platform role and their
    BrandAccess role. PLATFORM_ADMIN and SUPER_ADMIN bypass brand checks.
    """

    def __init__(self, user: Optional[User], access: Optional[BrandAccess] = None):
        self.user = user
        self.access = access
        self.platform_role = parse_role(user.role) if user else Role.USER
        self.brand_role = parse_role(access.role) if access else None

    @property
    def effective_role(self) -> Role:
        if self.brand_role is None:
            return self.platform_role
        return max(self.platform_role, self.brand_role)

    def is_admin(self) -> bool:
        return self.platform_role.is_admin

    def is_owner(self) -> bool:
        return self.brand_role == Role.OWNER

    def is_member(self) -> bool:
        """Owner or manager of the brand."""
        return self.brand_role is not None

    def has_role(self, required: Role) -> bool:
        return has_role_permission(self.effective_role, required)

    def require(self, required: Role, message: Optional[str] = None) -> None:
        if not self.has_role(required):
            raise Forbidden(
                message or f"Insufficient role. Required: {required.name} or higher",
                context={"user": self.user.email if self.user else None, "required": required.name},
            )

    def can_view_brand(self, brand: Brand) -> bool:
        """
        Visibility gate used by all read paths.
        Members and admins see the brand in any moderation state.
        """
        if self.is_member() or self.is_admin():
            return not brand.is_deleted or self.is_admin()
        return brand.is_publicly_visible

    def can_grant(self, role: Role) -> bool:
        """Owners grant OWNER; owners and managers grant MANAGER."""
        if role == Role.OWNER:
            return self.has_role(Role.OWNER)
        return self.has_role(Role.MANAGER)

    def can_revoke(self, target_role: Role) -> bool:
        """Remover must outrank or equal the target's role."""
        return self.has_role(target_role)
