from enum import Enum


class Role(int, Enum):
    """
    Closed role hierarchy shared by platform roles and brand roles.
    Higher number = higher authority.

    USER, PLATFORM_ADMIN and SUPER_ADMIN are platform roles stored on the user.
    MANAGER and OWNER are brand roles stored on BrandAccess rows.
    """
    USER = 0
    MANAGER = 1
    OWNER = 2
    PLATFORM_ADMIN = 3
    SUPER_ADMIN = 4

    @property
    def is_admin(self) -> bool:
        return self >= Role.PLATFORM_ADMIN


BRAND_ROLES = (Role.MANAGER, Role.OWNER)
