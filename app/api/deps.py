from typing import Annotated, Optional
import uuid
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.core.security import verify_access_token
from app.core.permissions import PermissionChecker
from app.models.role import Role
from app.models.user import User
from app.services.payment_rail import PaymentRail, RazorpayPaymentRail


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme; missing credentials are reported as 401 below
security = HTTPBearer(auto_error=False)


async def get_current_user(
    db: Annotated[AsyncSession, Depends(get_db)],
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> User:
    """
    Dependency to get the current authenticated user.
    Validates the identity provider's JWT and loads the user by its subject.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    user_id = verify_access_token(credentials.credentials)
    if user_id is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise credentials_exception

    try:
        user_uuid = uuid.UUID(user_id)
    except ValueError:
        logger.warning(f"Invalid user_id in token: {user_id}")
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_uuid))
    user = result.scalar_one_or_none()

    if user is None:
        logger.warning(f"User {user_id} from token not found")
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated"
        )

    return user


def require_platform_role(role: Role):
    """
    Dependency factory to require a minimum platform role.

    Usage:
        @router.get("/", dependencies=[Depends(require_platform_role(Role.PLATFORM_ADMIN))])
        async def admin_endpoint():
            ...
    """
    async def role_dependency(user: Annotated[User, Depends(get_current_user)]):
        if not PermissionChecker(user).has_role(role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient role. Required: {role.name} or higher"
            )
        return True

    return role_dependency


def get_payment_rail() -> PaymentRail:
    """Payment rail used for payouts; overridden in tests."""
    return RazorpayPaymentRail()


# Type aliases for cleaner endpoint signatures
CurrentUser = Annotated[User, Depends(get_current_user)]
DB = Annotated[AsyncSession, Depends(get_db)]
Rail = Annotated[PaymentRail, Depends(get_payment_rail)]
