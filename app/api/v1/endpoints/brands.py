from typing import Optional, Union
import uuid

from fastapi import APIRouter, Depends, status, Query
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy import select

from app.api.deps import DB, CurrentUser, security
from app.core.security import verify_access_token
from app.models.user import User
from app.schemas.brand import (
    BrandCreate,
    BrandResponse,
    BrandDetailResponse,
    BrandAccessResponse,
    BrandAccessListResponse,
    AccessGrantRequest,
    AccessRevokeRequest,
    RoleChangeRequest,
    OwnershipTransferRequest,
)
from app.schemas.order import OrderResponse, OrderListResponse
from app.services.brand_access_service import BrandAccessService
from app.services.ledger_service import LedgerService

router = APIRouter(tags=["Brands"])


async def get_optional_user(
    db: DB,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[User]:
    """Active user behind a valid token, else None (anonymous view)."""
    if credentials is None:
        return None
    user_id = verify_access_token(credentials.credentials)
    if user_id is None:
        return None
    try:
        user_uuid = uuid.UUID(user_id)
    except ValueError:
        return None

    result = await db.execute(select(User).where(User.id == user_uuid))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        return None
    return user


@router.post("", response_model=BrandDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_brand(
    data: BrandCreate,
    db: DB,
    current_user: CurrentUser,
):
    """Create a brand owned by the current user. New brands await approval."""
    service = BrandAccessService(db)
    brand = await service.create_brand(current_user, data.name, data.slug, data.genre_id)
    return BrandDetailResponse.model_validate(brand)


@router.get("/{brand_id}", response_model=Union[BrandDetailResponse, BrandResponse])
async def get_brand(
    brand_id: uuid.UUID,
    db: DB,
    viewer: Optional[User] = Depends(get_optional_user),
):
    """
    Get a brand.
    Unapproved or hidden brands are only visible to their team and admins;
    members also receive the sales totals.
    """
    service = BrandAccessService(db)
    brand = await service.get_brand_for_viewer(brand_id, viewer)

    checker = await service.checker_for(brand_id, viewer)
    if checker.is_member() or checker.is_admin():
        return BrandDetailResponse.model_validate(brand)
    return BrandResponse.model_validate(brand)


@router.get("/{brand_id}/orders", response_model=OrderListResponse)
async def list_brand_orders(
    brand_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
):
    """Recent orders with their computed shares. Requires MANAGER or higher."""
    await BrandAccessService(db).authorize_earnings(brand_id, current_user)

    orders, total = await LedgerService(db).brand_recent_orders(
        brand_id,
        skip=(page - 1) * size,
        limit=size,
    )
    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in orders],
        total=total,
    )


# ==================== Team access ====================

@router.get("/{brand_id}/access", response_model=BrandAccessListResponse)
async def list_brand_access(
    brand_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
):
    service = BrandAccessService(db)
    entries = await service.list_access(brand_id, current_user)
    return BrandAccessListResponse(
        items=[BrandAccessResponse.model_validate(e) for e in entries],
        total=len(entries),
    )


@router.post("/{brand_id}/access", response_model=BrandAccessResponse, status_code=status.HTTP_201_CREATED)
async def grant_brand_access(
    brand_id: uuid.UUID,
    data: AccessGrantRequest,
    db: DB,
    current_user: CurrentUser,
):
    """
    Invite an existing user to the brand.
    Granting OWNER hands over ownership; the current owner becomes a manager.
    """
    service = BrandAccessService(db)
    access = await service.grant_access(brand_id, current_user, data.email, data.role)
    return BrandAccessResponse.model_validate(access)


@router.delete("/{brand_id}/access", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_brand_access(
    brand_id: uuid.UUID,
    data: AccessRevokeRequest,
    db: DB,
    current_user: CurrentUser,
):
    service = BrandAccessService(db)
    await service.revoke_access(brand_id, current_user, data.email)


@router.patch("/{brand_id}/access/{email}", response_model=BrandAccessResponse)
async def change_brand_role(
    brand_id: uuid.UUID,
    email: str,
    data: RoleChangeRequest,
    db: DB,
    current_user: CurrentUser,
):
    service = BrandAccessService(db)
    access = await service.change_role(brand_id, current_user, email, data.role)
    return BrandAccessResponse.model_validate(access)


@router.post("/{brand_id}/transfer-ownership", response_model=BrandAccessResponse)
async def transfer_brand_ownership(
    brand_id: uuid.UUID,
    data: OwnershipTransferRequest,
    db: DB,
    current_user: CurrentUser,
):
    service = BrandAccessService(db)
    access = await service.transfer_ownership(brand_id, current_user, data.new_owner_email)
    return BrandAccessResponse.model_validate(access)
