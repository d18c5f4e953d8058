"""
Commission configuration endpoints.

Reads are open to platform admins and brand members; every change requires
PLATFORM_ADMIN and is audited.
"""
from typing import Optional
import uuid

from fastapi import APIRouter, Depends, HTTPException, status, Query

from app.api.deps import DB, CurrentUser, require_platform_role
from app.models.role import Role
from app.schemas.commission import (
    BrandCommissionUpdate,
    BrandCommissionResponse,
    TierReplaceRequest,
    GenreCommissionUpdate,
    GenreCommissionResponse,
    CommissionListResponse,
    RatePreview,
)
from app.services.brand_access_service import BrandAccessService
from app.services.commission_service import CommissionService

router = APIRouter(tags=["Commissions"])


@router.get(
    "",
    response_model=CommissionListResponse,
    dependencies=[Depends(require_platform_role(Role.PLATFORM_ADMIN))]
)
async def list_commissions(
    db: DB,
    brand_id: Optional[uuid.UUID] = Query(None),
):
    service = CommissionService(db)
    result = await service.list_commissions(brand_id)
    return CommissionListResponse(
        brand_commissions=[BrandCommissionResponse.model_validate(c) for c in result["brand_commissions"]],
        genre_commissions=[GenreCommissionResponse.model_validate(g) for g in result["genre_commissions"]],
    )


@router.get("/brands/{brand_id}", response_model=BrandCommissionResponse)
async def get_brand_commission(
    brand_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
):
    """Commission schedule of a brand. Brand members and admins."""
    await BrandAccessService(db).authorize_earnings(brand_id, current_user)

    commission = await CommissionService(db).get_brand_commission(brand_id)
    if not commission:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Brand commission not configured"
        )
    return BrandCommissionResponse.model_validate(commission)


@router.get("/brands/{brand_id}/preview", response_model=RatePreview)
async def preview_brand_rate(
    brand_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
):
    """Rate the brand's next order would receive."""
    await BrandAccessService(db).authorize_earnings(brand_id, current_user)
    return RatePreview(**await CommissionService(db).preview_rate(brand_id))


@router.patch("/brands/{brand_id}", response_model=BrandCommissionResponse)
async def update_brand_commission(
    brand_id: uuid.UUID,
    data: BrandCommissionUpdate,
    db: DB,
    current_user: CurrentUser,
):
    service = CommissionService(db)
    commission = await service.upsert_brand_commission(brand_id, data, current_user)
    return BrandCommissionResponse.model_validate(commission)


@router.put("/brands/{brand_id}/tiers", response_model=BrandCommissionResponse)
async def replace_commission_tiers(
    brand_id: uuid.UUID,
    data: TierReplaceRequest,
    db: DB,
    current_user: CurrentUser,
):
    service = CommissionService(db)
    commission = await service.replace_tiers(brand_id, data.tiers, current_user)
    return BrandCommissionResponse.model_validate(commission)


@router.put("/genres/{genre_id}", response_model=GenreCommissionResponse)
async def set_genre_commission(
    genre_id: uuid.UUID,
    data: GenreCommissionUpdate,
    db: DB,
    current_user: CurrentUser,
):
    service = CommissionService(db)
    genre_commission = await service.set_genre_commission(genre_id, data.base_rate, current_user)
    return GenreCommissionResponse.model_validate(genre_commission)
