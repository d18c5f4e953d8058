from typing import List, Optional
import uuid

from fastapi import APIRouter, HTTPException, status, Query

from app.api.deps import DB, CurrentUser
from app.models.affiliate import Affiliate
from app.models.role import Role
from app.core.permissions import PermissionChecker
from app.schemas.affiliate import (
    AffiliateApply,
    AffiliateResponse,
    AffiliateListResponse,
    AffiliateLink,
    AffiliateActionRequest,
    AffiliateRateUpdate,
)
from app.schemas.earnings import AffiliateStats
from app.schemas.order import ClickEvent
from app.services.affiliate_service import AffiliateService
from app.services.ledger_service import LedgerService

router = APIRouter(tags=["Affiliates"])


@router.post("", response_model=AffiliateResponse, status_code=status.HTTP_201_CREATED)
async def apply_as_affiliate(data: AffiliateApply, db: DB, current_user: CurrentUser):
    """Apply to promote a brand. The application starts PENDING until an admin reviews it."""
    service = AffiliateService(db)
    affiliate = await service.apply(current_user, data.brand_id, data.referral_code)
    return AffiliateResponse.model_validate(affiliate)


@router.get("", response_model=AffiliateListResponse)
async def list_affiliates(
    db: DB,
    current_user: CurrentUser,
    affiliate_status: Optional[str] = Query(None, alias="status"),
    brand_id: Optional[uuid.UUID] = None,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
):
    """All affiliates, filtered by status and brand (admin only)."""
    service = AffiliateService(db)
    items, total = await service.list_affiliates(
        current_user, status=affiliate_status, brand_id=brand_id, page=page, page_size=size
    )
    return AffiliateListResponse(
        items=[AffiliateResponse.model_validate(a) for a in items],
        total=total,
        page=page,
        size=size,
    )


@router.get("/links", response_model=List[AffiliateLink])
async def list_my_links(db: DB, current_user: CurrentUser):
    """Referral links of the current user's approved affiliates."""
    return await AffiliateService(db).list_links(current_user)


@router.post("/clicks", status_code=status.HTTP_202_ACCEPTED)
async def record_click(data: ClickEvent, db: DB):
    """Count a referral-link click. Public; unknown codes are accepted and ignored."""
    service = LedgerService(db)
    counted = await service.record_click(data.brand_id, data.referral_code)
    return {"counted": counted}


@router.post("/{affiliate_id}/actions", response_model=AffiliateResponse)
async def review_affiliate(
    affiliate_id: uuid.UUID,
    data: AffiliateActionRequest,
    db: DB,
    current_user: CurrentUser,
):
    """
    Approve, reject, suspend or reinstate an affiliate (admin only).
    Reject and suspend need a reason; invalid transitions return 409.
    """
    service = AffiliateService(db)
    affiliate = await service.apply_action(affiliate_id, current_user, data.action, data.reason)
    return AffiliateResponse.model_validate(affiliate)


@router.patch("/{affiliate_id}", response_model=AffiliateResponse)
async def update_affiliate_rate(
    affiliate_id: uuid.UUID,
    data: AffiliateRateUpdate,
    db: DB,
    current_user: CurrentUser,
):
    service = AffiliateService(db)
    affiliate = await service.update_commission_rate(affiliate_id, current_user, data.commission_rate)
    return AffiliateResponse.model_validate(affiliate)


@router.get("/{affiliate_id}/stats", response_model=AffiliateStats)
async def get_affiliate_stats(
    affiliate_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
):
    """Clicks, orders and conversion of one affiliate. Own affiliates or admins."""
    affiliate = await db.get(Affiliate, affiliate_id)
    if not affiliate:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Affiliate not found")
    if affiliate.user_id != current_user.id:
        PermissionChecker(current_user).require(Role.PLATFORM_ADMIN)

    service = LedgerService(db)
    return AffiliateStats(**await service.affiliate_stats(affiliate_id))
