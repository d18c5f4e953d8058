import uuid
from decimal import Decimal

from fastapi import APIRouter, status

from app.api.deps import DB, CurrentUser
from app.schemas.referral import (
    ReferralLinkResponse,
    ReferralLinkDetail,
    ReferralLinkListResponse,
    ReferralJoinRequest,
    PlatformReferralResponse,
)
from app.services.referral_service import ReferralService

router = APIRouter(tags=["Referrals"])


@router.post("/links", response_model=ReferralLinkResponse, status_code=status.HTTP_201_CREATED)
async def create_referral_link(db: DB, current_user: CurrentUser):
    """Create a sign-up link. At most MAX_ACTIVE_REFERRAL_LINKS may be active."""
    link = await ReferralService(db).create_link(current_user)
    return ReferralLinkResponse.model_validate(link)


@router.get("/links", response_model=ReferralLinkListResponse)
async def list_referral_links(db: DB, current_user: CurrentUser):
    """The current user's links with the users who joined through each."""
    links = await ReferralService(db).list_links(current_user)
    items = [ReferralLinkDetail.model_validate(link) for link in links]
    return ReferralLinkListResponse(
        items=items,
        active=sum(1 for item in items if item.is_active),
        total_earnings=sum((item.total_earnings for item in items), Decimal("0")),
    )


@router.delete("/links/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_referral_link(link_id: uuid.UUID, db: DB, current_user: CurrentUser):
    await ReferralService(db).deactivate_link(current_user, link_id)


@router.post("/join", response_model=PlatformReferralResponse, status_code=status.HTTP_201_CREATED)
async def join_with_referral_link(data: ReferralJoinRequest, db: DB, current_user: CurrentUser):
    """Attach the current user to the owner of a referral link."""
    referral = await ReferralService(db).join_with_link(current_user, data.code)
    return PlatformReferralResponse.model_validate(referral)
