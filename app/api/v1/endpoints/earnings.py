from fastapi import APIRouter

from app.api.deps import DB, CurrentUser
from app.schemas.earnings import EarningsResponse
from app.services.ledger_service import LedgerService

router = APIRouter(tags=["Earnings"])


@router.get("", response_model=EarningsResponse)
async def get_earnings(db: DB, current_user: CurrentUser):
    """
    Earnings of the current user.

    Summary (total, available, pending, paid out) plus the breakdown by owned
    brand, platform referral and affiliate link.
    """
    service = LedgerService(db)
    return EarningsResponse(**await service.get_earnings(current_user.id))
