import uuid

from fastapi import APIRouter, Query

from app.api.deps import DB, CurrentUser, Rail
from app.schemas.payout import (
    PaymentMethodUpdate,
    PaymentMethodResponse,
    PayoutResult,
    PayoutRecordResponse,
    PayoutListResponse,
    PayoutResolve,
)
from app.services.payout_service import PayoutService

router = APIRouter(tags=["Payouts"])


@router.post("/payouts/request", response_model=PayoutResult)
async def request_payout(db: DB, current_user: CurrentUser, rail: Rail):
    """
    Pay out all available earnings to the default payout destination.

    Returns 409 while another payout for the same user is in flight and 502
    when the payment provider rejects the transfer. A provider timeout returns
    504 and leaves the payout PROCESSING until an admin resolves it.
    """
    service = PayoutService(db, rail)
    return PayoutResult(**await service.request_payout(current_user.id))


@router.get("/payouts", response_model=PayoutListResponse)
async def list_payouts(
    db: DB,
    current_user: CurrentUser,
    rail: Rail,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
):
    service = PayoutService(db, rail)
    records, total = await service.list_payouts(current_user.id, skip=(page - 1) * size, limit=size)
    return PayoutListResponse(
        items=[PayoutRecordResponse.model_validate(r) for r in records],
        total=total,
    )


@router.put("/payment-methods/{provider}", response_model=PaymentMethodResponse)
async def set_payment_method(
    provider: str,
    data: PaymentMethodUpdate,
    db: DB,
    current_user: CurrentUser,
    rail: Rail,
):
    """Connect or replace the payout destination for a provider."""
    service = PayoutService(db, rail)
    method = await service.set_payment_method(current_user, provider, data.account_ref, data.is_default)
    return PaymentMethodResponse.model_validate(method)


@router.post("/payouts/{payout_id}/resolve", response_model=PayoutRecordResponse)
async def resolve_payout(
    payout_id: uuid.UUID,
    data: PayoutResolve,
    db: DB,
    current_user: CurrentUser,
    rail: Rail,
):
    """Settle a payout whose transfer outcome was unknown (admin only)."""
    service = PayoutService(db, rail)
    record = await service.resolve_payout(
        payout_id, current_user, data.succeeded, data.transfer_id, data.reason
    )
    return PayoutRecordResponse.model_validate(record)
