"""
Order source webhooks.

The order source signs the raw body with HMAC-SHA256 (ORDER_WEBHOOK_SECRET)
and delivers at least once; ingestion is idempotent on external_order_id.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, status, Request, Header
from pydantic import ValidationError as PydanticValidationError

from app.api.deps import DB
from app.core.exceptions import NotFound, ValidationError
from app.core.security import verify_webhook_signature
from app.schemas.order import OrderEvent, OrderIngestResponse, OrderResponse
from app.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)


router = APIRouter(tags=["Webhooks"])

ORDER_CREATED_TOPIC = "orders/create"


@router.post(
    "/orders",
    summary="Order completion webhook",
    include_in_schema=False,
)
async def order_webhook(
    request: Request,
    db: DB,
    x_order_signature: Optional[str] = Header(None, alias="X-Order-Signature"),
    x_order_topic: Optional[str] = Header(None, alias="X-Order-Topic"),
):
    """
    Record a completed order.

    Other topics and orders for unknown brands are acknowledged without
    processing so the source stops redelivering them.
    """
    body = await request.body()

    if not verify_webhook_signature(body, x_order_signature):
        logger.warning("Order webhook signature verification failed")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature"
        )

    if x_order_topic != ORDER_CREATED_TOPIC:
        logger.info(f"Ignoring order webhook topic: {x_order_topic}")
        return {"status": "ignored", "topic": x_order_topic}

    try:
        event = OrderEvent.model_validate_json(body)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid order payload: {e.errors()[0]['msg']}")

    service = LedgerService(db)
    try:
        order, duplicate = await service.record_order(event)
    except NotFound:
        # Unknown or deleted brand: acknowledge so the source stops redelivering
        logger.warning(
            f"Order {event.external_order_id} for unknown brand {event.brand_id} acknowledged without recording"
        )
        return {
            "status": "ignored",
            "reason": "unknown_brand",
            "external_order_id": event.external_order_id,
        }


    return OrderIngestResponse(
        duplicate=duplicate,
        order=OrderResponse.model_validate(order),
    )
