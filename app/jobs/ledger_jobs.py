"""
Ledger Maintenance Jobs

- Release payout-in-flight flags left behind by crashed requests
- Reconcile incremental counters against the order history
"""

import logging
from datetime import datetime, timezone

from app.database import get_db_session
from app.services.ledger_service import LedgerService
from app.services.payment_rail import RazorpayPaymentRail
from app.services.payout_service import PayoutService

logger = logging.getLogger(__name__)


async def release_stale_payout_locks() -> int:
    async with get_db_session() as session:
        service = PayoutService(session, RazorpayPaymentRail())
        return await service.release_stale_payout_locks()


async def reconcile_ledger() -> int:
    """Log every counter that drifted from its order-history aggregate."""
    start_time = datetime.now(timezone.utc)
    async with get_db_session() as session:
        drift = await LedgerService(session).reconcile()

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    if drift:
        logger.warning(f"Ledger reconciliation found {len(drift)} drifted counters in {duration:.2f}s")
    else:
        logger.info(f"Ledger reconciliation clean in {duration:.2f}s")
    return len(drift)
