"""
Payment Rail - Razorpay Route transfers

Moves payout amounts from the platform account to a seller's linked account.
The payout processor depends only on the PaymentRail interface, so tests and
other providers can substitute their own implementation.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import razorpay
from razorpay.errors import BadRequestError, GatewayError, ServerError

from app.config import settings
from app.core.exceptions import ExternalServiceError, ExternalServiceTimeout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferResult:
    transfer_id: str
    status: str


class PaymentRail(ABC):
    """Outbound money transfer to an external payout destination."""

    provider: str = ""

    @abstractmethod
    async def transfer(
        self,
        destination: str,
        amount: Decimal,
        currency: str,
        idempotency_key: str,
    ) -> TransferResult:
        """
        Transfer amount to destination.

        Raises ExternalServiceError when the provider rejects or cannot take
        the transfer, and ExternalServiceTimeout when the outcome is unknown.
        Implementations must not retry on their own.
        """


class RazorpayPaymentRail(PaymentRail):
    """Razorpay Route transfer to a linked account (acc_...)."""

    provider = "razorpay"

    def __init__(self, client: Optional[razorpay.Client] = None, timeout: Optional[float] = None):
        self.client = client or razorpay.Client(
            auth=(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET)
        )
        self.timeout = timeout or settings.PAYMENT_RAIL_TIMEOUT_SECONDS

    async def transfer(
        self,
        destination: str,
        amount: Decimal,
        currency: str,
        idempotency_key: str,
    ) -> TransferResult:
        # Razorpay uses the smallest currency unit
        amount_in_paise = int((Decimal(amount) * 100).to_integral_value())
        data = {
            "account": destination,
            "amount": amount_in_paise,
            "currency": currency,
            "notes": {"idempotency_key": idempotency_key},
        }

        try:
            transfer = await asyncio.wait_for(
                asyncio.to_thread(
                    self.client.transfer.create,
                    data=data,
                    headers={"X-Transfer-Idempotency": idempotency_key},
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            # The worker thread keeps running; the transfer may still complete
            logger.error(f"Razorpay transfer to {destination} timed out after {self.timeout}s")
            raise ExternalServiceTimeout(
                "Payment provider timed out; transfer outcome unknown",
                context={"destination": destination, "idempotency_key": idempotency_key},
            )
        except BadRequestError as e:
            logger.error(f"Razorpay rejected transfer to {destination}: {e}")
            raise ExternalServiceError(
                f"Payment provider rejected the transfer: {e}",
                context={"destination": destination, "idempotency_key": idempotency_key},
            )
        except (ServerError, GatewayError) as e:
            logger.error(f"Razorpay transfer to {destination} failed: {e}")
            raise ExternalServiceError(
                "Payment provider unavailable",
                context={"destination": destination, "idempotency_key": idempotency_key},
            )

        logger.info(f"Created Razorpay transfer {transfer['id']} of {amount} {currency} to {destination}")
        return TransferResult(transfer_id=transfer["id"], status=transfer.get("status", "created"))
