"""Razorpay transfer adapter with a stubbed SDK client."""
import time
from decimal import Decimal
from types import SimpleNamespace

import pytest
from razorpay.errors import BadRequestError, ServerError

from app.core.exceptions import ExternalServiceError, ExternalServiceTimeout
from app.services.payment_rail import RazorpayPaymentRail


class StubTransfers:
    def __init__(self, response=None, error=None, delay=0.0):
        self.response = response or {"id": "trf_123", "status": "processed"}
        self.error = error
        self.delay = delay
        self.calls = []

    def create(self, data=None, headers=None, **kwargs):
        self.calls.append({"data": data, "headers": headers})
        if self.delay:
            time.sleep(self.delay)
        if self.error:
            raise self.error
        return self.response


def _rail(transfers, timeout=5.0):
    return RazorpayPaymentRail(client=SimpleNamespace(transfer=transfers), timeout=timeout)


async def test_transfer_sends_paise_and_idempotency_key():
    transfers = StubTransfers()

    result = await _rail(transfers).transfer("acc_abc", Decimal("12.34"), "INR", "key-1")

    assert result.transfer_id == "trf_123"
    assert result.status == "processed"
    call = transfers.calls[0]
    assert call["data"]["account"] == "acc_abc"
    assert call["data"]["amount"] == 1234
    assert call["data"]["currency"] == "INR"
    assert call["headers"]["X-Transfer-Idempotency"] == "key-1"


@pytest.mark.parametrize("error", [BadRequestError("insufficient balance"), ServerError("upstream down")])
async def test_provider_errors_become_external_service_errors(error):
    with pytest.raises(ExternalServiceError) as exc_info:
        await _rail(StubTransfers(error=error)).transfer("acc_abc", Decimal("1.00"), "INR", "key-2")
    assert not isinstance(exc_info.value, ExternalServiceTimeout)


async def test_timeout_is_reported_as_unknown_outcome():
    transfers = StubTransfers(delay=0.3)

    with pytest.raises(ExternalServiceTimeout):
        await _rail(transfers, timeout=0.05).transfer("acc_abc", Decimal("1.00"), "INR", "key-3")
