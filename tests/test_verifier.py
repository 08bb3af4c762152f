"""
Tests for payment verification.
"""
from decimal import Decimal

import pytest
from pydantic import ValidationError as SchemaValidationError

from storefront_checkout.errors import APIError, ResponseParseError, TransportError, VerificationError
from storefront_checkout.models import PaymentMethodChoice
from storefront_checkout.payload import build_payload
from storefront_checkout.schemas import OrderEnvelope
from storefront_checkout.verifier import PaymentVerifier


@pytest.fixture
def payload(line, address, totals):
    return build_payload([line], address, totals, PaymentMethodChoice.gateway("upi"))


class TestVerify:
    """Tests for PaymentVerifier.verify."""

    @pytest.mark.asyncio
    async def test_returns_order_record(self, fake_client, payment, payload):
        record = await PaymentVerifier(fake_client).verify(payment, payload)

        fake_client.payments.verify.assert_awaited_once_with(payment, payload)
        assert record.order_id == "777"
        assert record.payment_status == "paid"
        assert record.grand_total == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_backend_rejection(self, fake_client, payment, payload):
        fake_client.payments.verify.side_effect = APIError("Invalid signature", status_code=400)

        with pytest.raises(VerificationError) as exc_info:
            await PaymentVerifier(fake_client).verify(payment, payload)

        assert exc_info.value.status_code == 400
        assert isinstance(exc_info.value.__cause__, APIError)

    @pytest.mark.asyncio
    async def test_transport_failure_is_not_retried(self, fake_client, payment, payload):
        fake_client.payments.verify.side_effect = TransportError("timed out", timeout=True)

        with pytest.raises(VerificationError):
            await PaymentVerifier(fake_client).verify(payment, payload)

        assert fake_client.payments.verify.await_count == 1

    @pytest.mark.asyncio
    async def test_success_false(self, fake_client, payment, payload):
        fake_client.payments.verify.return_value = OrderEnvelope.model_validate(
            {"success": False, "message": "Payment verification failed"}
        )

        with pytest.raises(VerificationError, match="Payment verification failed"):
            await PaymentVerifier(fake_client).verify(payment, payload)

    @pytest.mark.asyncio
    async def test_no_order_id(self, fake_client, payment, payload):
        fake_client.payments.verify.return_value = OrderEnvelope.model_validate({"success": True})

        with pytest.raises(VerificationError, match="no order"):
            await PaymentVerifier(fake_client).verify(payment, payload)

    @pytest.mark.asyncio
    async def test_unparseable_response(self, fake_client, payment, payload):
        fake_client.payments.verify.side_effect = ResponseParseError("/paychecksave")

        with pytest.raises(VerificationError) as exc_info:
            await PaymentVerifier(fake_client).verify(payment, payload)

        assert isinstance(exc_info.value.__cause__, ResponseParseError)

    @pytest.mark.asyncio
    async def test_schema_error_outside_resource(self, fake_client, payment, payload):
        try:
            OrderEnvelope.model_validate({"total_amount": "1,000.00"})
        except SchemaValidationError as e:
            fake_client.payments.verify.side_effect = e

        with pytest.raises(VerificationError, match="unreadable"):
            await PaymentVerifier(fake_client).verify(payment, payload)
