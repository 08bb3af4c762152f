"""
Tests for OrderSubmissionService.

Covers both payment branches end to end against a fake client handle and a
fake gateway adapter.
"""
import asyncio
from dataclasses import replace
from decimal import Decimal

import pytest

from storefront_checkout.errors import (
    APIError,
    GatewayError,
    IllegalTransition,
    IntentError,
    PaymentCapturedButUnverified,
    ReconciliationError,
    SubmissionError,
    SubmissionInProgress,
    TransportError,
    UserCancelled,
)
from storefront_checkout.events import InMemorySubmissionListener, SubmissionListener
from storefront_checkout.models import (
    FailureKind,
    GatewayCancelled,
    GatewayFailure,
    PaymentMethodChoice,
    SubmissionState as S,
)
from storefront_checkout.orchestrator import OrderSubmissionService, _Submission
from storefront_checkout.schemas import OrderEnvelope

DEFERRED = PaymentMethodChoice.deferred()
UPI = PaymentMethodChoice.gateway("upi")


@pytest.fixture
def listener() -> InMemorySubmissionListener:
    return InMemorySubmissionListener()


@pytest.fixture
def service(fake_client, fake_gateway, settings, listener) -> OrderSubmissionService:
    return OrderSubmissionService(fake_client, fake_gateway, listeners=[listener], settings=settings)


async def wait_for_state(service, state, attempts=50):
    for _ in range(attempts):
        if service.state == state:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"service never reached {state}, stuck in {service.state}")


class TestDeferredPayment:
    """Tests for the cash-on-delivery branch."""

    @pytest.mark.asyncio
    async def test_happy_path(self, service, fake_client, fake_gateway, line, address, totals):
        """Scenario A: one line, quantity 2 at 500, confirmed with total 1000."""
        outcome = await service.submit([line], address, totals, DEFERRED)

        assert outcome.state == S.CONFIRMED
        assert outcome.order.order_id == "555"
        assert outcome.order.grand_total == Decimal("1000.00")
        assert outcome.history == [S.IDLE, S.VALIDATING, S.COD_SUBMITTING, S.CONFIRMED]
        assert outcome.cart_cleared

        sent = fake_client.orders.create_deferred.await_args.args[0]
        assert sent.to_wire()["payment_method"] == "deferred"
        fake_client.cart.add_line.assert_awaited_once_with(line)
        fake_client.payments.create_intent.assert_not_awaited()
        fake_gateway.invoke.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_cart_makes_no_network_call(self, service, fake_client, address, totals):
        """Scenario B."""
        outcome = await service.submit([], address, totals, DEFERRED)

        assert outcome.state == S.FAILED
        assert outcome.failure_kind == FailureKind.VALIDATION
        assert outcome.history == [S.IDLE, S.VALIDATING, S.FAILED]
        assert outcome.is_retryable
        fake_client.cart.get.assert_not_awaited()
        fake_client.orders.create_deferred.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_order_creation_rejected(self, service, fake_client, line, address, totals):
        fake_client.orders.create_deferred.side_effect = APIError("Cart is empty", status_code=400)

        outcome = await service.submit([line], address, totals, DEFERRED)

        assert outcome.failure_kind == FailureKind.SUBMISSION
        assert isinstance(outcome.error, SubmissionError)
        assert outcome.error.message == "Cart is empty"
        assert outcome.is_retryable
        fake_client.cart.clear.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_order_creation_unreachable(self, service, fake_client, line, address, totals):
        fake_client.orders.create_deferred.side_effect = TransportError("Network error")

        outcome = await service.submit([line], address, totals, DEFERRED)

        assert outcome.failure_kind == FailureKind.SUBMISSION

    @pytest.mark.asyncio
    async def test_success_false_is_submission_failure(self, service, fake_client, line, address, totals):
        fake_client.orders.create_deferred.return_value = OrderEnvelope.model_validate(
            {"success": False, "message": "Address not serviceable"}
        )

        outcome = await service.submit([line], address, totals, DEFERRED)

        assert outcome.failure_kind == FailureKind.SUBMISSION
        assert outcome.error.message == "Address not serviceable"

    @pytest.mark.asyncio
    async def test_cart_clear_failure_keeps_confirmed(self, service, fake_client, line, address, totals):
        fake_client.cart.clear.side_effect = TransportError("Network error")

        outcome = await service.submit([line], address, totals, DEFERRED)

        assert outcome.state == S.CONFIRMED
        assert not outcome.cart_cleared

    @pytest.mark.asyncio
    async def test_partial_reconciliation_still_submits(self, service, fake_client, line, address, totals):
        fake_client.cart.add_line.side_effect = APIError("Out of stock", status_code=400)

        outcome = await service.submit([line], address, totals, DEFERRED)

        assert outcome.state == S.CONFIRMED
        assert outcome.reconciliation.failed_product_ids == ["101"]
        fake_client.orders.create_deferred.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_abort_on_incomplete_reconciliation(self, fake_client, fake_gateway, settings, line, address, totals):
        fake_client.cart.add_line.side_effect = APIError("Out of stock", status_code=400)
        service = OrderSubmissionService(
            fake_client, fake_gateway, settings=settings, abort_on_incomplete_reconciliation=True
        )

        outcome = await service.submit([line], address, totals, DEFERRED)

        assert outcome.failure_kind == FailureKind.RECONCILIATION
        assert isinstance(outcome.error, ReconciliationError)
        assert outcome.error.failed_product_ids == ["101"]
        fake_client.orders.create_deferred.assert_not_awaited()


class TestGatewayPayment:
    """Tests for the payment gateway branch."""

    @pytest.mark.asyncio
    async def test_happy_path(self, service, fake_client, fake_gateway, intent, payment, line, address, totals, customer):
        """Scenario C: 1000 becomes 100000 minor units, then verified."""
        outcome = await service.submit([line], address, totals, UPI)

        assert outcome.state == S.CONFIRMED
        assert outcome.order.order_id == "777"
        assert outcome.intent.amount_minor_units == 100000
        assert outcome.payment == payment
        assert outcome.history == [
            S.IDLE,
            S.VALIDATING,
            S.CREATING_GATEWAY_INTENT,
            S.AWAITING_USER_PAYMENT,
            S.VERIFYING_PAYMENT,
            S.CONFIRMED,
        ]
        fake_gateway.invoke.assert_awaited_once_with(intent, customer)
        verified_payment, verified_payload = fake_client.payments.verify.await_args.args
        assert verified_payment == payment
        assert verified_payload is outcome.payload
        fake_client.cart.get.assert_not_awaited()
        fake_client.cart.clear.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_user_cancels(self, service, fake_client, fake_gateway, line, address, totals):
        """Scenario D: a dismissed checkout never reaches verification."""
        fake_gateway.invoke.return_value = GatewayCancelled(reason="payment_cancelled")

        outcome = await service.submit([line], address, totals, UPI)

        assert outcome.state == S.FAILED
        assert outcome.failure_kind == FailureKind.USER_CANCELLED
        assert isinstance(outcome.error, UserCancelled)
        assert not outcome.is_retryable
        fake_client.payments.verify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_verification_fails_after_capture(self, service, fake_client, payment, line, address, totals):
        """Scenario E: captured but unverified is distinct from a gateway error."""
        fake_client.payments.verify.side_effect = TransportError("timed out", timeout=True)

        outcome = await service.submit([line], address, totals, UPI)

        assert outcome.state == S.FAILED
        assert outcome.failure_kind == FailureKind.PAYMENT_CAPTURED_BUT_UNVERIFIED
        assert outcome.failure_kind != FailureKind.GATEWAY
        assert isinstance(outcome.error, PaymentCapturedButUnverified)
        assert outcome.error.payment == payment
        assert outcome.payment == payment
        assert outcome.requires_support
        assert not outcome.is_retryable
        fake_client.cart.clear.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_gateway_failure(self, service, fake_client, fake_gateway, line, address, totals):
        fake_gateway.invoke.return_value = GatewayFailure(code="GATEWAY_ERROR", reason="server_down")

        outcome = await service.submit([line], address, totals, UPI)

        assert outcome.failure_kind == FailureKind.GATEWAY
        assert isinstance(outcome.error, GatewayError)
        assert outcome.error.code == "GATEWAY_ERROR"
        assert outcome.error.reason == "server_down"
        assert outcome.is_retryable
        fake_client.payments.verify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_intent_failure_never_opens_gateway(self, service, fake_client, fake_gateway, line, address, totals):
        fake_client.payments.create_intent.side_effect = APIError("Razorpay unavailable", status_code=502)

        outcome = await service.submit([line], address, totals, UPI)

        assert outcome.history[-2:] == [S.CREATING_GATEWAY_INTENT, S.FAILED]
        assert outcome.failure_kind == FailureKind.INTENT
        assert isinstance(outcome.error, IntentError)
        fake_gateway.invoke.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_intent_amount_multiplied_twice_is_rejected(
        self, service, fake_client, fake_gateway, intent, line, address, totals
    ):
        fake_client.payments.create_intent.return_value = replace(intent, amount_minor_units=10000000)

        outcome = await service.submit([line], address, totals, UPI)

        assert outcome.failure_kind == FailureKind.INTENT
        fake_gateway.invoke.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_custom_customer_contact(self, service, fake_gateway, line, address, totals):
        from storefront_checkout.models import CustomerContact

        contact = CustomerContact(name="Ravi", phone="9000000000", email="ravi@example.com")
        await service.submit([line], address, totals, UPI, customer=contact)

        assert fake_gateway.invoke.await_args.args[1] == contact


class TestInFlight:
    """Tests for the one-submission-at-a-time rule."""

    @pytest.mark.asyncio
    async def test_double_submit_raises(self, service, fake_gateway, payment, line, address, totals):
        release = asyncio.Event()

        async def invoke(intent, customer):
            await release.wait()
            return payment

        fake_gateway.invoke.side_effect = invoke
        first = asyncio.ensure_future(service.submit([line], address, totals, UPI))
        await wait_for_state(service, S.AWAITING_USER_PAYMENT)

        assert service.is_submitting
        with pytest.raises(SubmissionInProgress):
            await service.submit([line], address, totals, UPI)

        release.set()
        outcome = await first
        assert outcome.confirmed
        assert not service.is_submitting
        assert service.state == S.IDLE

    @pytest.mark.asyncio
    async def test_flag_released_after_failure(self, service, address, totals):
        await service.submit([], address, totals, DEFERRED)
        assert not service.is_submitting


class TestVerificationRecovery:
    """Tests for the captured-but-unverified recovery paths."""

    @pytest.mark.asyncio
    async def test_retry_verification_never_reopens_gateway(
        self, service, fake_client, fake_gateway, line, address, totals
    ):
        fake_client.payments.verify.side_effect = TransportError("timed out", timeout=True)
        failed = await service.submit([line], address, totals, UPI)

        fake_client.payments.verify.side_effect = None
        outcome = await service.retry_verification(failed)

        assert outcome.state == S.CONFIRMED
        assert outcome.order.order_id == "777"
        assert outcome.history == [S.AWAITING_USER_PAYMENT, S.VERIFYING_PAYMENT, S.CONFIRMED]
        assert fake_gateway.invoke.await_count == 1
        assert fake_client.payments.create_intent.await_count == 1
        assert fake_client.payments.verify.await_count == 2
        assert service.last_outcome is outcome

    @pytest.mark.asyncio
    async def test_retry_verification_can_fail_again(self, service, fake_client, line, address, totals):
        fake_client.payments.verify.side_effect = APIError("Invalid signature", status_code=400)
        failed = await service.submit([line], address, totals, UPI)

        outcome = await service.retry_verification(failed)

        assert outcome.requires_support

    @pytest.mark.asyncio
    async def test_retry_verification_rejects_other_outcomes(self, service, line, address, totals):
        outcome = await service.submit([line], address, totals, DEFERRED)

        with pytest.raises(ValueError):
            await service.retry_verification(outcome)

    @pytest.mark.asyncio
    async def test_check_order_status(self, service, fake_client):
        record = await service.check_order_status("555")

        fake_client.orders.get.assert_awaited_once_with("555")
        assert record.payment_status == "paid"

    @pytest.mark.asyncio
    async def test_verification_survives_cancellation(self, service, fake_client, line, address, totals):
        release = asyncio.Event()
        confirmed = OrderEnvelope.model_validate({"success": True, "order_id": 888})

        async def verify(success, payload):
            await release.wait()
            return confirmed

        fake_client.payments.verify.side_effect = verify
        task = asyncio.ensure_future(service.submit([line], address, totals, UPI))
        await wait_for_state(service, S.VERIFYING_PAYMENT)

        task.cancel()
        await asyncio.sleep(0)
        release.set()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert fake_client.payments.verify.await_count == 1
        assert service.last_outcome.confirmed
        assert service.last_outcome.order.order_id == "888"
        assert not service.is_submitting


class TestStateMachine:
    """Tests for transition legality and events."""

    @pytest.mark.asyncio
    async def test_illegal_transition(self):
        sub = _Submission([])
        with pytest.raises(IllegalTransition):
            await sub.transition(S.CONFIRMED)

    @pytest.mark.asyncio
    async def test_terminal_states_are_final(self):
        sub = _Submission([])
        await sub.transition(S.VALIDATING)
        await sub.transition(S.FAILED)
        with pytest.raises(IllegalTransition):
            await sub.transition(S.VALIDATING)

    @pytest.mark.asyncio
    async def test_gateway_requires_intent_first(self):
        sub = _Submission([])
        await sub.transition(S.VALIDATING)
        with pytest.raises(IllegalTransition):
            await sub.transition(S.AWAITING_USER_PAYMENT)

    @pytest.mark.asyncio
    async def test_listener_sees_every_transition(self, service, listener, line, address, totals):
        outcome = await service.submit([line], address, totals, UPI)

        events = listener.events
        assert [e.state for e in events] == outcome.history[1:]
        assert {e.submission_id for e in events} == {outcome.submission_id}
        assert events[-1].details == {"order_id": "777"}

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_submission(
        self, fake_client, fake_gateway, settings, line, address, totals
    ):
        class Broken(SubmissionListener):
            async def on_transition(self, event):
                raise RuntimeError("listener down")

        service = OrderSubmissionService(fake_client, fake_gateway, listeners=[Broken()], settings=settings)
        outcome = await service.submit([line], address, totals, DEFERRED)

        assert outcome.confirmed
