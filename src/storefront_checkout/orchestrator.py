"""
Order submission orchestration.

This module drives one order submission from validation to a terminal state:
- Payload validation
- Deferred payment: cart reconciliation and order creation
- Gateway payment: intent creation, gateway checkout, payment verification
- Best-effort cart cleanup after confirmation
- State-change events for listeners

Expected failures never raise. They come back as a ``SubmissionOutcome`` in
state FAILED with a ``FailureKind`` and the typed error.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Iterable, List, Optional

from .config import CheckoutSettings, get_settings
from .connectors.base import PaymentGatewayAdapter
from .currency import to_minor_units
from .errors import (
    CheckoutError,
    GatewayError,
    IllegalTransition,
    IntentError,
    PaymentCapturedButUnverified,
    ReconciliationError,
    SubmissionError,
    SubmissionInProgress,
    UserCancelled,
    ValidationError,
    VerificationError,
)
from .events import SubmissionEvent, SubmissionListener, publish
from .models import (
    Address,
    CartLine,
    CustomerContact,
    FailureKind,
    GatewayCancelled,
    GatewayFailure,
    GatewayIntent,
    GatewaySuccess,
    OrderRecord,
    OrderSubmissionPayload,
    OrderTotals,
    PaymentMethodChoice,
    ReconciliationResult,
    SubmissionOutcome,
    SubmissionState,
)
from .payload import OrderPayloadBuilder
from .reconciler import CartReconciler
from .verifier import PaymentVerifier

if TYPE_CHECKING:
    from .client import StorefrontClient

logger = logging.getLogger(__name__)

S = SubmissionState

_ALLOWED_TRANSITIONS: Dict[SubmissionState, FrozenSet[SubmissionState]] = {
    S.IDLE: frozenset({S.VALIDATING}),
    S.VALIDATING: frozenset({S.COD_SUBMITTING, S.CREATING_GATEWAY_INTENT, S.FAILED}),
    S.COD_SUBMITTING: frozenset({S.CONFIRMED, S.FAILED}),
    S.CREATING_GATEWAY_INTENT: frozenset({S.AWAITING_USER_PAYMENT, S.FAILED}),
    S.AWAITING_USER_PAYMENT: frozenset({S.VERIFYING_PAYMENT, S.FAILED}),
    S.VERIFYING_PAYMENT: frozenset({S.CONFIRMED, S.FAILED}),
    S.CONFIRMED: frozenset(),
    S.FAILED: frozenset(),
}


class _Submission:
    """State of one submission attempt."""

    def __init__(
        self,
        listeners: List[SubmissionListener],
        payment_method: Optional[PaymentMethodChoice] = None,
        initial: SubmissionState = S.IDLE,
    ):
        self.id = uuid.uuid4().hex
        self.state = initial
        self.history: List[SubmissionState] = [initial]
        self.payment_method = payment_method
        self._listeners = listeners

    async def transition(self, target: SubmissionState, **details: Any) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.state]:
            raise IllegalTransition(self.state.value, target.value)
        previous = self.state
        self.state = target
        self.history.append(target)
        logger.info("Submission %s: %s -> %s", self.id, previous.value, target.value)
        await publish(
            self._listeners,
            SubmissionEvent(
                submission_id=self.id,
                previous=previous,
                state=target,
                payment_method=self.payment_method.tag if self.payment_method else None,
                details=details,
            ),
        )


class OrderSubmissionService:
    """
    Drives an order submission through its state machine.

    Flow:
    1. IDLE -> VALIDATING: build the payload (no network on failure)
    2a. Deferred: COD_SUBMITTING -> reconcile cart -> create order
    2b. Gateway: CREATING_GATEWAY_INTENT -> AWAITING_USER_PAYMENT ->
        VERIFYING_PAYMENT
    3. CONFIRMED (cart cleared best-effort) or FAILED

    One submission at a time: a second ``submit`` while one is in flight
    raises ``SubmissionInProgress``. Once verification has started it runs to
    completion even if the calling task is cancelled.
    """

    def __init__(
        self,
        client: "StorefrontClient",
        gateway: PaymentGatewayAdapter,
        reconciler: Optional[CartReconciler] = None,
        verifier: Optional[PaymentVerifier] = None,
        builder: Optional[OrderPayloadBuilder] = None,
        listeners: Optional[Iterable[SubmissionListener]] = None,
        settings: Optional[CheckoutSettings] = None,
        abort_on_incomplete_reconciliation: Optional[bool] = None,
    ):
        self._client = client
        self._gateway = gateway
        self._reconciler = reconciler or CartReconciler(client)
        self._verifier = verifier or PaymentVerifier(client)
        self._builder = builder or OrderPayloadBuilder()
        self._listeners: List[SubmissionListener] = list(listeners or [])
        self._settings = settings or get_settings()
        if abort_on_incomplete_reconciliation is None:
            abort_on_incomplete_reconciliation = self._settings.abort_on_incomplete_reconciliation
        self._abort_on_incomplete = abort_on_incomplete_reconciliation

        self._current: Optional[_Submission] = None
        self._last_outcome: Optional[SubmissionOutcome] = None

    @property
    def is_submitting(self) -> bool:
        return self._current is not None

    @property
    def state(self) -> SubmissionState:
        """State of the in-flight submission, IDLE when there is none."""
        return self._current.state if self._current else S.IDLE

    @property
    def last_outcome(self) -> Optional[SubmissionOutcome]:
        return self._last_outcome

    def add_listener(self, listener: SubmissionListener) -> None:
        self._listeners.append(listener)

    async def submit(
        self,
        lines: Iterable[CartLine],
        address: Optional[Address],
        totals: OrderTotals,
        payment_method: Optional[PaymentMethodChoice],
        customer: Optional[CustomerContact] = None,
        notes: Optional[str] = None,
        coupon_code: Optional[str] = None,
    ) -> SubmissionOutcome:
        """
        Submit an order.

        Args:
            lines: Cart lines (or the single buy-now line)
            address: Delivery address
            totals: Totals, computed once before submission
            payment_method: Deferred or gateway payment
            customer: Gateway prefill contact (defaults to the address contact)
            notes: Optional delivery notes
            coupon_code: Optional applied coupon

        Returns:
            SubmissionOutcome in state CONFIRMED or FAILED

        Raises:
            SubmissionInProgress: If another submission is in flight
        """
        sub = self._begin(payment_method)
        try:
            outcome = await self._run(sub, lines, address, totals, payment_method, customer, notes, coupon_code)
            self._last_outcome = outcome
            return outcome
        finally:
            self._current = None

    async def retry_verification(self, outcome: SubmissionOutcome) -> SubmissionOutcome:
        """
        Re-send a captured payment's proof for verification.

        Only for outcomes that failed with PAYMENT_CAPTURED_BUT_UNVERIFIED. The
        gateway is never opened again; the same proof and payload are reused.
        """
        if not outcome.requires_support or outcome.payment is None or outcome.payload is None:
            raise ValueError("Only a captured-but-unverified payment can be re-verified")

        # the payment is already captured, so the attempt starts past the gateway
        sub = self._begin(outcome.payload.payment_method, initial=S.AWAITING_USER_PAYMENT)
        logger.info(
            "Retrying verification of payment %s (submission %s)",
            outcome.payment.payment_id, sub.id,
        )
        try:
            result = await self._shielded_verification(
                sub, outcome.payload, outcome.intent, outcome.payment,
            )
            self._last_outcome = result
            return result
        finally:
            self._current = None

    async def check_order_status(self, order_id: str) -> OrderRecord:
        """Look up an order, e.g. after a captured-but-unverified payment."""
        return await self._client.orders.get(order_id)

    def _begin(
        self,
        payment_method: Optional[PaymentMethodChoice],
        initial: SubmissionState = S.IDLE,
    ) -> _Submission:
        if self._current is not None:
            raise SubmissionInProgress()
        self._current = _Submission(self._listeners, payment_method, initial=initial)
        return self._current

    async def _run(
        self,
        sub: _Submission,
        lines: Iterable[CartLine],
        address: Optional[Address],
        totals: OrderTotals,
        payment_method: Optional[PaymentMethodChoice],
        customer: Optional[CustomerContact],
        notes: Optional[str],
        coupon_code: Optional[str],
    ) -> SubmissionOutcome:
        await sub.transition(S.VALIDATING)
        try:
            payload = self._builder.build(
                lines, address, totals, payment_method, notes=notes, coupon_code=coupon_code,
            )
        except ValidationError as e:
            logger.info("Submission %s rejected: %s", sub.id, e)
            return await self._fail(sub, FailureKind.VALIDATION, e)

        if payload.payment_method.is_gateway:
            customer = customer or CustomerContact.from_address(address)
            return await self._submit_gateway(sub, payload, customer)
        return await self._submit_deferred(sub, payload)

    # ==================== Deferred payment ====================

    async def _submit_deferred(self, sub: _Submission, payload: OrderSubmissionPayload) -> SubmissionOutcome:
        await sub.transition(S.COD_SUBMITTING, address_id=payload.address_id)

        reconciliation = await self._reconciler.reconcile(payload.lines)
        if not reconciliation.complete and self._abort_on_incomplete:
            error = ReconciliationError(
                "Some items could not be added to your cart",
                failed_product_ids=reconciliation.failed_product_ids,
            )
            return await self._fail(
                sub, FailureKind.RECONCILIATION, error,
                payload=payload, reconciliation=reconciliation,
            )

        try:
            envelope = await self._client.orders.create_deferred(payload)
        except CheckoutError as e:
            return await self._fail(
                sub, FailureKind.SUBMISSION, SubmissionError(e.message, cause=e),
                payload=payload, reconciliation=reconciliation,
            )

        if envelope.success is False:
            error = SubmissionError(envelope.message or "Failed to place order")
            return await self._fail(
                sub, FailureKind.SUBMISSION, error,
                payload=payload, reconciliation=reconciliation,
            )

        record = envelope.to_record(fallback_total=payload.totals.grand_total)
        if record is None:
            error = SubmissionError("Order response did not include an order id")
            return await self._fail(
                sub, FailureKind.SUBMISSION, error,
                payload=payload, reconciliation=reconciliation,
            )

        return await self._confirm(sub, record, payload, reconciliation=reconciliation)

    # ==================== Gateway payment ====================

    async def _submit_gateway(
        self,
        sub: _Submission,
        payload: OrderSubmissionPayload,
        customer: CustomerContact,
    ) -> SubmissionOutcome:
        await sub.transition(S.CREATING_GATEWAY_INTENT, amount=str(payload.totals.grand_total))

        try:
            intent = await self._client.payments.create_intent(
                payload, customer, currency=self._settings.currency,
            )
            expected_minor = to_minor_units(payload.totals.grand_total, intent.currency)
        except IntentError as e:
            return await self._fail(sub, FailureKind.INTENT, e, payload=payload)
        except CheckoutError as e:
            error = IntentError(f"Could not start payment: {e.message}", cause=e)
            return await self._fail(sub, FailureKind.INTENT, error, payload=payload)

        if intent.amount_minor_units != expected_minor:
            error = IntentError(
                f"Payment amount {intent.amount_minor_units} does not match order total "
                f"({expected_minor} minor units)"
            )
            return await self._fail(sub, FailureKind.INTENT, error, payload=payload, intent=intent)

        await sub.transition(S.AWAITING_USER_PAYMENT, gateway_order_id=intent.gateway_order_id)
        result = await self._gateway.invoke(intent, customer)

        if isinstance(result, GatewayCancelled):
            return await self._fail(
                sub, FailureKind.USER_CANCELLED, UserCancelled(result.reason),
                payload=payload, intent=intent,
            )
        if isinstance(result, GatewayFailure):
            error = GatewayError(result.code, result.reason, result.user_message)
            return await self._fail(sub, FailureKind.GATEWAY, error, payload=payload, intent=intent)
        if not isinstance(result, GatewaySuccess):
            raise TypeError(f"Unexpected gateway result: {result!r}")

        return await self._shielded_verification(sub, payload, intent, result)

    async def _shielded_verification(
        self,
        sub: _Submission,
        payload: OrderSubmissionPayload,
        intent: Optional[GatewayIntent],
        payment: GatewaySuccess,
    ) -> SubmissionOutcome:
        task = asyncio.ensure_future(self._verify(sub, payload, intent, payment))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            logger.warning(
                "Submission %s cancelled during verification of payment %s, finishing verification",
                sub.id, payment.payment_id,
            )
            self._last_outcome = await task
            raise

    async def _verify(
        self,
        sub: _Submission,
        payload: OrderSubmissionPayload,
        intent: Optional[GatewayIntent],
        payment: GatewaySuccess,
    ) -> SubmissionOutcome:
        await sub.transition(S.VERIFYING_PAYMENT, payment_id=payment.payment_id)
        try:
            record = await self._verifier.verify(payment, payload)
        except VerificationError as e:
            logger.error(
                "Payment %s (gateway order %s) captured but not verified: %s",
                payment.payment_id, payment.gateway_order_id, e,
            )
            return await self._fail(
                sub, FailureKind.PAYMENT_CAPTURED_BUT_UNVERIFIED,
                PaymentCapturedButUnverified(payment, e),
                payload=payload, intent=intent, payment=payment,
            )
        return await self._confirm(sub, record, payload, intent=intent, payment=payment)

    # ==================== Terminal states ====================

    async def _confirm(
        self,
        sub: _Submission,
        record: OrderRecord,
        payload: OrderSubmissionPayload,
        intent: Optional[GatewayIntent] = None,
        payment: Optional[GatewaySuccess] = None,
        reconciliation: Optional[ReconciliationResult] = None,
    ) -> SubmissionOutcome:
        await sub.transition(S.CONFIRMED, order_id=record.order_id)
        logger.info(
            "Order %s confirmed (%s, %s)",
            record.order_id, payload.payment_method.tag.value, record.display_total(self._settings.currency),
        )
        cart_cleared = await self._clear_cart()
        return SubmissionOutcome(
            state=S.CONFIRMED,
            order=record,
            payload=payload,
            intent=intent,
            payment=payment,
            reconciliation=reconciliation,
            cart_cleared=cart_cleared,
            history=list(sub.history),
            submission_id=sub.id,
        )

    async def _fail(
        self,
        sub: _Submission,
        kind: FailureKind,
        error: CheckoutError,
        **fields: Any,
    ) -> SubmissionOutcome:
        await sub.transition(S.FAILED, failure=kind.value, code=error.code)
        if kind != FailureKind.PAYMENT_CAPTURED_BUT_UNVERIFIED:
            logger.info("Submission %s failed (%s): %s", sub.id, kind.value, error)
        return SubmissionOutcome(
            state=S.FAILED,
            failure_kind=kind,
            error=error,
            history=list(sub.history),
            submission_id=sub.id,
            **fields,
        )

    async def _clear_cart(self) -> bool:
        try:
            await self._client.cart.clear()
        except CheckoutError as e:
            # the order exists; a stale cart is cosmetic
            logger.warning("Order confirmed but cart could not be cleared: %s", e)
            return False
        return True
