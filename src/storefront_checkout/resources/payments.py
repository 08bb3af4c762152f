"""
Payments resource.

Gateway intents are minted by the backend; the amount the customer is asked
to pay always comes from the intent, never from the client.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as SchemaValidationError

from ..currency import to_minor_units
from ..errors import CheckoutError, IntentError
from ..models import (
    DEFAULT_PAYMENT_METHODS,
    CustomerContact,
    GatewayIntent,
    GatewaySuccess,
    OrderSubmissionPayload,
    PaymentMethodOption,
    wire_id,
)
from ..schemas import GatewayOrderResponse, OrderEnvelope, PaymentMethodPayload
from .base import AsyncBaseResource

logger = logging.getLogger(__name__)


class PaymentsResource(AsyncBaseResource):
    """Gateway intents, payment verification and payment methods.

    Example:
        ```python
        intent = await client.payments.create_intent(payload, customer)
        envelope = await client.payments.verify(success, payload)
        ```
    """

    async def create_intent(
        self,
        payload: OrderSubmissionPayload,
        customer: CustomerContact,
        currency: Optional[str] = None,
    ) -> GatewayIntent:
        """Ask the backend to mint a gateway order for the payload's total.

        Args:
            payload: The validated order payload
            customer: Contact details for the gateway prefill
            currency: ISO currency code (defaults to the configured currency)

        Returns:
            The normalized gateway intent

        Raises:
            IntentError: If the backend response is unusable or disagrees
                with the payload's total
        """
        currency = (currency or self._settings.currency).upper()
        expected_minor = to_minor_units(payload.totals.grand_total, currency)
        body: Dict[str, Any] = {
            "amount": str(payload.totals.grand_total),
            "amount_minor": expected_minor,
            "currency": currency,
            "notes": {
                "address_id": wire_id(payload.address_id),
                "payment_method": payload.payment_method.tag.value,
            },
            "customer": customer.to_wire(),
        }
        if payload.payment_method.kind is not None:
            body["notes"]["payment_method_kind"] = payload.payment_method.kind.value

        response = await self._post(self._settings.gateway_order_path, body)
        try:
            parsed = GatewayOrderResponse.model_validate(response or {})
        except SchemaValidationError as e:
            raise IntentError("Invalid gateway order response", cause=e)

        key = parsed.key or self._settings.gateway_key_id
        if not key:
            raise IntentError("Missing gateway key")
        if parsed.amount != expected_minor:
            raise IntentError(
                f"Gateway order amount {parsed.amount} does not match order total "
                f"({expected_minor} minor units)"
            )

        return GatewayIntent(
            gateway_order_id=parsed.gateway_order_id,
            amount_minor_units=parsed.amount,
            currency=(parsed.currency or currency).upper(),
            public_key=key,
            receipt=parsed.receipt,
        )

    async def verify(self, success: GatewaySuccess, payload: OrderSubmissionPayload) -> OrderEnvelope:
        """Send the gateway proof and the original payload for verification.

        The backend checks the signature and persists the order in one call.

        Raises:
            ResponseParseError: If the body is not an order envelope
        """
        path = self._settings.payment_verify_path
        body = {**payload.to_wire(), **success.to_wire()}
        response = await self._post(path, body, retry=False)
        return self._parse(OrderEnvelope, response, path)

    async def list_methods(self) -> List[PaymentMethodOption]:
        """Payment methods offered by the backend, or the defaults if unavailable."""
        try:
            response = await self._get(self._settings.payment_methods_path)
        except CheckoutError as e:
            logger.warning("Falling back to default payment methods: %s", e)
            return list(DEFAULT_PAYMENT_METHODS)

        raw = response.get("payment_methods", []) if isinstance(response, dict) else response
        try:
            methods = [PaymentMethodPayload.model_validate(item).to_option() for item in raw or []]
        except SchemaValidationError as e:
            logger.warning("Invalid payment methods response, using defaults: %s", e)
            return list(DEFAULT_PAYMENT_METHODS)
        return methods or list(DEFAULT_PAYMENT_METHODS)


__all__ = ["PaymentsResource"]
