"""Razorpay gateway adapter."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from ..config import CheckoutSettings, get_settings
from .base import (
    GatewayCheckout,
    GatewayCheckoutError,
    PaymentGatewayAdapter,
)
from ..models import (
    CustomerContact,
    GatewayCancelled,
    GatewayFailure,
    GatewayIntent,
    GatewayResult,
    GatewaySuccess,
)

logger = logging.getLogger(__name__)

# Error codes and reasons the SDK uses when the customer closes the modal
CANCEL_CODES = frozenset({"0", "2", "PAYMENT_CANCELLED"})
CANCEL_REASONS = frozenset({"payment_cancelled", "user_cancelled"})


class RazorpayGatewayAdapter(PaymentGatewayAdapter):
    """Razorpay hosted checkout.

    The amount shown to the customer is the intent's minor-unit amount,
    passed through unchanged.
    """

    def __init__(
        self,
        checkout: GatewayCheckout,
        settings: Optional[CheckoutSettings] = None,
    ):
        self._checkout = checkout
        self._settings = settings or get_settings()

    @property
    def gateway_name(self) -> str:
        return "razorpay"

    def build_options(
        self,
        intent: GatewayIntent,
        customer: CustomerContact,
        description: Optional[str] = None,
        notes: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Build the checkout options for an intent."""
        options: Dict[str, Any] = {
            "key": intent.public_key,
            "amount": intent.amount_minor_units,
            "currency": intent.currency,
            "order_id": intent.gateway_order_id,
            "name": self._settings.merchant_name,
            "description": description or f"Order {intent.receipt or intent.gateway_order_id}",
            "prefill": {
                "name": customer.name,
                "email": customer.email or "",
                "contact": customer.phone,
            },
            "theme": {"color": self._settings.theme_color},
            "notes": dict(notes or {}),
        }
        if self._settings.logo_url:
            options["image"] = self._settings.logo_url
        return options

    async def invoke(
        self,
        intent: GatewayIntent,
        customer: CustomerContact,
        description: Optional[str] = None,
        notes: Optional[Dict[str, Any]] = None,
    ) -> GatewayResult:
        options = self.build_options(intent, customer, description=description, notes=notes)
        logger.info(
            "Opening %s checkout for order %s (%d %s)",
            self.gateway_name, intent.gateway_order_id, intent.amount_minor_units, intent.currency,
        )
        try:
            data = await self._checkout.open_checkout(options)
        except GatewayCheckoutError as e:
            return self.normalize_error(e.payload)
        except (OSError, asyncio.TimeoutError, httpx.TransportError) as e:
            logger.warning("Gateway checkout transport error: %s", e)
            return GatewayFailure(
                code="NETWORK_ERROR",
                reason="network_error",
                description=str(e) or None,
            )
        except Exception as e:
            # SDK misconfiguration or a crash inside the checkout widget
            logger.exception("Gateway checkout failed for order %s", intent.gateway_order_id)
            return GatewayFailure(
                code="GATEWAY_ERROR",
                reason="checkout_error",
                description=str(e) or None,
            )
        return self.normalize_success(data, intent)

    def normalize_success(self, data: Any, intent: GatewayIntent) -> GatewayResult:
        if not isinstance(data, Mapping):
            logger.error("Gateway success for order %s is not a mapping: %r", intent.gateway_order_id, data)
            return GatewayFailure(
                code="INVALID_RESPONSE",
                reason="malformed_payment_response",
                description="Payment response was unreadable",
            )
        payment_id = data.get("razorpay_payment_id") or data.get("payment_id")
        signature = data.get("razorpay_signature") or data.get("signature")
        order_id = data.get("razorpay_order_id") or data.get("order_id") or intent.gateway_order_id
        if not payment_id or not signature:
            logger.error("Gateway success for order %s lacks payment id or signature", intent.gateway_order_id)
            return GatewayFailure(
                code="INVALID_RESPONSE",
                reason="missing_payment_proof",
                description="Payment response was incomplete",
            )
        logger.info("Gateway payment %s captured for order %s", payment_id, order_id)
        return GatewaySuccess(
            payment_id=str(payment_id),
            gateway_order_id=str(order_id),
            signature=str(signature),
        )

    def normalize_error(self, payload: Mapping[str, Any]) -> GatewayResult:
        error = payload.get("error") if isinstance(payload.get("error"), Mapping) else payload
        raw_code = error.get("code")
        if raw_code is None:
            raw_code = payload.get("code")
        code = "" if raw_code is None else str(raw_code).strip()
        reason = str(error.get("reason") or "").strip()
        description = error.get("description") or payload.get("description")

        if code.upper() in CANCEL_CODES or reason.lower() in CANCEL_REASONS:
            logger.info("Gateway checkout dismissed by customer (code=%s, reason=%s)", code, reason)
            return GatewayCancelled(reason=reason or description or None)

        logger.warning("Gateway payment failed: code=%s reason=%s", code, reason)
        return GatewayFailure(
            code=code or "GATEWAY_ERROR",
            reason=reason or "payment_failed",
            description=description,
            source=error.get("source"),
            step=error.get("step"),
        )
