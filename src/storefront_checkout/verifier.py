"""Gateway payment verification."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .errors import APIError, CheckoutError, VerificationError
from .models import GatewaySuccess, OrderRecord, OrderSubmissionPayload

if TYPE_CHECKING:
    from .client import StorefrontClient

logger = logging.getLogger(__name__)


class PaymentVerifier:
    """
    Sends a gateway payment proof to the backend.

    The backend checks the signature and persists the order. This is one
    network call with no automatic retry: whether to try again is the
    caller's decision.
    """

    def __init__(self, client: "StorefrontClient"):
        self._client = client

    async def verify(self, success: GatewaySuccess, payload: OrderSubmissionPayload) -> OrderRecord:
        """
        Verify a captured payment and get the persisted order.

        Args:
            success: Gateway payment proof
            payload: The payload the intent was created for

        Returns:
            OrderRecord created by the backend

        Raises:
            VerificationError: On transport failure, backend rejection or a
                response that does not confirm an order
        """
        logger.info("Verifying payment %s for gateway order %s", success.payment_id, success.gateway_order_id)
        try:
            envelope = await self._client.payments.verify(success, payload)
        except APIError as e:
            raise VerificationError(
                f"Payment verification rejected: {e.message}",
                status_code=e.status_code,
                cause=e,
            )
        except CheckoutError as e:
            raise VerificationError(f"Payment verification failed: {e.message}", cause=e)
        except (ValueError, TypeError) as e:
            logger.error("Unreadable verification response for payment %s: %s", success.payment_id, e)
            raise VerificationError("Payment verification returned an unreadable response", cause=e)

        if envelope.success is False:
            raise VerificationError(envelope.message or "Payment verification failed")

        try:
            record = envelope.to_record(
                fallback_total=payload.totals.grand_total,
                default_status="confirmed",
                default_payment_status="paid",
            )
        except (ValueError, TypeError) as e:
            raise VerificationError("Payment verification returned an unreadable order", cause=e)
        if record is None:
            raise VerificationError("Payment verification returned no order")

        logger.info("Payment %s verified, order %s", success.payment_id, record.order_id)
        return record
