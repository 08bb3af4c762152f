"""
Orders resource.

Order creation is never retried by the client: the backend has no
idempotency key contract, so a retry after a lost response could place the
order twice. Use ``get`` to check whether an order exists instead.
"""
from __future__ import annotations

from decimal import Decimal

from ..models import OrderRecord, OrderSubmissionPayload
from ..schemas import OrderEnvelope
from ..errors import NotFoundError
from .base import AsyncBaseResource


class OrdersResource(AsyncBaseResource):
    """Order operations."""

    async def create_deferred(self, payload: OrderSubmissionPayload) -> OrderEnvelope:
        """Create a deferred-payment (cash on delivery) order.

        The backend builds the order from the server-side cart; the payload
        carries address, totals and the line snapshot for its checks.

        Args:
            payload: The order submission payload

        Returns:
            The backend's order envelope

        Raises:
            ResponseParseError: If the body is not an order envelope
        """
        path = self._settings.order_checkout_path
        response = await self._post(path, payload.to_wire())
        return self._parse(OrderEnvelope, response, path)

    async def get(self, order_id: str) -> OrderRecord:
        """Fetch an order's current status."""
        path = self._settings.order_details_path.format(order_id=order_id)
        envelope = self._parse(OrderEnvelope, await self._get(path), path)
        record = envelope.to_record(fallback_total=Decimal("0"))
        if record is None:
            raise NotFoundError(path)
        return record


__all__ = ["OrdersResource"]
