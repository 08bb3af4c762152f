"""
Cart resource.

The server cart is the authoritative copy. The checkout flow only reads it,
adds missing lines before a deferred-payment order, and clears it after a
confirmed order.
"""
from __future__ import annotations

from typing import Any, Dict

from ..models import CartLine, wire_id
from ..schemas import CartSummary, ServerCart
from .base import AsyncBaseResource


class CartResource(AsyncBaseResource):
    """Server cart operations.

    Example:
        ```python
        cart = await client.cart.get()
        if line.product_id not in cart.product_ids():
            await client.cart.add_line(line)
        ```
    """

    async def get(self) -> ServerCart:
        """Read the server cart.

        Raises:
            ResponseParseError: If the body is not a cart
        """
        path = self._settings.cart_path
        response = await self._get(path)
        # the user profile route nests the cart under "cart_items"
        if isinstance(response, dict) and "cart_items" in response:
            response = response["cart_items"]
        return self._parse(ServerCart, response, path)

    async def summary(self) -> CartSummary:
        path = self._settings.cart_summary_path
        return self._parse(CartSummary, await self._get(path), path)

    async def add_line(self, line: CartLine) -> Dict[str, Any]:
        """Add one line to the server cart.

        Args:
            line: The local line to push

        Returns:
            The backend's response body
        """
        body: Dict[str, Any] = {
            "product_id": wire_id(line.product_id),
            "quantity": line.quantity,
        }
        if line.variant_color and line.variant_color != "Default":
            body["color"] = line.variant_color
        return await self._post(self._settings.cart_add_path, body)

    async def clear(self) -> Dict[str, Any]:
        return await self._post(self._settings.cart_clear_path)


__all__ = ["CartResource"]
