"""
Cart reconciliation before a deferred-payment order.

The deferred-payment endpoint builds the order from the server-side cart, not
from the submitted lines, so local lines the server does not know about are
pushed first. This is a one-way, best-effort merge: server lines missing
locally are left alone, and a failed add never stops the others.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Iterable, List, Optional

from .errors import CheckoutError
from .models import CartLine, ReconciliationResult
from .schemas import ServerCart

if TYPE_CHECKING:
    from .client import StorefrontClient

logger = logging.getLogger(__name__)


class CartReconciler:
    """Pushes local cart lines missing from the server cart."""

    def __init__(self, client: "StorefrontClient"):
        self._client = client

    async def reconcile(
        self,
        local_lines: Iterable[CartLine],
        server_cart: Optional[ServerCart] = None,
    ) -> ReconciliationResult:
        """
        Add every local line whose product is absent from the server cart.

        Args:
            local_lines: Lines the customer sees locally
            server_cart: Already-fetched server cart (fetched when omitted)

        Returns:
            ReconciliationResult listing present, added and failed lines
        """
        lines = list(local_lines)
        result = ReconciliationResult()

        if server_cart is None:
            try:
                server_cart = await self._client.cart.get()
            except CheckoutError as e:
                # without the server cart we can't tell what is missing, and
                # blind adds would double quantities
                logger.warning("Could not read server cart, skipping reconciliation: %s", e)
                result.server_cart_error = e
                return result

        present = server_cart.product_ids()
        missing: List[CartLine] = []
        for line in lines:
            if str(line.product_id) in present:
                result.already_present.append(line)
            else:
                missing.append(line)

        if not missing:
            logger.debug("Server cart already holds all %d local lines", len(lines))
            return result

        logger.info("Adding %d missing line(s) to server cart", len(missing))
        outcomes = await asyncio.gather(
            *(self._client.cart.add_line(line) for line in missing),
            return_exceptions=True,
        )
        for line, outcome in zip(missing, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, Exception):
                logger.warning("Failed to add product %s to server cart: %s", line.product_id, outcome)
                result.failed.append((line, outcome))
            else:
                result.added.append(line)

        if result.failed:
            logger.warning(
                "Cart reconciliation incomplete: %d added, %d failed (%s)",
                len(result.added), len(result.failed), ", ".join(result.failed_product_ids),
            )
        return result
