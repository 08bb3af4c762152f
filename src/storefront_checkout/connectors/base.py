"""Base payment gateway interfaces."""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Mapping, Optional

from ..models import CustomerContact, GatewayIntent, GatewayResult


class GatewayCheckoutError(Exception):
    """Error payload reported by a gateway checkout SDK.

    Dismissal and payment failure both arrive here; the adapter decides which
    is which from the payload.
    """

    def __init__(self, payload: Optional[Mapping[str, Any]] = None):
        self.payload: Dict[str, Any] = dict(payload or {})
        error = self.payload.get("error", self.payload)
        description = error.get("description") if isinstance(error, Mapping) else None
        super().__init__(description or "Gateway checkout error")


class GatewayCheckout(ABC):
    """The gateway's hosted checkout UI, seen as one awaitable call."""

    @abstractmethod
    async def open_checkout(self, options: Dict[str, Any]) -> Mapping[str, Any]:
        """
        Open the gateway checkout and wait for the customer.

        Args:
            options: Checkout options (key, amount, order id, prefill...)

        Returns:
            The gateway's success mapping

        Raises:
            GatewayCheckoutError: On dismissal or payment failure
        """
        pass


class CallbackGatewayCheckout(GatewayCheckout):
    """Adapts a callback-style SDK ``open(options, on_success, on_error)``."""

    def __init__(self, open_fn: Callable[..., Any]):
        self._open_fn = open_fn

    async def open_checkout(self, options: Dict[str, Any]) -> Mapping[str, Any]:
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def on_success(data: Mapping[str, Any]) -> None:
            if not future.done():
                loop.call_soon_threadsafe(_settle, future, data, None)

        def on_error(data: Mapping[str, Any]) -> None:
            if not future.done():
                loop.call_soon_threadsafe(_settle, future, None, GatewayCheckoutError(data))

        result = self._open_fn(options, on_success, on_error)
        if asyncio.iscoroutine(result):
            await result
        return await future


def _settle(future: asyncio.Future, data: Any, error: Optional[BaseException]) -> None:
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(data)


class PaymentGatewayAdapter(ABC):
    """Turns a gateway intent into a closed ``GatewayResult``."""

    @property
    @abstractmethod
    def gateway_name(self) -> str:
        """Return the gateway name."""
        pass

    @abstractmethod
    async def invoke(self, intent: GatewayIntent, customer: CustomerContact) -> GatewayResult:
        """
        Present the gateway checkout for an intent.

        Never raises for gateway outcomes: success, dismissal and coded
        failures all come back as values.
        """
        pass
