"""Storefront API resources."""
from .base import AsyncBaseResource
from .cart import CartResource
from .orders import OrdersResource
from .payments import PaymentsResource

__all__ = [
    "AsyncBaseResource",
    "CartResource",
    "OrdersResource",
    "PaymentsResource",
]
