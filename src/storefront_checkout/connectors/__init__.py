"""Payment gateway adapters."""
from .base import (
    CallbackGatewayCheckout,
    GatewayCheckout,
    GatewayCheckoutError,
    PaymentGatewayAdapter,
)
from .razorpay import RazorpayGatewayAdapter

__all__ = [
    "CallbackGatewayCheckout",
    "GatewayCheckout",
    "GatewayCheckoutError",
    "PaymentGatewayAdapter",
    "RazorpayGatewayAdapter",
]
