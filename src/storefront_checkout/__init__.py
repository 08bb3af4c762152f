"""
Storefront checkout

Turns a cart, a delivery address and a payment method into a confirmed
order, by deferred payment (cash on delivery) or through a payment gateway.
"""

from .client import RetryConfig, SessionCredentials, StorefrontClient
from .config import CheckoutSettings, get_settings
from .connectors import (
    CallbackGatewayCheckout,
    GatewayCheckout,
    GatewayCheckoutError,
    PaymentGatewayAdapter,
    RazorpayGatewayAdapter,
)
from .currency import format_amount, from_minor_units, to_minor_units
from .errors import (
    APIError,
    AuthenticationError,
    CheckoutError,
    EmptyCartError,
    GatewayError,
    IllegalTransition,
    IncompleteLineData,
    IntentError,
    InvalidTotalError,
    MissingAddressError,
    MissingPaymentMethodError,
    NotFoundError,
    PaymentCapturedButUnverified,
    RateLimitError,
    ReconciliationError,
    ResponseParseError,
    SubmissionError,
    SubmissionInProgress,
    TransportError,
    UserCancelled,
    ValidationError,
    VerificationError,
)
from .events import (
    InMemorySubmissionListener,
    LoggingSubmissionListener,
    SubmissionEvent,
    SubmissionListener,
)
from .models import (
    Address,
    CartLine,
    CustomerContact,
    FailureKind,
    GatewayCancelled,
    GatewayFailure,
    GatewayIntent,
    GatewayResult,
    GatewaySuccess,
    OrderRecord,
    OrderSubmissionPayload,
    OrderTotals,
    PaymentMethodChoice,
    PaymentMethodKind,
    PaymentMethodOption,
    PaymentMethodTag,
    ReconciliationResult,
    SubmissionOutcome,
    SubmissionState,
)
from .orchestrator import OrderSubmissionService
from .payload import OrderPayloadBuilder, build_payload
from .reconciler import CartReconciler
from .verifier import PaymentVerifier

__version__ = "0.1.0"

__all__ = [
    # Client
    "StorefrontClient",
    "SessionCredentials",
    "RetryConfig",
    "CheckoutSettings",
    "get_settings",
    # Flow
    "OrderSubmissionService",
    "OrderPayloadBuilder",
    "build_payload",
    "CartReconciler",
    "PaymentVerifier",
    # Gateway
    "PaymentGatewayAdapter",
    "RazorpayGatewayAdapter",
    "GatewayCheckout",
    "CallbackGatewayCheckout",
    "GatewayCheckoutError",
    # Events
    "SubmissionEvent",
    "SubmissionListener",
    "LoggingSubmissionListener",
    "InMemorySubmissionListener",
    # Money
    "to_minor_units",
    "from_minor_units",
    "format_amount",
    # Models
    "Address",
    "CartLine",
    "CustomerContact",
    "FailureKind",
    "GatewayCancelled",
    "GatewayFailure",
    "GatewayIntent",
    "GatewayResult",
    "GatewaySuccess",
    "OrderRecord",
    "OrderSubmissionPayload",
    "OrderTotals",
    "PaymentMethodChoice",
    "PaymentMethodKind",
    "PaymentMethodOption",
    "PaymentMethodTag",
    "ReconciliationResult",
    "SubmissionOutcome",
    "SubmissionState",
    # Errors
    "CheckoutError",
    "ValidationError",
    "EmptyCartError",
    "MissingAddressError",
    "MissingPaymentMethodError",
    "InvalidTotalError",
    "IncompleteLineData",
    "APIError",
    "AuthenticationError",
    "NotFoundError",
    "RateLimitError",
    "TransportError",
    "ResponseParseError",
    "SubmissionError",
    "ReconciliationError",
    "IntentError",
    "GatewayError",
    "UserCancelled",
    "VerificationError",
    "PaymentCapturedButUnverified",
    "SubmissionInProgress",
    "IllegalTransition",
]
