"""Error types for the checkout flow.

Errors raised by the backend client, the payload builder and the submission
flow all derive from ``CheckoutError`` so callers can catch one base class.
The orchestrator itself does not raise these for expected failures; it wraps
them in a ``SubmissionOutcome`` (see ``storefront_checkout.models``).
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .models import GatewaySuccess


class CheckoutError(Exception):
    """Base exception for the checkout package."""

    retryable = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "CHECKOUT_ERROR"
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


# ==================== Validation ====================


class ValidationError(CheckoutError):
    """Local, pre-network validation failure. Fixed by correcting input."""

    retryable = True

    def __init__(self, message: str, field: Optional[str] = None, code: str = "VALIDATION_ERROR"):
        super().__init__(message, code=code, details={"field": field})
        self.field = field


class EmptyCartError(ValidationError):
    def __init__(self, message: str = "No items found in cart"):
        super().__init__(message, field="lines", code="EMPTY_CART")


class MissingAddressError(ValidationError):
    def __init__(self, message: str = "Please select a delivery address"):
        super().__init__(message, field="address", code="MISSING_ADDRESS")


class MissingPaymentMethodError(ValidationError):
    def __init__(self, message: str = "Please select a payment method"):
        super().__init__(message, field="payment_method", code="MISSING_PAYMENT_METHOD")


class InvalidTotalError(ValidationError):
    def __init__(self, message: str = "Invalid order total"):
        super().__init__(message, field="totals", code="INVALID_TOTAL")


class IncompleteLineData(ValidationError):
    """A cart line is missing its product id, name or a positive unit price."""

    def __init__(self, line_id: Optional[str], missing: Optional[list[str]] = None):
        missing = missing or []
        super().__init__(
            f"Missing required product data for line {line_id or 'unknown'}: "
            f"{', '.join(missing) or 'unknown fields'}",
            field="lines",
            code="INCOMPLETE_LINE_DATA",
        )
        self.line_id = line_id
        self.missing = missing
        self.details["line_id"] = line_id
        self.details["missing"] = missing


# ==================== Backend API ====================


class APIError(CheckoutError):
    """Non-2xx response from the storefront backend."""

    def __init__(
        self,
        message: str,
        status_code: int,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code or "API_ERROR", details)
        self.status_code = status_code

    @classmethod
    def from_response(cls, status_code: int, body: Any) -> "APIError":
        """Create APIError from a decoded error body."""
        if not isinstance(body, dict):
            return cls(message=str(body) or f"HTTP {status_code}", status_code=status_code)
        error_data = body.get("error", body.get("message", body.get("detail", {})))
        if isinstance(error_data, str):
            return cls(
                message=error_data,
                status_code=status_code,
                code=body.get("code") or "API_ERROR",
            )
        if isinstance(error_data, list):
            return cls(
                message="Validation Error",
                status_code=status_code,
                code="VALIDATION_ERROR",
                details={"errors": error_data},
            )
        return cls(
            message=error_data.get("message", f"HTTP {status_code}"),
            status_code=status_code,
            code=error_data.get("code", "API_ERROR"),
            details=error_data.get("details"),
        )


class AuthenticationError(APIError):
    def __init__(self, message: str = "Please login to place an order"):
        super().__init__(message, status_code=401, code="AUTHENTICATION_ERROR")


class NotFoundError(APIError):
    def __init__(self, resource: str, status_code: int = 404):
        super().__init__(f"Not found: {resource}", status_code=status_code, code="NOT_FOUND")
        self.resource = resource


class RateLimitError(APIError):
    def __init__(self, message: str = "Rate limit exceeded", retry_after: Optional[int] = None):
        super().__init__(message, status_code=429, code="RATE_LIMIT_EXCEEDED")
        self.retry_after = retry_after


class TransportError(CheckoutError):
    """Request never produced a response (timeout, connection failure)."""

    def __init__(self, message: str, timeout: bool = False):
        super().__init__(message, code="TIMEOUT" if timeout else "NETWORK_ERROR")
        self.timeout = timeout


class ResponseParseError(CheckoutError):
    """A 2xx response whose body does not have the expected shape."""

    def __init__(self, path: str, cause: Optional[BaseException] = None):
        super().__init__(f"Invalid response from {path}", code="INVALID_RESPONSE", details={"path": path})
        self.path = path
        self.__cause__ = cause


# ==================== Submission flow ====================


class SubmissionError(CheckoutError):
    """Deferred-payment order creation was rejected or unreachable.

    No money moved, so the submission is safe to retry.
    """

    retryable = True

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message, code="SUBMISSION_FAILED")
        self.__cause__ = cause


class ReconciliationError(CheckoutError):
    """Raised only when the caller asked to abort on partial reconciliation."""

    retryable = True

    def __init__(self, message: str, failed_product_ids: Optional[list[str]] = None):
        super().__init__(
            message,
            code="RECONCILIATION_INCOMPLETE",
            details={"failed_product_ids": failed_product_ids or []},
        )
        self.failed_product_ids = failed_product_ids or []


class IntentError(CheckoutError):
    """The backend could not mint a gateway intent. No money has moved."""

    retryable = True

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message, code="INTENT_FAILED")
        self.__cause__ = cause


class GatewayError(CheckoutError):
    """The payment gateway reported a failure. No money was captured."""

    retryable = True

    def __init__(self, code: str, reason: str, message: Optional[str] = None):
        super().__init__(message or reason or "Payment failed", code=code or "GATEWAY_ERROR")
        self.reason = reason


class UserCancelled(CheckoutError):
    """The customer dismissed the gateway checkout. Not retried automatically."""

    def __init__(self, reason: Optional[str] = None):
        super().__init__("Payment cancelled", code="USER_CANCELLED", details={"reason": reason})
        self.reason = reason


class VerificationError(CheckoutError):
    """The backend did not confirm a gateway payment."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, code="VERIFICATION_FAILED", details={"status_code": status_code})
        self.status_code = status_code
        self.__cause__ = cause


class PaymentCapturedButUnverified(CheckoutError):
    """Money left the customer but no order record is guaranteed to exist.

    Callers must offer "check order status" or "contact support", never a
    fresh payment.
    """

    requires_support = True

    def __init__(self, payment: "GatewaySuccess", cause: VerificationError):
        super().__init__(
            "Payment received but the order could not be confirmed",
            code="PAYMENT_CAPTURED_BUT_UNVERIFIED",
            details={
                "payment_id": payment.payment_id,
                "gateway_order_id": payment.gateway_order_id,
            },
        )
        self.payment = payment
        self.__cause__ = cause


class SubmissionInProgress(CheckoutError):
    def __init__(self) -> None:
        super().__init__("A submission is already in progress", code="SUBMISSION_IN_PROGRESS")


class IllegalTransition(CheckoutError):
    def __init__(self, current: str, target: str):
        super().__init__(
            f"Illegal submission state transition {current} -> {target}",
            code="ILLEGAL_TRANSITION",
        )
        self.current = current
        self.target = target
