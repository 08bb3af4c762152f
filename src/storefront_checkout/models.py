"""Checkout data models."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .currency import DEFAULT_CURRENCY, format_amount, to_decimal
from .errors import (
    CheckoutError,
    InvalidTotalError,
    ValidationError,
)

ZERO = Decimal("0")


def wire_id(value: Any) -> Any:
    """Numeric ids travel as integers, everything else as-is."""
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value


class PaymentMethodTag(str, Enum):
    """Payment branch. The only thing that drives branching."""
    DEFERRED = "deferred"
    GATEWAY = "gateway"


class PaymentMethodKind(str, Enum):
    """Gateway method kinds. Resolved by the backend, not by this package."""
    UPI = "upi"
    CARD = "card"
    NETBANKING = "netbanking"
    WALLET = "wallet"


class SubmissionState(str, Enum):
    """Order submission states."""
    IDLE = "idle"
    VALIDATING = "validating"
    COD_SUBMITTING = "cod_submitting"
    CREATING_GATEWAY_INTENT = "creating_gateway_intent"
    AWAITING_USER_PAYMENT = "awaiting_user_payment"
    VERIFYING_PAYMENT = "verifying_payment"
    CONFIRMED = "confirmed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SubmissionState.CONFIRMED, SubmissionState.FAILED)


class FailureKind(str, Enum):
    """Why a submission ended in FAILED."""
    VALIDATION = "validation"
    SUBMISSION = "submission"
    RECONCILIATION = "reconciliation"
    INTENT = "intent"
    USER_CANCELLED = "user_cancelled"
    GATEWAY = "gateway"
    PAYMENT_CAPTURED_BUT_UNVERIFIED = "payment_captured_but_unverified"


@dataclass(frozen=True)
class PaymentMethodChoice:
    """Deferred payment, or gateway payment of a given kind."""
    tag: PaymentMethodTag
    kind: Optional[PaymentMethodKind] = None

    def __post_init__(self) -> None:
        if self.tag == PaymentMethodTag.GATEWAY and self.kind is None:
            raise ValidationError("Gateway payment requires a method kind", field="payment_method")
        if self.tag == PaymentMethodTag.DEFERRED and self.kind is not None:
            raise ValidationError("Deferred payment takes no method kind", field="payment_method")

    @classmethod
    def deferred(cls) -> "PaymentMethodChoice":
        return cls(PaymentMethodTag.DEFERRED)

    @classmethod
    def gateway(cls, kind: Union[PaymentMethodKind, str]) -> "PaymentMethodChoice":
        if not isinstance(kind, PaymentMethodKind):
            kind = PaymentMethodKind(kind.lower())
        return cls(PaymentMethodTag.GATEWAY, kind)

    @classmethod
    def from_method_type(cls, method_type: str) -> "PaymentMethodChoice":
        """Parse the backend's payment method type (``COD``, ``UPI``, ``CARD``...)."""
        normalized = (method_type or "").strip().lower()
        if normalized in ("cod", "deferred", "cash_on_delivery"):
            return cls.deferred()
        try:
            return cls.gateway(normalized)
        except ValueError:
            raise ValidationError(
                f"Unsupported payment method: {method_type}", field="payment_method"
            )

    @property
    def is_gateway(self) -> bool:
        return self.tag == PaymentMethodTag.GATEWAY


@dataclass(frozen=True)
class PaymentMethodOption:
    """A payment method as offered to the customer."""
    id: str
    type: str
    name: str
    details: Optional[str] = None

    @property
    def choice(self) -> PaymentMethodChoice:
        return PaymentMethodChoice.from_method_type(self.type)


DEFAULT_PAYMENT_METHODS: Tuple[PaymentMethodOption, ...] = (
    PaymentMethodOption("cod", "COD", "Cash on Delivery", "Pay when you receive your order"),
    PaymentMethodOption("upi", "UPI", "UPI Payment", "Pay using PhonePe, GPay, Paytm, etc."),
    PaymentMethodOption("card", "CARD", "Credit/Debit Card", "Visa, Mastercard, RuPay, Amex"),
    PaymentMethodOption("netbanking", "NETBANKING", "Net Banking", "All major banks supported"),
    PaymentMethodOption("wallet", "WALLET", "Digital Wallets", "Paytm, Mobikwik, FreeCharge, etc."),
)


@dataclass(frozen=True)
class CartLine:
    """Snapshot of one cart line taken at submission time.

    Product id, name and price are optional here so that a half-loaded line
    can still be represented; the payload builder rejects it.
    """
    product_id: Optional[str]
    name: Optional[str]
    unit_price: Optional[Decimal]
    quantity: int = 1
    line_id: Optional[str] = None  # server cart id, when the line came from the server cart
    image_ref: str = ""
    variant_color: str = "Default"
    slug: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return (self.unit_price or ZERO) * self.quantity

    @property
    def resolved_slug(self) -> str:
        return self.slug or f"product-{self.product_id}"

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "CartLine":
        """Normalize a client-side cart item.

        Product fields may be nested under ``product``; the image may be a
        list under ``images``/``image`` or a plain string.
        """
        product = raw.get("product") or raw
        images = product.get("images")
        image = product.get("image")
        if isinstance(images, list) and images:
            image_ref = str(images[0])
        elif isinstance(image, list) and image:
            image_ref = str(image[0])
        elif isinstance(image, str):
            image_ref = image
        else:
            image_ref = ""

        product_id = product.get("id") or raw.get("productId") or raw.get("product_id") or raw.get("id")
        name = product.get("name") or raw.get("name")
        price_raw = product.get("price") or raw.get("price")
        try:
            unit_price: Optional[Decimal] = to_decimal(price_raw) if price_raw is not None else None
        except ValidationError:
            unit_price = None

        line_id = raw.get("cart_id")
        return cls(
            product_id=str(product_id) if product_id not in (None, "") else None,
            name=str(name) if name else None,
            unit_price=unit_price,
            quantity=int(raw.get("quantity") or 1),
            line_id=str(line_id) if line_id is not None else None,
            image_ref=image_ref,
            variant_color=raw.get("selectedColor") or raw.get("color") or product.get("color") or "Default",
            slug=product.get("slug") or raw.get("slug"),
        )

    @classmethod
    def buy_now(
        cls,
        product: Mapping[str, Any],
        quantity: int = 1,
        color: Optional[str] = None,
    ) -> "CartLine":
        """Build the single line of a "buy now" submission."""
        raw: Dict[str, Any] = {"product": product, "quantity": quantity}
        if color:
            raw["selectedColor"] = color
        return cls.from_mapping(raw)

    def to_wire(self) -> Dict[str, Any]:
        return {
            "cart_id": wire_id(self.line_id),
            "id": wire_id(self.product_id),
            "name": self.name,
            "price": str(self.unit_price),
            "quantity": self.quantity,
            "image": self.image_ref,
            "color": self.variant_color,
            "slug": self.resolved_slug,
        }


@dataclass(frozen=True)
class Address:
    """Delivery address chosen by the customer."""
    id: Optional[str]
    name: str
    phone: str
    line1: str
    city: str
    state: str
    postal_code: str
    line2: Optional[str] = None
    email: Optional[str] = None

    @property
    def one_line(self) -> str:
        return f"{self.line1}, {self.city}"


@dataclass(frozen=True)
class CustomerContact:
    """Prefill contact fields for the gateway checkout."""
    name: str
    phone: str
    email: Optional[str] = None

    @classmethod
    def from_address(cls, address: Address, email: Optional[str] = None) -> "CustomerContact":
        return cls(name=address.name, phone=address.phone, email=email or address.email)

    def to_wire(self) -> Dict[str, Any]:
        return {"name": self.name, "email": self.email, "phone": self.phone}


@dataclass(frozen=True)
class OrderTotals:
    """Order totals, computed once and frozen before submission.

    ``grand_total == subtotal - discount + shipping_cost + tax``; every
    component is non-negative.
    """
    subtotal: Decimal
    discount: Decimal
    shipping_cost: Decimal
    tax: Decimal
    grand_total: Decimal
    item_count: int

    def __post_init__(self) -> None:
        for name in ("subtotal", "discount", "shipping_cost", "tax", "grand_total"):
            if getattr(self, name) < ZERO:
                raise InvalidTotalError(f"Order {name} must not be negative")
        if self.item_count < 0:
            raise InvalidTotalError("Order item count must not be negative")
        expected = self.subtotal - self.discount + self.shipping_cost + self.tax
        if expected != self.grand_total:
            raise InvalidTotalError(
                f"Grand total {self.grand_total} does not match components ({expected})"
            )

    @classmethod
    def compute(
        cls,
        subtotal: Any,
        discount: Any = ZERO,
        shipping_cost: Any = ZERO,
        tax: Any = ZERO,
        item_count: int = 0,
    ) -> "OrderTotals":
        subtotal = to_decimal(subtotal, field="subtotal")
        discount = to_decimal(discount, field="discount")
        shipping_cost = to_decimal(shipping_cost, field="shipping_cost")
        tax = to_decimal(tax, field="tax")
        return cls(
            subtotal=subtotal,
            discount=discount,
            shipping_cost=shipping_cost,
            tax=tax,
            grand_total=subtotal - discount + shipping_cost + tax,
            item_count=item_count,
        )

    @classmethod
    def for_lines(
        cls,
        lines: List[CartLine],
        discount: Any = ZERO,
        shipping_cost: Any = ZERO,
        tax: Any = ZERO,
    ) -> "OrderTotals":
        """Totals computed from line prices, e.g. for a buy-now item."""
        return cls.compute(
            subtotal=sum((line.line_total for line in lines), ZERO),
            discount=discount,
            shipping_cost=shipping_cost,
            tax=tax,
            item_count=sum(line.quantity for line in lines),
        )

    @classmethod
    def from_summary(cls, summary: Mapping[str, Any]) -> "OrderTotals":
        """Totals from the server cart summary.

        The grand total is recomputed from the components; a server total
        that disagrees is rejected rather than silently trusted.
        """
        totals = cls.compute(
            subtotal=summary.get("subtotal") or 0,
            discount=summary.get("discount") or 0,
            shipping_cost=summary.get("shipping") or 0,
            tax=summary.get("tax") or 0,
            item_count=int(summary.get("total_items") or 0),
        )
        reported = summary.get("total")
        if reported is not None and to_decimal(reported) != totals.grand_total:
            raise InvalidTotalError(
                f"Server total {reported} does not match components ({totals.grand_total})"
            )
        return totals

    def to_wire(self) -> Dict[str, Any]:
        return {
            "subtotal": str(self.subtotal),
            "discount": str(self.discount),
            "shipping": str(self.shipping_cost),
            "shippingcost": str(self.shipping_cost),
            "tax": str(self.tax),
            "total": str(self.grand_total),
            "totalquantity": self.item_count,
        }


@dataclass(frozen=True)
class OrderSubmissionPayload:
    """The only body sent to either checkout endpoint. Immutable once built."""
    lines: Tuple[CartLine, ...]
    address_id: str
    totals: OrderTotals
    payment_method: PaymentMethodChoice
    coupon_code: Optional[str] = None
    notes: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "items": [line.to_wire() for line in self.lines],
            "address_id": wire_id(self.address_id),
            "payment_method": self.payment_method.tag.value,
            "coupon_code": self.coupon_code,
            **self.totals.to_wire(),
        }
        if self.payment_method.kind is not None:
            body["payment_method_kind"] = self.payment_method.kind.value
        if self.notes:
            body["notes"] = self.notes
        return body


@dataclass(frozen=True)
class GatewayIntent:
    """Server-minted, amount-bound authorization for the gateway checkout."""
    gateway_order_id: str
    amount_minor_units: int
    currency: str
    public_key: str
    receipt: Optional[str] = None


@dataclass(frozen=True)
class GatewaySuccess:
    """Payment proof returned by the gateway."""
    payment_id: str
    gateway_order_id: str
    signature: str

    def to_wire(self) -> Dict[str, str]:
        return {
            "razorpay_payment_id": self.payment_id,
            "razorpay_order_id": self.gateway_order_id,
            "razorpay_signature": self.signature,
        }


@dataclass(frozen=True)
class GatewayCancelled:
    """The customer dismissed the gateway checkout."""
    reason: Optional[str] = None


GATEWAY_ERROR_MESSAGES: Dict[str, str] = {
    "BAD_REQUEST_ERROR": "Invalid payment request. Please check your details.",
    "GATEWAY_ERROR": "Payment gateway error. Please try again later.",
    "NETWORK_ERROR": "Network error. Please check your connection.",
    "SERVER_ERROR": "Server error. Please try again later.",
}


@dataclass(frozen=True)
class GatewayFailure:
    """Coded failure reported by the gateway."""
    code: str
    reason: str
    description: Optional[str] = None
    source: Optional[str] = None
    step: Optional[str] = None

    @property
    def user_message(self) -> str:
        return GATEWAY_ERROR_MESSAGES.get(
            self.code,
            self.description or "Payment failed. Please try again.",
        )


GatewayResult = Union[GatewaySuccess, GatewayCancelled, GatewayFailure]


@dataclass(frozen=True)
class OrderRecord:
    """Server-authoritative order. Created by the backend only."""
    order_id: str
    status: str
    payment_status: str
    grand_total: Decimal
    order_number: Optional[str] = None

    def display_total(self, currency: str = DEFAULT_CURRENCY) -> str:
        return format_amount(self.grand_total, currency)


@dataclass
class ReconciliationResult:
    """What the cart reconciler did, line by line."""
    already_present: List[CartLine] = field(default_factory=list)
    added: List[CartLine] = field(default_factory=list)
    failed: List[Tuple[CartLine, Exception]] = field(default_factory=list)
    server_cart_error: Optional[Exception] = None

    @property
    def complete(self) -> bool:
        return not self.failed and self.server_cart_error is None

    @property
    def failed_product_ids(self) -> List[str]:
        return [str(line.product_id) for line, _ in self.failed]


@dataclass
class SubmissionOutcome:
    """Terminal result of one submission attempt."""
    state: SubmissionState
    order: Optional[OrderRecord] = None
    failure_kind: Optional[FailureKind] = None
    error: Optional[CheckoutError] = None
    payload: Optional[OrderSubmissionPayload] = None
    intent: Optional[GatewayIntent] = None
    payment: Optional[GatewaySuccess] = None
    reconciliation: Optional[ReconciliationResult] = None
    cart_cleared: bool = False
    history: List[SubmissionState] = field(default_factory=list)
    submission_id: Optional[str] = None

    @property
    def confirmed(self) -> bool:
        return self.state == SubmissionState.CONFIRMED

    @property
    def is_retryable(self) -> bool:
        """Whether a fresh attempt (new payload, new intent) is safe."""
        return self.error is not None and self.error.retryable

    @property
    def requires_support(self) -> bool:
        """Money was captured but the order is unconfirmed."""
        return self.failure_kind == FailureKind.PAYMENT_CAPTURED_BUT_UNVERIFIED
