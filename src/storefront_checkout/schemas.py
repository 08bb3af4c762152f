"""Wire schemas for storefront backend responses.

The backend is not consistent about field names (``order_id`` vs ``id``,
``razorpayOrderId`` vs ``razorpay_order_id``); the aliases below absorb that
so the rest of the package only sees one shape.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from .models import OrderRecord, PaymentMethodOption


class StorefrontModel(BaseModel):
    """Base model with common configuration."""

    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=True,
        extra="ignore",
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert model to dictionary."""
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StorefrontModel":
        """Create model from dictionary."""
        return cls.model_validate(data)


def _as_str(v: Any) -> Any:
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


# ==================== Cart ====================


class ServerCartItem(StorefrontModel):
    """A line of the server-side cart. ``id`` is the product id."""

    product_id: str = Field(validation_alias=AliasChoices("product_id", "id"))
    cart_id: Optional[str] = None
    name: Optional[str] = None
    price: Optional[Decimal] = None
    quantity: int = 1
    image: Union[List[str], str, None] = None

    @field_validator("product_id", "cart_id", mode="before")
    @classmethod
    def coerce_ids(cls, v: Any) -> Any:
        return _as_str(v)


class ServerCart(StorefrontModel):
    """The authoritative server-side cart."""

    items: List[ServerCartItem] = Field(default_factory=list)
    subtotal: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    shipping: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    total: Decimal = Decimal("0")

    def product_ids(self) -> set[str]:
        return {item.product_id for item in self.items}

    @property
    def is_empty(self) -> bool:
        return not self.items


class CartSummary(StorefrontModel):
    total_items: int = 0
    subtotal: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    shipping: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    total: Decimal = Decimal("0")


# ==================== Payments ====================


class GatewayOrderResponse(StorefrontModel):
    """Backend response to a gateway-intent request."""

    gateway_order_id: str = Field(
        validation_alias=AliasChoices("razorpayOrderId", "razorpay_order_id", "gateway_order_id", "order_id", "id"),
    )
    amount: int
    currency: Optional[str] = None
    key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("key", "razorpay_key", "key_id", "public_key"),
    )
    receipt: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def lift_receipt(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("receipt"):
            details = data.get("rzdetails") or {}
            if isinstance(details, dict) and details.get("receipt"):
                data = {**data, "receipt": details["receipt"]}
        return data


class PaymentMethodPayload(StorefrontModel):
    id: str
    type: str
    name: str
    details: Optional[str] = None

    def to_option(self) -> PaymentMethodOption:
        return PaymentMethodOption(id=self.id, type=self.type, name=self.name, details=self.details)


# ==================== Orders ====================


class OrderDetail(StorefrontModel):
    order_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("order_id", "orderId", "id"))
    order_number: Optional[str] = None
    status: Optional[str] = None
    payment_status: Optional[str] = None
    total: Optional[Decimal] = Field(
        default=None,
        validation_alias=AliasChoices("total_amount", "grand_total", "total"),
    )

    @field_validator("order_id", "order_number", mode="before")
    @classmethod
    def coerce_ids(cls, v: Any) -> Any:
        return _as_str(v)


class OrderEnvelope(OrderDetail):
    """Response of the order-creating endpoints.

    Order fields may sit at the top level, under ``order``, or both.
    """

    success: Optional[bool] = None
    message: Optional[str] = None
    order: Optional[OrderDetail] = None

    def to_record(
        self,
        fallback_total: Decimal,
        default_status: str = "pending",
        default_payment_status: str = "unpaid",
    ) -> Optional[OrderRecord]:
        """Build the order record, or None when the backend gave no order id."""
        nested = self.order or OrderDetail()
        order_id = self.order_id or nested.order_id
        if not order_id:
            return None
        total = nested.total if nested.total is not None else self.total
        return OrderRecord(
            order_id=order_id,
            status=nested.status or self.status or default_status,
            payment_status=nested.payment_status or self.payment_status or default_payment_status,
            grand_total=total if total is not None else fallback_total,
            order_number=self.order_number or nested.order_number or order_id,
        )
