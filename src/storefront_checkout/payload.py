"""Order submission payload builder."""
from __future__ import annotations

from typing import Iterable, List, Optional

from .errors import (
    EmptyCartError,
    IncompleteLineData,
    InvalidTotalError,
    MissingAddressError,
    MissingPaymentMethodError,
)
from .models import (
    ZERO,
    Address,
    CartLine,
    OrderSubmissionPayload,
    OrderTotals,
    PaymentMethodChoice,
)


class OrderPayloadBuilder:
    """
    Builds the canonical order submission payload.

    Validation happens here, before anything touches the network:
    1. At least one line
    2. An address with an id
    3. A payment method
    4. A positive grand total
    5. Every line has a product id, a name and a positive unit price

    The builder holds no state; identical inputs give equal payloads.
    """

    def build(
        self,
        lines: Iterable[CartLine],
        address: Optional[Address],
        totals: OrderTotals,
        payment_method: Optional[PaymentMethodChoice],
        notes: Optional[str] = None,
        coupon_code: Optional[str] = None,
    ) -> OrderSubmissionPayload:
        """
        Validate the inputs and freeze them into a payload.

        Args:
            lines: Cart lines selected for this order
            address: Delivery address
            totals: Totals computed once for these lines
            payment_method: Deferred or gateway payment
            notes: Optional delivery notes
            coupon_code: Optional applied coupon

        Returns:
            OrderSubmissionPayload

        Raises:
            ValidationError: If any rule above fails
        """
        snapshot = tuple(lines or ())
        if not snapshot:
            raise EmptyCartError()

        if address is None or not str(address.id or "").strip():
            raise MissingAddressError()

        if payment_method is None:
            raise MissingPaymentMethodError()

        if totals is None or totals.grand_total <= ZERO:
            raise InvalidTotalError("Order total must be greater than zero")

        for line in snapshot:
            missing = self._missing_fields(line)
            if missing:
                raise IncompleteLineData(line.line_id or line.product_id, missing)

        return OrderSubmissionPayload(
            lines=snapshot,
            address_id=str(address.id).strip(),
            totals=totals,
            payment_method=payment_method,
            coupon_code=(coupon_code or "").strip().upper() or None,
            notes=(notes or "").strip() or None,
        )

    @staticmethod
    def _missing_fields(line: CartLine) -> List[str]:
        missing = []
        if not line.product_id:
            missing.append("product_id")
        if not line.name:
            missing.append("name")
        if line.unit_price is None or line.unit_price <= ZERO:
            missing.append("unit_price")
        if line.quantity < 1:
            missing.append("quantity")
        return missing


_default_builder = OrderPayloadBuilder()


def build_payload(
    lines: Iterable[CartLine],
    address: Optional[Address],
    totals: OrderTotals,
    payment_method: Optional[PaymentMethodChoice],
    notes: Optional[str] = None,
    coupon_code: Optional[str] = None,
) -> OrderSubmissionPayload:
    """Module-level shortcut for ``OrderPayloadBuilder().build``."""
    return _default_builder.build(
        lines,
        address,
        totals,
        payment_method,
        notes=notes,
        coupon_code=coupon_code,
    )
