"""
Money helpers.

Gateways take amounts in minor currency units (paise, cents). The conversion
from the order's grand total happens in exactly one place, ``to_minor_units``,
which is used both when requesting a gateway intent and when checking the
intent the backend returns.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Optional

from .errors import ValidationError


@dataclass(frozen=True)
class CurrencyInfo:
    """Display and rounding rules for a currency."""
    code: str  # ISO 4217 code
    symbol: str
    decimal_places: int = 2


SUPPORTED_CURRENCIES: Dict[str, CurrencyInfo] = {
    "INR": CurrencyInfo("INR", "₹"),
    "USD": CurrencyInfo("USD", "$"),
    "EUR": CurrencyInfo("EUR", "€"),
    "GBP": CurrencyInfo("GBP", "£"),
    "JPY": CurrencyInfo("JPY", "¥", decimal_places=0),
}

DEFAULT_CURRENCY = "INR"


def get_currency_info(currency_code: str) -> CurrencyInfo:
    info = SUPPORTED_CURRENCIES.get((currency_code or "").upper())
    if info is None:
        raise ValidationError(f"Currency {currency_code} not supported", field="currency")
    return info


def to_decimal(value: Any, field: Optional[str] = None) -> Decimal:
    """Parse a price-like value (str, int, float, Decimal) into a Decimal."""
    if isinstance(value, Decimal):
        return value
    if value is None or isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}", field=field)
    try:
        # float goes through str() so 0.1 stays 0.1
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}", field=field)
    if not result.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}", field=field)
    return result


def round_amount(amount: Decimal, currency_code: str = DEFAULT_CURRENCY) -> Decimal:
    places = get_currency_info(currency_code).decimal_places
    quantize_str = "0." + "0" * places if places > 0 else "1"
    return amount.quantize(Decimal(quantize_str), rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal, currency_code: str = DEFAULT_CURRENCY) -> int:
    """Convert a major-unit amount to integer minor units (e.g. rupees -> paise)."""
    places = get_currency_info(currency_code).decimal_places
    scaled = to_decimal(amount) * (Decimal(10) ** places)
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(minor: int, currency_code: str = DEFAULT_CURRENCY) -> Decimal:
    places = get_currency_info(currency_code).decimal_places
    return Decimal(int(minor)) / (Decimal(10) ** places)


def format_amount(amount: Decimal, currency_code: str = DEFAULT_CURRENCY) -> str:
    """Format an amount with the currency symbol, e.g. ``₹1,000.00``."""
    currency = SUPPORTED_CURRENCIES.get((currency_code or "").upper())
    if not currency:
        return f"{amount} {currency_code}"

    rounded = round_amount(to_decimal(amount), currency.code)
    if currency.decimal_places == 0:
        formatted = f"{int(rounded):,}"
    else:
        formatted = f"{rounded:,.{currency.decimal_places}f}"
    return f"{currency.symbol}{formatted}"
