"""Checkout configuration."""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CheckoutSettings(BaseSettings):
    """Client-side checkout configuration.

    Only publishable values belong here. The gateway key is the public key
    id; the backend-provided key on each intent takes precedence over it.
    """

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_",
        env_file=".env",
        extra="ignore",
    )

    # Backend API
    api_base_url: str = "http://localhost:8000/api"
    timeout_seconds: float = 30.0
    max_retries: int = 3
    retry_backoff_seconds: float = 1.0

    # Backend routes, relative to api_base_url
    cart_path: str = "/user"
    cart_summary_path: str = "/cart/summary"
    cart_add_path: str = "/cart/add"
    cart_clear_path: str = "/cart/clear"
    order_checkout_path: str = "/order/checkout"
    order_details_path: str = "/orderdetails/{order_id}"
    gateway_order_path: str = "/createrazorpayorder"
    payment_verify_path: str = "/paychecksave"
    payment_methods_path: str = "/payment/methods"

    # Money
    currency: str = "INR"

    # Gateway checkout
    gateway_key_id: Optional[str] = None
    merchant_name: str = "Storefront"
    theme_color: str = "#f43f5e"
    logo_url: Optional[str] = None

    # Flow
    abort_on_incomplete_reconciliation: bool = False

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("gateway_key_id", mode="before")
    @classmethod
    def blank_key_is_none(cls, v: Optional[str]) -> Optional[str]:
        if isinstance(v, str):
            v = v.strip().strip("'").strip('"')
        return v or None


@lru_cache
def get_settings() -> CheckoutSettings:
    return CheckoutSettings()
