"""
Pytest configuration and fixtures for storefront checkout tests.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from storefront_checkout.client import RetryConfig, SessionCredentials, StorefrontClient
from storefront_checkout.config import CheckoutSettings
from storefront_checkout.connectors.base import PaymentGatewayAdapter
from storefront_checkout.models import (
    Address,
    CartLine,
    CustomerContact,
    GatewayIntent,
    GatewaySuccess,
    OrderRecord,
    OrderTotals,
)
from storefront_checkout.schemas import OrderEnvelope, ServerCart

BASE_URL = "https://api.storefront.test/api"


def make_line(
    product_id: Optional[str] = "101",
    name: Optional[str] = "Kanchipuram Silk Saree",
    price: Optional[str] = "500.00",
    quantity: int = 2,
    line_id: Optional[str] = "9001",
) -> CartLine:
    return CartLine(
        product_id=product_id,
        name=name,
        unit_price=Decimal(price) if price is not None else None,
        quantity=quantity,
        line_id=line_id,
        image_ref="https://cdn.storefront.test/101.jpg",
        variant_color="Maroon",
    )


@pytest.fixture
def base_url() -> str:
    """Test base URL."""
    return BASE_URL


@pytest.fixture
def settings(base_url: str) -> CheckoutSettings:
    """Settings isolated from the environment and .env files."""
    return CheckoutSettings(
        _env_file=None,
        api_base_url=base_url,
        max_retries=0,
        retry_backoff_seconds=0,
        currency="INR",
        gateway_key_id=None,
        merchant_name="Test Store",
    )


@pytest.fixture
def credentials() -> SessionCredentials:
    return SessionCredentials(auth_token="test-token", guest_session_token="guest-123")


@pytest.fixture
async def client(settings: CheckoutSettings, credentials: SessionCredentials) -> StorefrontClient:
    """Create a test client."""
    # Keep non-retry tests deterministic; retry behavior is tested explicitly.
    client = StorefrontClient(
        credentials=credentials,
        retry=RetryConfig(max_retries=0, backoff_seconds=0),
        settings=settings,
    )
    yield client
    await client.close()


@pytest.fixture
def line() -> CartLine:
    return make_line()


@pytest.fixture
def address() -> Address:
    return Address(
        id="42",
        name="Asha Rao",
        phone="9876543210",
        line1="12 MG Road",
        city="Bengaluru",
        state="Karnataka",
        postal_code="560001",
        email="asha@example.com",
    )


@pytest.fixture
def customer(address: Address) -> CustomerContact:
    return CustomerContact.from_address(address)


@pytest.fixture
def totals() -> OrderTotals:
    """One line, quantity 2 at 500: grand total 1000."""
    return OrderTotals.compute(subtotal="1000.00", item_count=2)


@pytest.fixture
def intent() -> GatewayIntent:
    return GatewayIntent(
        gateway_order_id="order_Nx1",
        amount_minor_units=100000,
        currency="INR",
        public_key="rzp_test_key",
        receipt="rcpt_1",
    )


@pytest.fixture
def payment() -> GatewaySuccess:
    return GatewaySuccess(
        payment_id="pay_Nx1",
        gateway_order_id="order_Nx1",
        signature="sig_abc",
    )


@pytest.fixture
def fake_client(settings: CheckoutSettings, intent: GatewayIntent) -> MagicMock:
    """Client handle whose resources are AsyncMocks with happy-path defaults."""
    fake = MagicMock()
    fake.settings = settings

    fake.cart.get = AsyncMock(return_value=ServerCart(items=[]))
    fake.cart.add_line = AsyncMock(return_value={"success": True})
    fake.cart.clear = AsyncMock(return_value={"success": True})

    fake.orders.create_deferred = AsyncMock(
        return_value=OrderEnvelope.model_validate(
            {"success": True, "order_id": 555, "total_amount": "1000.00", "status": "pending"}
        )
    )
    fake.orders.get = AsyncMock(
        return_value=OrderRecord(
            order_id="555",
            status="confirmed",
            payment_status="paid",
            grand_total=Decimal("1000.00"),
        )
    )

    fake.payments.create_intent = AsyncMock(return_value=intent)
    fake.payments.verify = AsyncMock(
        return_value=OrderEnvelope.model_validate(
            {"success": True, "order": {"id": 777, "status": "confirmed", "payment_status": "paid"}}
        )
    )
    return fake


@pytest.fixture
def fake_gateway(payment: GatewaySuccess) -> AsyncMock:
    gateway = AsyncMock(spec=PaymentGatewayAdapter)
    gateway.invoke.return_value = payment
    return gateway
