"""
Storefront backend client.

Example usage:
    ```python
    from storefront_checkout import SessionCredentials, StorefrontClient

    credentials = SessionCredentials(auth_token="...")

    async with StorefrontClient(credentials=credentials) as client:
        cart = await client.cart.get()
        intent = await client.payments.create_intent(payload, customer)
    ```

The client never owns authentication state. The caller keeps a
``SessionCredentials`` object and may rotate its tokens at any time; each
request reads the current values.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Generator, Optional

import httpx

from .config import CheckoutSettings, get_settings
from .errors import (
    APIError,
    AuthenticationError,
    NotFoundError,
    RateLimitError,
    TransportError,
)
from .resources.cart import CartResource
from .resources.orders import OrdersResource
from .resources.payments import PaymentsResource

logger = logging.getLogger(__name__)

USER_AGENT = "storefront-checkout-python/0.1.0"


@dataclass
class SessionCredentials:
    """Auth and guest-session tokens, held by the caller."""
    auth_token: Optional[str] = None
    guest_session_token: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.auth_token)


class SessionAuth(httpx.Auth):
    """Applies the caller's current credentials to each outgoing request."""

    def __init__(self, credentials: SessionCredentials):
        self._credentials = credentials

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        if self._credentials.auth_token and "Authorization" not in request.headers:
            request.headers["Authorization"] = f"Bearer {self._credentials.auth_token}"
        if self._credentials.guest_session_token:
            request.headers["X-Session-Token"] = self._credentials.guest_session_token
        yield request


@dataclass
class RetryConfig:
    """Retry policy for idempotent requests."""
    max_retries: int = 3
    backoff_seconds: float = 1.0
    backoff_multiplier: float = 2.0
    retryable_status_codes: frozenset[int] = frozenset({429, 502, 503, 504})


class StorefrontClient:
    """
    Storefront backend API client.

    Provides access to the resources the checkout flow consumes:
    - cart: read, add lines, clear, summary
    - orders: deferred-payment order creation and order status
    - payments: gateway intents, payment verification, payment methods

    Only GET requests are retried. Order creation, intent creation and
    payment verification are sent exactly once per call, because a retry
    after a lost response could create a second order.

    Args:
        base_url: Backend API base URL
        credentials: Caller-held session credentials
        timeout: Request timeout in seconds
        retry: Retry policy for GET requests
        transport: Optional httpx transport (testing, proxies)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        credentials: Optional[SessionCredentials] = None,
        timeout: Optional[float] = None,
        retry: Optional[RetryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        settings: Optional[CheckoutSettings] = None,
    ):
        settings = settings or get_settings()
        self.settings = settings
        self._base_url = (base_url or settings.api_base_url).rstrip("/")
        self._credentials = credentials or SessionCredentials()
        self._timeout = timeout if timeout is not None else settings.timeout_seconds
        self._retry = retry or RetryConfig(
            max_retries=settings.max_retries,
            backoff_seconds=settings.retry_backoff_seconds,
        )
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        self.cart = CartResource(self)
        self.orders = OrdersResource(self)
        self.payments = PaymentsResource(self)

    @property
    def credentials(self) -> SessionCredentials:
        return self._credentials

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={
                    "Accept": "application/json",
                    "Content-Type": "application/json",
                    "User-Agent": USER_AGENT,
                },
                auth=SessionAuth(self._credentials),
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
        retry: Optional[bool] = None,
    ) -> Any:
        """Make an HTTP request, retrying GETs on transient failures."""
        client = await self._get_client()
        if retry is None:
            retry = method.upper() == "GET"
        attempts = self._retry.max_retries + 1 if retry else 1
        delay = self._retry.backoff_seconds

        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            logger.debug("%s %s%s (attempt %d/%d)", method, self._base_url, path, attempt + 1, attempts)
            try:
                response = await client.request(method=method, url=path, params=params, json=json)
            except httpx.TimeoutException as e:
                if not last_attempt:
                    await asyncio.sleep(delay)
                    delay *= self._retry.backoff_multiplier
                    continue
                raise TransportError(f"Request timed out: {method} {path}", timeout=True) from e
            except httpx.RequestError as e:
                if not last_attempt:
                    await asyncio.sleep(delay)
                    delay *= self._retry.backoff_multiplier
                    continue
                raise TransportError(f"Network error on {method} {path}: {e}") from e

            if response.status_code in self._retry.retryable_status_codes and not last_attempt:
                wait = delay
                retry_after = response.headers.get("Retry-After", "").strip()
                # HTTP-date values fall back to the backoff delay
                if response.status_code == 429 and retry_after.isdigit():
                    wait = float(retry_after)
                logger.warning(
                    "Retrying %s %s after HTTP %d (wait %.1fs)",
                    method, path, response.status_code, wait,
                )
                await asyncio.sleep(wait)
                delay *= self._retry.backoff_multiplier
                continue

            return self._handle_response(method, path, response)

        raise RuntimeError("Unexpected error in request retry loop")

    def _handle_response(self, method: str, path: str, response: httpx.Response) -> Any:
        if response.status_code == 401:
            raise AuthenticationError()
        if response.status_code == 404:
            raise NotFoundError(path)
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None)
        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {"message": response.text[:500] or f"HTTP {response.status_code}"}
            logger.error(
                "API error %d for %s %s: %s",
                response.status_code, method, path, str(body)[:500],
            )
            raise APIError.from_response(response.status_code, body)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            raise APIError(f"Invalid JSON response from {path}", status_code=response.status_code)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "StorefrontClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
