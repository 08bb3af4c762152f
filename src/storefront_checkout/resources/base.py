"""
Base resource class for the storefront client.

Resources are thin: they build request bodies, call the client and parse
responses into schemas. Error mapping and retries live in the client.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from ..errors import ResponseParseError

if TYPE_CHECKING:
    from ..client import StorefrontClient
    from ..config import CheckoutSettings

M = TypeVar("M", bound=BaseModel)


class AsyncBaseResource:
    """Base class for async API resources.

    Attributes:
        _client: The client instance
    """

    def __init__(self, client: "StorefrontClient") -> None:
        self._client = client

    @property
    def _settings(self) -> "CheckoutSettings":
        return self._client.settings

    async def _get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make a GET request. GETs are retried on transient failures."""
        return await self._client._request("GET", path, params=params)

    async def _post(
        self,
        path: str,
        data: Optional[Dict[str, Any]] = None,
        retry: bool = False,
    ) -> Any:
        """Make a POST request.

        Args:
            path: API endpoint path
            data: Request body
            retry: Only for calls that are safe to repeat

        Returns:
            Decoded response body
        """
        return await self._client._request("POST", path, json=data, retry=retry)

    @staticmethod
    def _parse(model: Type[M], response: Any, path: str) -> M:
        """Validate a response body, raising ResponseParseError on a bad shape."""
        try:
            return model.model_validate({} if response is None or response == "" else response)
        except SchemaValidationError as e:
            raise ResponseParseError(path, cause=e)
