from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any, ClassVar, Protocol

import httpx

from .enums import PaymentMethod, PaymentProvider
from .exceptions import PaymentGatewayError, ProviderQueryError
from .types import (
    PaymentOptions,
    PaymentRequest,
    ProviderIntentResponse,
    ProviderStatusResponse,
)


class ProviderAdapter(Protocol):
    """Capabilities required from one provider for one payment method."""

    provider: PaymentProvider
    method: PaymentMethod
    minimum_amount: Decimal | None

    async def create_intent(
        self, request: PaymentRequest, options: PaymentOptions
    ) -> ProviderIntentResponse:
        """Create a payment intent and return its provider-agnostic projection."""

    async def query_status(self, payment_id: str) -> ProviderStatusResponse:
        """Return the raw provider status; raise ``ProviderQueryError`` on failure."""

    async def aclose(self) -> None:
        """Release pooled connections."""

    async def ping(self) -> None:
        """Raise ``ProviderQueryError`` unless the provider answers."""


class HttpProviderAdapter:
    """Shared plumbing for REST providers authenticated with a secret key.

    Subclasses implement ``create_intent`` and ``query_status`` on top of
    ``_post`` / ``_get``. No retries happen here; the polling scheduler owns
    the retry cadence.
    """

    provider: ClassVar[PaymentProvider]
    method: ClassVar[PaymentMethod]
    # Cheap authenticated endpoint used for health checks.
    health_path: ClassVar[str]
    minimum_amount: Decimal | None = None

    def __init__(
        self,
        *,
        base_url: str,
        secret_key: str,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not secret_key:
            raise ValueError("secret_key must be provided")
        self._client = httpx.AsyncClient(
            base_url=base_url,
            auth=httpx.BasicAuth(secret_key, ""),
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(
        self,
        path: str,
        *,
        json: Mapping[str, Any] | None = None,
        data: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self._client.post(
                path, json=json, data=data, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise PaymentGatewayError(
                f"{self.provider.value} rejected {self.method.value} intent: "
                f"{self._error_message(exc.response)}"
            ) from exc
        except httpx.HTTPError as exc:
            raise PaymentGatewayError(
                f"{self.provider.value} is unreachable: {exc}"
            ) from exc
        return self._decode(response, PaymentGatewayError)

    async def ping(self) -> None:
        await self._fetch(self.health_path, "health check")

    async def _get(self, path: str) -> dict[str, Any]:
        response = await self._fetch(path, "status query")
        return self._decode(response, ProviderQueryError)

    async def _fetch(self, path: str, purpose: str) -> httpx.Response:
        try:
            response = await self._client.get(path)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ProviderQueryError(
                f"{self.provider.value} {purpose} failed: "
                f"{self._error_message(exc.response)}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderQueryError(
                f"{self.provider.value} is unreachable: {exc}"
            ) from exc
        return response

    def _decode(
        self, response: httpx.Response, error: type[PaymentGatewayError]
    ) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise error(f"{self.provider.value} returned a non-JSON body") from exc
        if not isinstance(body, dict):
            raise error(f"{self.provider.value} returned a non-object body")
        return body

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return f"HTTP {response.status_code}"
        if isinstance(body, dict):
            message = body.get("message") or body.get("error_code")
            if isinstance(message, str):
                return f"HTTP {response.status_code} {message}"
        return f"HTTP {response.status_code}"

    @staticmethod
    def _require_id(
        body: Mapping[str, Any], key: str, error: type[PaymentGatewayError]
    ) -> str:
        value = body.get(key)
        if isinstance(value, int):
            return str(value)
        if not isinstance(value, str) or not value:
            raise error(f"provider response missing '{key}' field")
        return value
