from __future__ import annotations

import datetime as dt
import time
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

import httpx

from checkout.core.config import PaymentsSettings, XenditSettings

from .enums import PaymentMethod, PaymentProvider
from .exceptions import PaymentGatewayError, ProviderQueryError
from .gateway import HttpProviderAdapter
from .types import (
    PaymentOptions,
    PaymentRequest,
    ProviderIntentResponse,
    ProviderStatusResponse,
)

__all__ = [
    "XenditEwalletAdapter",
    "XenditQRISAdapter",
    "XenditVirtualAccountAdapter",
    "build_xendit_adapters",
    "virtual_account_status",
]


def _amount(value: Any, fallback: Decimal) -> Decimal:
    if isinstance(value, (int, float, str)):
        return Decimal(str(value))
    return fallback


class _XenditAdapter(HttpProviderAdapter):
    provider = PaymentProvider.XENDIT
    health_path = "/balance"

    def __init__(
        self,
        *,
        settings: XenditSettings,
        payments: PaymentsSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if settings.secret_key is None:
            raise ValueError("Xendit secret key is not configured")
        super().__init__(
            base_url=settings.base_url,
            secret_key=settings.secret_key.get_secret_value(),
            timeout=settings.timeout_seconds,
            transport=transport,
        )
        self._callback_url = settings.callback_url
        self._payments = payments

    def _expires_at(self) -> dt.datetime:
        minutes = self._payments.intent_expiry_minutes.get(self.method, 30)
        return dt.datetime.now(dt.UTC) + dt.timedelta(minutes=minutes)

    def _status_response(
        self, body: Mapping[str, Any], status: str | None
    ) -> ProviderStatusResponse:
        return {
            "id": self._require_id(body, "id", ProviderQueryError),
            "status": status,
            "raw": dict(body),
        }


class XenditQRISAdapter(_XenditAdapter):
    """Dynamic QR codes paid from any QRIS-enabled app."""

    method = PaymentMethod.QRIS
    minimum_amount = Decimal("1000")

    async def create_intent(
        self, request: PaymentRequest, options: PaymentOptions
    ) -> ProviderIntentResponse:
        payload: dict[str, Any] = {
            "external_id": f"qris_{request.order_id}_{int(time.time() * 1000)}",
            "reference_id": request.order_id,
            "type": "DYNAMIC",
            "currency": self._payments.currency,
            "amount": int(request.amount),
            "expires_at": self._expires_at().isoformat(),
            "metadata": {
                "customer_name": request.customer_name,
                "customer_email": request.customer_email,
                "customer_phone": request.customer_phone,
                "description": request.description,
            },
        }
        if self._callback_url:
            payload["callback_url"] = self._callback_url

        body = await self._post(
            "/qr_codes", json=payload, headers={"api-version": "2022-07-31"}
        )
        response: ProviderIntentResponse = {
            "id": self._require_id(body, "id", PaymentGatewayError),
            "status": body.get("status"),
            "amount": _amount(body.get("amount"), request.amount),
            "raw": body,
        }
        if isinstance(body.get("qr_string"), str):
            response["qr_string"] = body["qr_string"]
        if isinstance(body.get("expires_at"), str):
            response["expires_at"] = body["expires_at"]
        return response

    async def query_status(self, payment_id: str) -> ProviderStatusResponse:
        body = await self._get(f"/qr_codes/{payment_id}")
        return self._status_response(body, body.get("status"))


class XenditEwalletAdapter(_XenditAdapter):
    """E-wallet charges completed by redirecting the payer to their wallet app."""

    method = PaymentMethod.EWALLET

    async def create_intent(
        self, request: PaymentRequest, options: PaymentOptions
    ) -> ProviderIntentResponse:
        channel_code = (options.channel_code or "").upper()
        channel_properties: dict[str, Any] = {
            "success_redirect_url": options.success_redirect_url
            or self._payments.success_redirect_url,
            "failure_redirect_url": options.failure_redirect_url
            or self._payments.failure_redirect_url,
        }
        if channel_code == "ID_OVO":
            channel_properties["mobile_number"] = request.customer_phone

        payload = {
            "reference_id": request.order_id,
            "currency": self._payments.currency,
            "amount": int(request.amount),
            "checkout_method": "ONE_TIME_PAYMENT",
            "channel_code": channel_code,
            "channel_properties": channel_properties,
            "metadata": {
                "customer_name": request.customer_name,
                "description": request.description,
            },
        }
        body = await self._post("/ewallets/charges", json=payload)
        response: ProviderIntentResponse = {
            "id": self._require_id(body, "id", PaymentGatewayError),
            "status": body.get("status"),
            "amount": _amount(body.get("charge_amount"), request.amount),
            "raw": body,
        }
        actions = body.get("actions")
        if isinstance(actions, Mapping):
            url = (
                actions.get("mobile_web_checkout_url")
                or actions.get("mobile_deeplink_checkout_url")
                or actions.get("desktop_web_checkout_url")
            )
            if isinstance(url, str):
                response["redirect_url"] = url
        return response

    async def query_status(self, payment_id: str) -> ProviderStatusResponse:
        body = await self._get(f"/ewallets/charges/{payment_id}")
        return self._status_response(body, body.get("status"))


class XenditVirtualAccountAdapter(_XenditAdapter):
    """Closed single-use virtual accounts for bank transfers."""

    method = PaymentMethod.VIRTUAL_ACCOUNT

    async def create_intent(
        self, request: PaymentRequest, options: PaymentOptions
    ) -> ProviderIntentResponse:
        payload = {
            "external_id": f"va_{request.order_id}_{int(time.time() * 1000)}",
            "bank_code": (options.bank_code or "").upper(),
            "name": request.customer_name,
            "expected_amount": int(request.amount),
            "is_closed": True,
            "is_single_use": True,
            "expiration_date": self._expires_at().isoformat(),
        }
        body = await self._post("/callback_virtual_accounts", json=payload)
        response: ProviderIntentResponse = {
            "id": self._require_id(body, "id", PaymentGatewayError),
            "status": body.get("status"),
            "amount": _amount(body.get("expected_amount"), request.amount),
            "raw": body,
        }
        if isinstance(body.get("account_number"), str):
            response["account_number"] = body["account_number"]
        if isinstance(body.get("bank_code"), str):
            response["bank_code"] = body["bank_code"]
        if isinstance(body.get("expiration_date"), str):
            response["expires_at"] = body["expiration_date"]
        return response

    async def query_status(self, payment_id: str) -> ProviderStatusResponse:
        body = await self._get(f"/callback_virtual_accounts/{payment_id}")
        return self._status_response(body, virtual_account_status(body))


def virtual_account_status(body: Mapping[str, Any]) -> str | None:
    """Raw status of a callback virtual account, read as paid once funded.

    A VA stays ``ACTIVE`` after a transfer lands; the received amount is what
    proves payment.
    """

    received = body.get("received_amount")
    expected = body.get("expected_amount")
    if (
        isinstance(received, (int, float))
        and isinstance(expected, (int, float))
        and received > 0
        and received >= expected
    ):
        return "COMPLETED"
    status = body.get("status")
    return status if isinstance(status, str) else None


def build_xendit_adapters(
    settings: XenditSettings,
    payments: PaymentsSettings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[_XenditAdapter]:
    return [
        adapter_cls(settings=settings, payments=payments, transport=transport)
        for adapter_cls in (
            XenditQRISAdapter,
            XenditEwalletAdapter,
            XenditVirtualAccountAdapter,
        )
    ]
