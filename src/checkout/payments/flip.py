from __future__ import annotations

import datetime as dt
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

import httpx

from checkout.core.config import FlipSettings, PaymentsSettings

from .enums import PaymentMethod, PaymentProvider
from .exceptions import PaymentGatewayError, ProviderQueryError
from .gateway import HttpProviderAdapter
from .types import (
    PaymentOptions,
    PaymentRequest,
    ProviderIntentResponse,
    ProviderStatusResponse,
)

__all__ = ["FlipVirtualAccountAdapter"]


class FlipVirtualAccountAdapter(HttpProviderAdapter):
    """Bank transfers collected through Flip single-use bills.

    When a bank code is supplied the bill is created in direct-API mode so
    Flip returns a virtual account number instead of a hosted payment link.
    """

    provider = PaymentProvider.FLIP
    method = PaymentMethod.VIRTUAL_ACCOUNT
    health_path = "/v2/general/banks"

    def __init__(
        self,
        *,
        settings: FlipSettings,
        payments: PaymentsSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if settings.secret_key is None:
            raise ValueError("Flip secret key is not configured")
        super().__init__(
            base_url=settings.base_url,
            secret_key=settings.secret_key.get_secret_value(),
            timeout=settings.timeout_seconds,
            transport=transport,
        )
        self._payments = payments

    async def create_intent(
        self, request: PaymentRequest, options: PaymentOptions
    ) -> ProviderIntentResponse:
        minutes = self._payments.intent_expiry_minutes.get(self.method, 24 * 60)
        expires = dt.datetime.now(dt.UTC) + dt.timedelta(minutes=minutes)
        form: dict[str, Any] = {
            "title": request.description or f"Payment for order {request.order_id}",
            "type": "SINGLE",
            "amount": str(int(request.amount)),
            "expired_date": expires.strftime("%Y-%m-%d %H:%M"),
            "sender_name": request.customer_name,
            "is_address_required": "0",
            "is_phone_number_required": "0",
        }
        if request.customer_email:
            form["sender_email"] = request.customer_email
        if request.customer_phone:
            form["sender_phone_number"] = request.customer_phone
        if options.bank_code:
            form["step"] = "3"
            form["sender_bank"] = options.bank_code.lower()
            form["sender_bank_type"] = "virtual_account"

        body = await self._post("/v2/pwf/bill", data=form)
        response: ProviderIntentResponse = {
            "id": self._require_id(body, "link_id", PaymentGatewayError),
            "status": self._bill_status(body),
            "amount": Decimal(str(body.get("amount", request.amount))),
            "raw": body,
        }
        if isinstance(body.get("expired_date"), str):
            response["expires_at"] = body["expired_date"]
        if isinstance(body.get("link_url"), str) and body["link_url"]:
            response["redirect_url"] = body["link_url"]

        bill_payment = body.get("bill_payment")
        if isinstance(bill_payment, Mapping):
            account = bill_payment.get("receiver_bank_account")
            if isinstance(account, Mapping):
                number = account.get("account_number")
                bank = account.get("bank_code")
                if isinstance(number, str):
                    response["account_number"] = number
                if isinstance(bank, str):
                    response["bank_code"] = bank.upper()
        return response

    async def query_status(self, payment_id: str) -> ProviderStatusResponse:
        try:
            body = await self._get(f"/v2/bill/{payment_id}")
        except ProviderQueryError as exc:
            cause = exc.__cause__
            # Freshly created bills are not always visible yet.
            if (
                isinstance(cause, httpx.HTTPStatusError)
                and cause.response.status_code == httpx.codes.NOT_FOUND
            ):
                return {"id": payment_id, "status": "ACTIVE", "raw": {}}
            raise
        return {
            "id": self._require_id(body, "link_id", ProviderQueryError),
            "status": self._bill_status(body),
            "raw": body,
        }

    @staticmethod
    def _bill_status(body: Mapping[str, Any]) -> str | None:
        bill_payment = body.get("bill_payment")
        if isinstance(bill_payment, Mapping):
            status = bill_payment.get("status")
            if isinstance(status, str):
                return status
        status = body.get("status")
        return status if isinstance(status, str) else None
