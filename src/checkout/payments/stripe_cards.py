from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any

import stripe

from checkout.core.config import PaymentsSettings, StripeSettings

from .enums import PaymentMethod, PaymentProvider
from .exceptions import PaymentGatewayError, ProviderQueryError
from .types import (
    PaymentOptions,
    PaymentRequest,
    ProviderIntentResponse,
    ProviderStatusResponse,
)

__all__ = ["StripeCardAdapter"]


class StripeCardAdapter:
    """Thin asynchronous wrapper around Stripe PaymentIntents for card payments."""

    provider = PaymentProvider.STRIPE
    method = PaymentMethod.CARD
    minimum_amount: Decimal | None = None

    def __init__(self, *, settings: StripeSettings, payments: PaymentsSettings) -> None:
        if settings.api_key is None:
            raise ValueError("Stripe api key is not configured")
        self._api_key = settings.api_key.get_secret_value()
        self._currency = payments.currency.lower()

    async def create_intent(
        self, request: PaymentRequest, options: PaymentOptions
    ) -> ProviderIntentResponse:
        def _call() -> dict[str, Any]:
            intent = stripe.PaymentIntent.create(
                api_key=self._api_key,
                idempotency_key=f"order-{request.order_id}",
                amount=int(request.amount * 100),
                currency=self._currency,
                payment_method_types=["card"],
                description=request.description
                or f"Payment for order {request.order_id}",
                metadata={
                    "order_id": request.order_id,
                    "customer_name": request.customer_name,
                },
            )
            return self._serialise(intent, PaymentGatewayError)

        try:
            body = await asyncio.to_thread(_call)
        except stripe.StripeError as exc:
            raise PaymentGatewayError(str(exc)) from exc

        response: ProviderIntentResponse = {
            "id": body["id"],
            "status": body.get("status"),
            "amount": Decimal(body.get("amount", 0)) / 100,
            "raw": body,
        }
        if isinstance(body.get("client_secret"), str):
            response["client_secret"] = body["client_secret"]
        return response

    async def query_status(self, payment_id: str) -> ProviderStatusResponse:
        def _call() -> dict[str, Any]:
            intent = stripe.PaymentIntent.retrieve(payment_id, api_key=self._api_key)
            return self._serialise(intent, ProviderQueryError)

        try:
            body = await asyncio.to_thread(_call)
        except stripe.StripeError as exc:
            raise ProviderQueryError(str(exc)) from exc
        return {"id": body["id"], "status": body.get("status"), "raw": body}

    async def aclose(self) -> None:
        return None

    async def ping(self) -> None:
        try:
            await asyncio.to_thread(stripe.Balance.retrieve, api_key=self._api_key)
        except stripe.StripeError as exc:
            raise ProviderQueryError(str(exc)) from exc

    @staticmethod
    def _serialise(intent: Any, error: type[PaymentGatewayError]) -> dict[str, Any]:
        if not hasattr(intent, "to_dict"):
            raise error(f"Unexpected Stripe response type: {type(intent).__name__}")
        serialised = intent.to_dict()
        if not isinstance(serialised, dict):
            raise error("Stripe to_dict() returned non-dict payload")
        if not isinstance(serialised.get("id"), str):
            raise error("Stripe response missing 'id' field")
        return serialised
