from __future__ import annotations

from typing import Any, cast

import httpx
import structlog
from fastapi import HTTPException, Request, status

from checkout.core.config import Settings
from checkout.orders.store import SqlAlchemyOrderStatusStore

from .flip import FlipVirtualAccountAdapter
from .gateway import ProviderAdapter
from .polling import PaymentPollingService
from .service import PaymentGatewayService
from .stripe_cards import StripeCardAdapter
from .xendit import build_xendit_adapters

logger = structlog.get_logger(__name__)


def build_provider_adapters(
    settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None
) -> list[ProviderAdapter]:
    """Instantiate adapters for every provider whose credentials are present."""

    adapters: list[ProviderAdapter] = []
    if settings.xendit.secret_key is not None:
        adapters.extend(
            build_xendit_adapters(
                settings.xendit, settings.payments, transport=transport
            )
        )
    if settings.flip.secret_key is not None:
        adapters.append(
            FlipVirtualAccountAdapter(
                settings=settings.flip, payments=settings.payments, transport=transport
            )
        )
    if settings.stripe.api_key is not None:
        adapters.append(
            StripeCardAdapter(settings=settings.stripe, payments=settings.payments)
        )

    logger.info(
        "payment_adapters_configured",
        adapters=[f"{a.provider.value}:{a.method.value}" for a in adapters],
    )
    return adapters


def _from_state(request: Request, name: str) -> Any:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment services are not initialised",
        )
    return value


def get_gateway_service(request: Request) -> PaymentGatewayService:
    return cast(PaymentGatewayService, _from_state(request, "payment_gateway"))


def get_polling_service(request: Request) -> PaymentPollingService:
    return cast(PaymentPollingService, _from_state(request, "payment_polling"))


def get_order_store(request: Request) -> SqlAlchemyOrderStatusStore:
    return cast(SqlAlchemyOrderStatusStore, _from_state(request, "order_store"))


def get_app_settings(request: Request) -> Settings:
    return cast(Settings, request.app.state.settings)
