from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI
from starlette.types import Lifespan

from checkout.core.config import Settings
from checkout.db.session import dispose_engine, get_session_factory
from checkout.orders.store import SqlAlchemyOrderStatusStore
from checkout.orders.subscriber import OrderStatusSubscriber
from checkout.payments.dependencies import build_provider_adapters
from checkout.payments.events import PaymentEventBus
from checkout.payments.notifications import LoggingPaymentListener
from checkout.payments.polling import PaymentPollingService
from checkout.payments.service import PaymentGatewayService


def create_lifespan(
    settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None
) -> Lifespan[FastAPI]:
    """Build the payment core on startup and tear it down on shutdown.

    ``transport`` is handed to every HTTP provider adapter; tests use it to
    plug in ``httpx.MockTransport``.
    """

    logger = structlog.get_logger(__name__).bind(environment=settings.environment)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("application_startup")
        store = SqlAlchemyOrderStatusStore(get_session_factory(settings))
        gateway = PaymentGatewayService(
            settings=settings.payments,
            adapters=build_provider_adapters(settings, transport=transport),
        )
        events = PaymentEventBus(
            [OrderStatusSubscriber(store), LoggingPaymentListener()]
        )
        polling = PaymentPollingService(
            gateway=gateway,
            events=events,
            policies=settings.payments.polling,
            locale=settings.payments.locale,
        )

        app.state.order_store = store
        app.state.payment_events = events
        app.state.payment_gateway = gateway
        app.state.payment_polling = polling

        try:
            yield
        finally:
            await polling.stop_all_polling()
            for adapter in gateway.adapters:
                try:
                    await adapter.aclose()
                except Exception:
                    logger.exception(
                        "payment_adapter_close_failed",
                        provider=adapter.provider.value,
                        method=adapter.method.value,
                    )

            app.state.payment_polling = None
            app.state.payment_gateway = None
            app.state.payment_events = None
            app.state.order_store = None
            await dispose_engine()
            logger.info("application_shutdown")

    return lifespan
