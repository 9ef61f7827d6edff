from __future__ import annotations

import httpx
from fastapi import FastAPI
from fastapi.responses import ORJSONResponse

import checkout.orders.models  # noqa: F401 - register models with SQLAlchemy metadata
from checkout.api.middleware import RequestContextMiddleware
from checkout.api.routes import ROUTERS
from checkout.core.config import Settings, get_settings
from checkout.core.lifespan import create_lifespan
from checkout.core.logging import configure_logging
from checkout.observability import metrics_service


def _register_middlewares(app: FastAPI) -> None:
    app.add_middleware(RequestContextMiddleware)


def _register_routers(app: FastAPI) -> None:
    for router in ROUTERS:
        app.include_router(router)


def create_app(
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.project_name,
        description=settings.project_description,
        version=settings.project_version,
        docs_url=settings.docs_url,
        openapi_url=settings.openapi_url,
        default_response_class=ORJSONResponse,
        lifespan=create_lifespan(settings, transport=transport),
    )
    app.state.settings = settings
    app.openapi_tags = [
        {"name": "health", "description": "Service health check operations"},
        {
            "name": "payments",
            "description": (
                "Payment intent creation, manual status checks and background "
                "polling control."
            ),
        },
        {"name": "orders", "description": "Order status lookups"},
        {"name": "webhooks", "description": "Provider payment callbacks"},
    ]

    metrics_service.instrument_app(app, settings.prometheus)
    _register_middlewares(app)
    _register_routers(app)

    return app
