from __future__ import annotations

from fastapi import APIRouter

from . import health, orders, payments, webhooks

__all__ = ["ROUTERS"]

ROUTERS: tuple[APIRouter, ...] = (
    health.router,
    orders.router,
    payments.router,
    webhooks.router,
)
