from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Protocol

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from checkout.db.types import utcnow
from checkout.payments.enums import PaymentMethod

from .enums import OrderStatus
from .exceptions import OrderNotFoundError
from .models import Order

__all__ = ["OrderStatusStore", "SqlAlchemyOrderStatusStore"]


class OrderStatusStore(Protocol):
    """Narrow write contract consumed by payment reconciliation."""

    async def update_order_status(
        self, order_id: str, status: OrderStatus, *, reason: str | None = None
    ) -> bool:
        """Apply ``status`` and return whether the order actually changed."""


class SqlAlchemyOrderStatusStore:
    """Order persistence with idempotent, monotonic status transitions.

    Re-applying the current status and any transition out of a terminal
    status are ignored, so the timeout path, the failure path and a racing
    manual check can all request the same change safely.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._write_lock = asyncio.Lock()
        self._logger = structlog.get_logger(__name__)

    async def create_order(
        self,
        order_id: str,
        amount: Decimal,
        *,
        status: OrderStatus = OrderStatus.WAITING_PAYMENT,
    ) -> Order:
        async with self._session_factory() as session, session.begin():
            order = Order(id=order_id, amount=amount, status=status)
            session.add(order)
        return order

    async def get_order(self, order_id: str) -> Order | None:
        async with self._session_factory() as session:
            return await session.get(Order, order_id)

    async def get_order_by_payment(self, payment_id: str) -> Order | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Order).where(Order.payment_id == payment_id)
            )
            return result.scalars().first()

    async def attach_payment(
        self, order_id: str, payment_id: str, method: PaymentMethod
    ) -> Order:
        async with self._write_lock, self._session_factory() as session:
            async with session.begin():
                order = await self._locked(session, order_id)
                order.payment_id = payment_id
                order.payment_method = method
        return order

    async def update_order_status(
        self, order_id: str, status: OrderStatus, *, reason: str | None = None
    ) -> bool:
        async with self._write_lock, self._session_factory() as session:
            async with session.begin():
                order = await self._locked(session, order_id)
                previous = order.status
                if previous is status or previous.is_terminal:
                    self._logger.info(
                        "order_status_transition_ignored",
                        order_id=order_id,
                        current_status=previous.value,
                        requested_status=status.value,
                    )
                    return False

                now = utcnow()
                order.status = status
                if status is OrderStatus.PAYMENT_CONFIRMED:
                    order.confirmed_at = now
                elif status is OrderStatus.CANCELLED:
                    order.cancelled_at = now
                    order.cancel_reason = reason

        self._logger.info(
            "order_status_updated",
            order_id=order_id,
            previous_status=previous.value,
            status=status.value,
            reason=reason,
        )
        return True

    @staticmethod
    async def _locked(session: AsyncSession, order_id: str) -> Order:
        stmt = select(Order).where(Order.id == order_id).with_for_update()
        result = await session.execute(stmt)
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(order_id)
        return order
