from __future__ import annotations

from checkout.payments.enums import PaymentOutcome
from checkout.payments.events import PaymentEvent

from .enums import OrderStatus
from .store import OrderStatusStore

_OUTCOME_TO_STATUS = {
    PaymentOutcome.CONFIRMED: OrderStatus.PAYMENT_CONFIRMED,
    PaymentOutcome.FAILED: OrderStatus.CANCELLED,
    PaymentOutcome.TIMED_OUT: OrderStatus.CANCELLED,
}


class OrderStatusSubscriber:
    """Reconciles order status with payment outcomes published by the scheduler."""

    def __init__(self, store: OrderStatusStore) -> None:
        self._store = store

    async def handle(self, event: PaymentEvent) -> None:
        status = _OUTCOME_TO_STATUS[event.outcome]
        reason = None
        if status is OrderStatus.CANCELLED:
            reason = f"payment_{event.outcome.value}:{event.status.value}"
        await self._store.update_order_status(event.order_id, status, reason=reason)
