from __future__ import annotations

from typing import Protocol

import structlog

from .events import PaymentEvent


class PaymentListener(Protocol):
    """Subscriber notified when the scheduler resolves a payment."""

    async def handle(self, event: PaymentEvent) -> None:
        """React to a payment outcome (order update, push message, etc.)"""


class LoggingPaymentListener:
    """Default listener that records every outcome in the structured log."""

    def __init__(self) -> None:
        self._logger = structlog.get_logger(__name__)

    async def handle(self, event: PaymentEvent) -> None:
        self._logger.info(
            "payment_outcome",
            outcome=event.outcome.value,
            payment_id=event.payment_id,
            order_id=event.order_id,
            method=event.method.value,
            status=event.status.value,
            source=event.source.value,
        )
