from __future__ import annotations

import datetime as dt
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from .enums import CheckSource, PaymentMethod, PaymentOutcome, PaymentStatus

if TYPE_CHECKING:
    from .notifications import PaymentListener

__all__ = ["PaymentEvent", "PaymentEventBus"]

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PaymentEvent:
    """A payment outcome observed by polling or by a manual check."""

    outcome: PaymentOutcome
    payment_id: str
    order_id: str
    method: PaymentMethod
    status: PaymentStatus
    source: CheckSource
    data: Mapping[str, Any] = field(default_factory=dict, repr=False)
    occurred_at: dt.datetime = field(
        default_factory=lambda: dt.datetime.now(dt.UTC)
    )


class PaymentEventBus:
    """Fan payment outcomes out to subscribers in registration order.

    A failing subscriber does not stop the others; the first error is
    re-raised once every subscriber has run so the publishing path can retry.
    """

    def __init__(self, listeners: list[PaymentListener] | None = None) -> None:
        self._listeners: list[PaymentListener] = list(listeners or [])

    def subscribe(self, listener: PaymentListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: PaymentListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listeners(self) -> tuple[PaymentListener, ...]:
        return tuple(self._listeners)

    async def publish(self, event: PaymentEvent) -> None:
        first_error: Exception | None = None
        for listener in tuple(self._listeners):
            try:
                await listener.handle(event)
            except Exception as exc:
                logger.error(
                    "payment_listener_failed",
                    listener=type(listener).__name__,
                    outcome=event.outcome.value,
                    payment_id=event.payment_id,
                    order_id=event.order_id,
                    error=str(exc),
                )
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error
