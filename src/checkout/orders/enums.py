from __future__ import annotations

from enum import StrEnum


class OrderStatus(StrEnum):
    """Order states touched by payment reconciliation.

    ``waiting_payment`` is the only non-terminal state; transitions out of
    the two terminal states are ignored.
    """

    WAITING_PAYMENT = "waiting_payment"
    PAYMENT_CONFIRMED = "payment_confirmed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not OrderStatus.WAITING_PAYMENT
