from __future__ import annotations


class OrderError(RuntimeError):
    """Base class for order domain errors."""


class OrderNotFoundError(OrderError):
    """Raised when an order identifier does not match a stored order."""

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order '{order_id}' not found")
        self.order_id = order_id
