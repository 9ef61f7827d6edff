from __future__ import annotations

from enum import StrEnum


class PaymentMethod(StrEnum):
    """Payment rails supported at checkout."""

    QRIS = "QRIS"
    VIRTUAL_ACCOUNT = "VIRTUAL_ACCOUNT"
    EWALLET = "EWALLET"
    CARD = "CARD"


class PaymentStatus(StrEnum):
    """Provider-agnostic life cycle states for a payment intent."""

    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"
    ERROR = "ERROR"


class PaymentProvider(StrEnum):
    """Payment provider identifier."""

    XENDIT = "XENDIT"
    FLIP = "FLIP"
    STRIPE = "STRIPE"


class PaymentOutcome(StrEnum):
    """Terminal outcomes reported by the polling scheduler."""

    CONFIRMED = "confirmed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class CheckSource(StrEnum):
    """Which path observed a payment status."""

    POLLING = "polling"
    MANUAL = "manual"
    WEBHOOK = "webhook"


class ProviderHealthStatus(StrEnum):
    """Reachability of a payment provider from this service."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DOWN = "down"
