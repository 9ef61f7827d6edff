from __future__ import annotations

import datetime as dt
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, NotRequired, TypedDict

from .enums import (
    PaymentMethod,
    PaymentProvider,
    PaymentStatus,
    ProviderHealthStatus,
)

__all__ = [
    "ConfirmationCallback",
    "ManualCheckResult",
    "PaymentCheckResult",
    "PaymentIntent",
    "PaymentOptions",
    "PaymentRequest",
    "ProviderHealth",
    "ProviderIntentResponse",
    "ProviderStatusResponse",
]


class ProviderIntentResponse(TypedDict):
    """Provider-agnostic projection of an intent creation response."""

    id: str
    status: str | None
    amount: Decimal
    qr_string: NotRequired[str]
    account_number: NotRequired[str]
    bank_code: NotRequired[str]
    redirect_url: NotRequired[str]
    client_secret: NotRequired[str]
    expires_at: NotRequired[str]
    raw: dict[str, Any]


class ProviderStatusResponse(TypedDict):
    """Raw status reported by a provider for an existing intent."""

    id: str
    status: str | None
    raw: dict[str, Any]


@dataclass(slots=True)
class PaymentRequest:
    """Input payload required to create a payment intent."""

    order_id: str
    amount: Decimal
    method: PaymentMethod
    customer_name: str
    customer_email: str | None = None
    customer_phone: str | None = None
    description: str | None = None


@dataclass(slots=True)
class PaymentOptions:
    """Per-method extras: e-wallet channel, VA bank and redirect targets."""

    channel_code: str | None = None
    bank_code: str | None = None
    success_redirect_url: str | None = None
    failure_redirect_url: str | None = None


@dataclass(frozen=True, slots=True)
class PaymentIntent:
    """Normalised intent returned to checkout; immutable once created."""

    payment_id: str
    order_id: str
    provider: PaymentProvider
    method: PaymentMethod
    status: PaymentStatus
    raw_status: str | None
    amount: Decimal
    fee: Decimal
    expires_at: dt.datetime | None = None
    qr_string: str | None = None
    account_number: str | None = None
    bank_code: str | None = None
    redirect_url: str | None = None
    client_secret: str | None = None
    provider_data: Mapping[str, Any] = field(default_factory=dict, repr=False)


@dataclass(frozen=True, slots=True)
class PaymentCheckResult:
    """Outcome of one status query against a provider."""

    payment_id: str
    status: PaymentStatus
    raw_status: str | None
    is_paid: bool
    data: Mapping[str, Any] = field(default_factory=dict, repr=False)


@dataclass(frozen=True, slots=True)
class ManualCheckResult:
    """User-facing result of a "check now" request."""

    is_paid: bool
    status: PaymentStatus
    message: str


@dataclass(frozen=True, slots=True)
class ProviderHealth:
    provider: PaymentProvider
    status: ProviderHealthStatus
    response_time_ms: float | None = None
    error: str | None = None


ConfirmationCallback = Callable[[str, bool, Mapping[str, Any]], Awaitable[None]]
