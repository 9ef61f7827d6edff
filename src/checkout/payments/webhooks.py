"""Authentication and parsing of Xendit payment callbacks.

Xendit signs nothing; each callback carries the account's static
verification token in ``x-callback-token``. Callbacks arrive either flat
(virtual accounts) or wrapped as ``{"event": ..., "data": {...}}`` (QR codes
and e-wallet charges).
"""

from __future__ import annotations

import hmac
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from checkout.core.config import XenditSettings

from .enums import PaymentMethod, PaymentStatus
from .exceptions import (
    PaymentConfigurationError,
    PaymentSignatureError,
    PaymentValidationError,
)
from .status import normalize_status
from .xendit import virtual_account_status

__all__ = [
    "CALLBACK_TOKEN_HEADER",
    "ProviderNotification",
    "parse_xendit_notification",
    "verify_xendit_callback_token",
]

CALLBACK_TOKEN_HEADER = "x-callback-token"


@dataclass(frozen=True, slots=True)
class ProviderNotification:
    """A status pushed by a provider for one of our payments."""

    payment_id: str
    method: PaymentMethod
    raw_status: str | None
    status: PaymentStatus
    reference: str | None = None
    data: Mapping[str, Any] = field(default_factory=dict, repr=False)


def verify_xendit_callback_token(settings: XenditSettings, token: str | None) -> None:
    expected = settings.callback_token
    if expected is None:
        raise PaymentConfigurationError("Xendit callback token is not configured")
    if token is None or not hmac.compare_digest(
        token.encode(), expected.get_secret_value().encode()
    ):
        raise PaymentSignatureError("Invalid Xendit callback token")


def parse_xendit_notification(payload: Mapping[str, Any]) -> ProviderNotification:
    envelope = payload.get("data")
    body: Mapping[str, Any] = envelope if isinstance(envelope, Mapping) else payload
    event = str(payload.get("event") or "").lower()
    method = _detect_method(body, event)

    if method is PaymentMethod.VIRTUAL_ACCOUNT:
        payment_id = body.get("callback_virtual_account_id") or body.get("id")
        raw_status = virtual_account_status(body)
    else:
        payment_id = body.get("qr_id") or body.get("id")
        raw = body.get("status")
        raw_status = raw if isinstance(raw, str) else None
    if not isinstance(payment_id, str) or not payment_id:
        raise PaymentValidationError(
            "Callback does not identify a payment", field="id"
        )

    reference = body.get("reference_id") or body.get("external_id")
    return ProviderNotification(
        payment_id=payment_id,
        method=method,
        raw_status=raw_status,
        status=normalize_status(raw_status),
        reference=reference if isinstance(reference, str) else None,
        data=dict(body),
    )


def _detect_method(body: Mapping[str, Any], event: str) -> PaymentMethod:
    kind = str(body.get("type") or "").upper()
    if body.get("bank_code") and (
        body.get("account_number") or body.get("callback_virtual_account_id")
    ):
        return PaymentMethod.VIRTUAL_ACCOUNT
    if event.startswith("qr.") or body.get("qr_id") or kind in {"QRIS", "DYNAMIC"}:
        return PaymentMethod.QRIS
    if event.startswith("ewallet.") or body.get("channel_code") or kind == "EWALLET":
        return PaymentMethod.EWALLET
    raise PaymentValidationError("Unrecognised Xendit callback", field="payload")
