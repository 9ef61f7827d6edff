"""Single translation table from provider status vocabularies to ``PaymentStatus``.

Provider-specific status strings must not be interpreted anywhere else.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Final

import structlog

from .enums import PaymentStatus

__all__ = [
    "RAW_STATUS_TABLE",
    "TERMINAL_FAILURE_STATUSES",
    "TERMINAL_STATUSES",
    "is_paid",
    "normalize_status",
]

logger = structlog.get_logger(__name__)

RAW_STATUS_TABLE: Final[Mapping[str, PaymentStatus]] = {
    # Still waiting on the payer or the rail.
    "PENDING": PaymentStatus.PENDING,
    "ACTIVE": PaymentStatus.PENDING,
    "PROCESSING": PaymentStatus.PENDING,
    "REQUIRES_PAYMENT_METHOD": PaymentStatus.PENDING,
    "REQUIRES_CONFIRMATION": PaymentStatus.PENDING,
    "REQUIRES_ACTION": PaymentStatus.PENDING,
    "REQUIRES_CAPTURE": PaymentStatus.PENDING,
    # Money has moved.
    "PAID": PaymentStatus.PAID,
    "SUCCEEDED": PaymentStatus.PAID,
    "SUCCESSFUL": PaymentStatus.PAID,
    "COMPLETED": PaymentStatus.PAID,
    "CAPTURED": PaymentStatus.PAID,
    "SETTLED": PaymentStatus.PAID,
    # Authoritative failures.
    "FAILED": PaymentStatus.FAILED,
    "VOIDED": PaymentStatus.FAILED,
    "EXPIRED": PaymentStatus.EXPIRED,
    "INACTIVE": PaymentStatus.EXPIRED,
    "CANCELLED": PaymentStatus.CANCELLED,
    "CANCELED": PaymentStatus.CANCELLED,
    "ERROR": PaymentStatus.ERROR,
}

TERMINAL_FAILURE_STATUSES: Final[frozenset[PaymentStatus]] = frozenset(
    {PaymentStatus.FAILED, PaymentStatus.EXPIRED, PaymentStatus.CANCELLED}
)
TERMINAL_STATUSES: Final[frozenset[PaymentStatus]] = TERMINAL_FAILURE_STATUSES | {
    PaymentStatus.PAID
}


def normalize_status(raw_status: str | None) -> PaymentStatus:
    """Map a raw provider status onto ``PaymentStatus``.

    Missing or unrecognised values read as ``PENDING``: without an explicit
    success signal a payment is never treated as paid.
    """

    if not raw_status:
        return PaymentStatus.PENDING
    status = RAW_STATUS_TABLE.get(raw_status.strip().upper())
    if status is None:
        logger.warning("payment_status_unrecognised", raw_status=raw_status)
        return PaymentStatus.PENDING
    return status


def is_paid(raw_status: str | None) -> bool:
    return normalize_status(raw_status) is PaymentStatus.PAID
