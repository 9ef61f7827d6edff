from __future__ import annotations

import pytest

from checkout.payments.enums import PaymentStatus
from checkout.payments.messages import status_message
from checkout.payments.status import (
    RAW_STATUS_TABLE,
    TERMINAL_FAILURE_STATUSES,
    is_paid,
    normalize_status,
)


@pytest.mark.parametrize(
    "raw", ["PAID", "SUCCEEDED", "COMPLETED", "SUCCESSFUL", "SETTLED"]
)
def test_success_vocabulary_is_paid(raw: str) -> None:
    assert normalize_status(raw) is PaymentStatus.PAID
    assert is_paid(raw)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("succeeded", PaymentStatus.PAID),
        (" Completed ", PaymentStatus.PAID),
        ("ACTIVE", PaymentStatus.PENDING),
        ("requires_payment_method", PaymentStatus.PENDING),
        ("INACTIVE", PaymentStatus.EXPIRED),
        ("canceled", PaymentStatus.CANCELLED),
        ("VOIDED", PaymentStatus.FAILED),
    ],
)
def test_normalisation_is_case_insensitive(raw: str, expected: PaymentStatus) -> None:
    assert normalize_status(raw) is expected


@pytest.mark.parametrize("raw", [None, "", "SOMETHING_NEW"])
def test_missing_or_unknown_status_is_pending_not_paid(raw: str | None) -> None:
    assert normalize_status(raw) is PaymentStatus.PENDING
    assert not is_paid(raw)


def test_every_status_is_reachable_from_the_table() -> None:
    assert set(RAW_STATUS_TABLE.values()) == set(PaymentStatus)


def test_terminal_failures_exclude_paid_and_pending() -> None:
    assert TERMINAL_FAILURE_STATUSES == {
        PaymentStatus.FAILED,
        PaymentStatus.EXPIRED,
        PaymentStatus.CANCELLED,
    }


def test_status_messages_are_localised() -> None:
    assert status_message(PaymentStatus.PAID) == (
        "Pembayaran berhasil! Status pesanan telah diperbarui."
    )
    assert status_message(PaymentStatus.EXPIRED, "en") == (
        "Payment failed or has expired. Please create a new order."
    )
    assert status_message(PaymentStatus.PENDING) == (
        "Status pembayaran: PENDING. Silakan selesaikan pembayaran."
    )
    assert "try again" in status_message(PaymentStatus.ERROR, "en")
