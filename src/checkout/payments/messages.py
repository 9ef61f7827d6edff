"""User-facing texts returned by manual payment checks."""

from __future__ import annotations

from typing import Final, Literal

from .enums import PaymentStatus

Locale = Literal["id", "en"]

_MESSAGES: Final[dict[str, dict[str, str]]] = {
    "id": {
        "paid": "Pembayaran berhasil! Status pesanan telah diperbarui.",
        "failed": "Pembayaran gagal atau telah expired. Silakan buat pesanan baru.",
        "error": (
            "Terjadi kesalahan saat mengecek status pembayaran. Silakan coba lagi."
        ),
        "pending": "Status pembayaran: {status}. Silakan selesaikan pembayaran.",
    },
    "en": {
        "paid": "Payment successful! The order status has been updated.",
        "failed": "Payment failed or has expired. Please create a new order.",
        "error": "Something went wrong while checking the payment. Please try again.",
        "pending": "Payment status: {status}. Please complete the payment.",
    },
}


def status_message(status: PaymentStatus, locale: Locale = "id") -> str:
    texts = _MESSAGES.get(locale, _MESSAGES["id"])
    if status is PaymentStatus.PAID:
        return texts["paid"]
    if status in {PaymentStatus.FAILED, PaymentStatus.EXPIRED, PaymentStatus.CANCELLED}:
        return texts["failed"]
    if status is PaymentStatus.ERROR:
        return texts["error"]
    return texts["pending"].format(status=status.value)
