from __future__ import annotations

from decimal import Decimal
from typing import Any

import pytest
from fastapi import FastAPI
from httpx import AsyncClient
from pydantic import SecretStr

from checkout.core.config import XenditSettings
from checkout.orders.enums import OrderStatus
from checkout.orders.store import SqlAlchemyOrderStatusStore
from checkout.payments.enums import PaymentMethod, PaymentStatus
from checkout.payments.exceptions import (
    PaymentConfigurationError,
    PaymentSignatureError,
    PaymentValidationError,
)
from checkout.payments.webhooks import (
    parse_xendit_notification,
    verify_xendit_callback_token,
)

from .conftest import XENDIT_CALLBACK_TOKEN
from .fakes import FakeProviderAPI

WEBHOOK_URL = "/api/v1/payments/webhooks/xendit"
HEADERS = {"x-callback-token": XENDIT_CALLBACK_TOKEN}


def _va_callback(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": "57f6fbf26b9f064272622aa6",
        "callback_virtual_account_id": "va_9",
        "external_id": "order-3001",
        "bank_code": "BNI",
        "account_number": "8808999912345678",
        "status": "ACTIVE",
        "expected_amount": 150000,
        "received_amount": 150000,
    }
    payload.update(overrides)
    return payload


def _qr_callback(qr_id: str, status: str = "SUCCEEDED") -> dict[str, Any]:
    return {
        "event": "qr.payment",
        "data": {
            "id": "qrpy_8182",
            "qr_id": qr_id,
            "reference_id": "order-3001",
            "status": status,
            "amount": 150000,
        },
    }


@pytest.fixture
async def store(app: FastAPI) -> SqlAlchemyOrderStatusStore:
    store: SqlAlchemyOrderStatusStore = app.state.order_store
    await store.create_order("order-3001", Decimal("150000"))
    return store


def test_callback_token_must_match() -> None:
    settings = XenditSettings(callback_token=SecretStr("expected"))

    verify_xendit_callback_token(settings, "expected")
    with pytest.raises(PaymentSignatureError):
        verify_xendit_callback_token(settings, "forged")
    with pytest.raises(PaymentSignatureError):
        verify_xendit_callback_token(settings, None)


def test_callback_token_unconfigured_is_a_configuration_error() -> None:
    with pytest.raises(PaymentConfigurationError):
        verify_xendit_callback_token(
            XenditSettings(callback_token=None), "anything"
        )


@pytest.mark.parametrize(
    ("overrides", "expected"),
    [
        ({}, PaymentStatus.PAID),
        ({"received_amount": 50000}, PaymentStatus.PENDING),
        ({"received_amount": None, "status": "INACTIVE"}, PaymentStatus.EXPIRED),
    ],
)
def test_virtual_account_callback_is_paid_once_funded(
    overrides: dict[str, Any], expected: PaymentStatus
) -> None:
    notification = parse_xendit_notification(_va_callback(**overrides))

    assert notification.method is PaymentMethod.VIRTUAL_ACCOUNT
    assert notification.payment_id == "va_9"
    assert notification.reference == "order-3001"
    assert notification.status is expected


def test_wrapped_callbacks_are_unwrapped() -> None:
    qris = parse_xendit_notification(_qr_callback("qr_7"))
    ewallet = parse_xendit_notification(
        {
            "event": "ewallet.capture",
            "data": {
                "id": "ewc_3",
                "reference_id": "order-3001",
                "channel_code": "ID_OVO",
                "status": "FAILED",
            },
        }
    )

    assert (qris.method, qris.payment_id, qris.status) == (
        PaymentMethod.QRIS,
        "qr_7",
        PaymentStatus.PAID,
    )
    assert qris.raw_status == "SUCCEEDED"
    assert (ewallet.method, ewallet.payment_id, ewallet.status) == (
        PaymentMethod.EWALLET,
        "ewc_3",
        PaymentStatus.FAILED,
    )


@pytest.mark.parametrize(
    "payload",
    [
        {"event": "invoice.paid", "data": {"id": "inv_1", "status": "PAID"}},
        {"event": "qr.payment", "data": {"status": "SUCCEEDED"}},
    ],
)
def test_unusable_callbacks_are_rejected(payload: dict[str, Any]) -> None:
    with pytest.raises(PaymentValidationError):
        parse_xendit_notification(payload)


@pytest.mark.asyncio
async def test_qris_callback_confirms_order_and_stops_polling(
    async_client: AsyncClient,
    store: SqlAlchemyOrderStatusStore,
    provider_api: FakeProviderAPI,
) -> None:
    created = await async_client.post(
        "/api/v1/payments",
        json={
            "order_id": "order-3001",
            "amount": "150000",
            "method": "QRIS",
            "customer_name": "Siti Rahma",
        },
    )
    payment_id = created.json()["payment_id"]

    response = await async_client.post(
        WEBHOOK_URL, json=_qr_callback(payment_id), headers=HEADERS
    )
    repeated = await async_client.post(
        WEBHOOK_URL, json=_qr_callback(payment_id), headers=HEADERS
    )

    assert response.status_code == 202, response.text
    assert response.json() == {
        "status": "accepted",
        "payment_id": payment_id,
        "order_id": "order-3001",
        "payment_status": "PAID",
        "applied": True,
    }
    assert repeated.status_code == 202
    assert repeated.json()["applied"] is False

    polling = await async_client.get(f"/api/v1/payments/{payment_id}/polling")
    assert polling.json()["is_polling"] is False
    order = await store.get_order("order-3001")
    assert order is not None
    assert order.status is OrderStatus.PAYMENT_CONFIRMED


@pytest.mark.asyncio
async def test_virtual_account_callback_resolves_order_by_reference(
    async_client: AsyncClient, store: SqlAlchemyOrderStatusStore
) -> None:
    response = await async_client.post(
        WEBHOOK_URL, json=_va_callback(), headers=HEADERS
    )

    assert response.status_code == 202, response.text
    assert response.json()["applied"] is True
    order = await store.get_order("order-3001")
    assert order is not None
    assert order.payment_id == "va_9"
    assert order.payment_method is PaymentMethod.VIRTUAL_ACCOUNT
    assert order.status is OrderStatus.PAYMENT_CONFIRMED


@pytest.mark.asyncio
async def test_pending_callback_is_acknowledged_without_effect(
    async_client: AsyncClient, store: SqlAlchemyOrderStatusStore
) -> None:
    response = await async_client.post(
        WEBHOOK_URL, json=_va_callback(received_amount=0), headers=HEADERS
    )

    assert response.status_code == 202
    assert response.json()["payment_status"] == "PENDING"
    assert response.json()["applied"] is False
    order = await store.get_order("order-3001")
    assert order is not None
    assert order.status is OrderStatus.WAITING_PAYMENT


@pytest.mark.asyncio
async def test_callback_with_wrong_token_is_rejected(
    async_client: AsyncClient, store: SqlAlchemyOrderStatusStore
) -> None:
    response = await async_client.post(
        WEBHOOK_URL, json=_va_callback(), headers={"x-callback-token": "forged"}
    )

    assert response.status_code == 400
    order = await store.get_order("order-3001")
    assert order is not None
    assert order.payment_id is None


@pytest.mark.asyncio
async def test_malformed_callback_is_bad_request(async_client: AsyncClient) -> None:
    response = await async_client.post(
        WEBHOOK_URL,
        content=b"not json",
        headers={**HEADERS, "content-type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid webhook payload"


@pytest.mark.asyncio
async def test_callback_for_unknown_order_is_not_found(
    async_client: AsyncClient,
) -> None:
    response = await async_client.post(
        WEBHOOK_URL, json=_va_callback(external_id="order-missing"), headers=HEADERS
    )

    assert response.status_code == 404
