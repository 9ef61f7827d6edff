from __future__ import annotations

import json
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status

from checkout.api.schemas.payments import PaymentWebhookAck
from checkout.core.config import Settings
from checkout.orders.store import SqlAlchemyOrderStatusStore
from checkout.payments.dependencies import (
    get_app_settings,
    get_order_store,
    get_polling_service,
)
from checkout.payments.exceptions import (
    PaymentConfigurationError,
    PaymentSignatureError,
    PaymentValidationError,
)
from checkout.payments.polling import PaymentPollingService
from checkout.payments.webhooks import (
    CALLBACK_TOKEN_HEADER,
    ProviderNotification,
    parse_xendit_notification,
    verify_xendit_callback_token,
)

router = APIRouter(prefix="/api/v1/payments/webhooks", tags=["webhooks"])

logger = structlog.get_logger(__name__)


@router.post(
    "/xendit",
    response_model=PaymentWebhookAck,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Handle Xendit payment callbacks",
)
async def handle_xendit_webhook(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    polling: PaymentPollingService = Depends(get_polling_service),
    store: SqlAlchemyOrderStatusStore = Depends(get_order_store),
) -> PaymentWebhookAck:
    try:
        verify_xendit_callback_token(
            settings.xendit, request.headers.get(CALLBACK_TOKEN_HEADER)
        )
    except PaymentSignatureError as exc:
        logger.warning("xendit_webhook_token_invalid", error=str(exc))
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except PaymentConfigurationError as exc:
        logger.error("xendit_webhook_configuration_error", error=str(exc))
        raise HTTPException(
            status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc

    raw_body = await request.body()
    try:
        payload: Any = json.loads(raw_body.decode("utf-8")) if raw_body else {}
        if not isinstance(payload, dict):
            raise ValueError("payload must be a JSON object")
        notification = parse_xendit_notification(payload)
    except (ValueError, PaymentValidationError) as exc:
        logger.warning("xendit_webhook_payload_invalid", error=str(exc))
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload"
        ) from exc

    order_id = await _resolve_order_id(notification, polling, store)
    if order_id is None:
        logger.warning(
            "xendit_webhook_order_missing",
            payment_id=notification.payment_id,
            reference=notification.reference,
        )
        raise HTTPException(
            status.HTTP_404_NOT_FOUND,
            detail=f"No order for payment '{notification.payment_id}'",
        )

    try:
        applied = await polling.apply_notification(
            notification.payment_id,
            notification.method,
            order_id,
            notification.status,
            notification.data,
        )
    except Exception:
        logger.exception(
            "xendit_webhook_processing_failed",
            payment_id=notification.payment_id,
            order_id=order_id,
        )
        raise

    logger.info(
        "xendit_webhook_processed",
        payment_id=notification.payment_id,
        order_id=order_id,
        method=notification.method.value,
        raw_status=notification.raw_status,
        status=notification.status.value,
        applied=applied,
    )
    return PaymentWebhookAck(
        payment_id=notification.payment_id,
        order_id=order_id,
        payment_status=notification.status,
        applied=applied,
    )


async def _resolve_order_id(
    notification: ProviderNotification,
    polling: PaymentPollingService,
    store: SqlAlchemyOrderStatusStore,
) -> str | None:
    order = await store.get_order_by_payment(notification.payment_id)
    if order is not None:
        return order.id

    tracked = polling.get_pending_payment(notification.payment_id)
    if tracked is not None:
        return tracked.order_id

    if notification.reference is None:
        return None
    order = await store.get_order(notification.reference)
    if order is None or order.payment_id not in (None, notification.payment_id):
        return None
    await store.attach_payment(order.id, notification.payment_id, notification.method)
    return order.id
