from __future__ import annotations

from dataclasses import asdict

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status

from checkout.api.schemas.payments import (
    ManualCheckRequest,
    ManualCheckResponse,
    PaymentCreateRequest,
    PaymentIntentResponse,
    PendingPaymentResponse,
    PollingStatusResponse,
)
from checkout.orders.exceptions import OrderNotFoundError
from checkout.orders.store import SqlAlchemyOrderStatusStore
from checkout.payments.dependencies import (
    get_gateway_service,
    get_order_store,
    get_polling_service,
)
from checkout.payments.exceptions import (
    PaymentConfigurationError,
    PaymentGatewayError,
    PaymentValidationError,
)
from checkout.payments.polling import PaymentPollingService
from checkout.payments.service import PaymentGatewayService

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])
logger = structlog.get_logger(__name__)


@router.post(
    "",
    response_model=PaymentIntentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a payment intent for an order",
)
async def create_payment(
    payload: PaymentCreateRequest,
    gateway: PaymentGatewayService = Depends(get_gateway_service),
    polling: PaymentPollingService = Depends(get_polling_service),
    store: SqlAlchemyOrderStatusStore = Depends(get_order_store),
) -> PaymentIntentResponse:
    request, options = payload.to_domain()
    if await store.get_order(request.order_id) is None:
        raise HTTPException(
            status.HTTP_404_NOT_FOUND, detail=f"Order '{request.order_id}' not found"
        )

    try:
        intent = await gateway.create_payment(request, payload.provider, options)
    except PaymentValidationError as exc:
        raise HTTPException(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"field": exc.field, "message": str(exc)},
        ) from exc
    except PaymentConfigurationError as exc:
        raise HTTPException(
            status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc
    except PaymentGatewayError as exc:
        logger.warning(
            "payment_intent_failed",
            order_id=request.order_id,
            method=request.method.value,
            error=str(exc),
        )
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    try:
        await store.attach_payment(intent.order_id, intent.payment_id, intent.method)
    except OrderNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    if payload.start_polling:
        polling.start_polling(
            intent.payment_id, intent.method, intent.order_id, provider=intent.provider
        )

    return PaymentIntentResponse.model_validate(
        {**asdict(intent), "polling": polling.is_polling(intent.payment_id)}
    )


@router.post(
    "/{payment_id}/check",
    response_model=ManualCheckResponse,
    summary="Check a payment status now",
)
async def check_payment(
    payment_id: str,
    payload: ManualCheckRequest,
    polling: PaymentPollingService = Depends(get_polling_service),
) -> ManualCheckResponse:
    result = await polling.manual_payment_check(
        payment_id, payload.method, payload.order_id, provider=payload.provider
    )
    return ManualCheckResponse.model_validate(result)


@router.delete(
    "/{payment_id}/polling",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Stop background polling for a payment",
)
async def stop_polling(
    payment_id: str,
    polling: PaymentPollingService = Depends(get_polling_service),
) -> Response:
    polling.stop_polling(payment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/polling",
    response_model=list[PendingPaymentResponse],
    summary="List payments tracked by the polling scheduler",
)
async def list_pending_payments(
    polling: PaymentPollingService = Depends(get_polling_service),
) -> list[PendingPaymentResponse]:
    return [
        PendingPaymentResponse(
            payment_id=entry.payment_id,
            order_id=entry.order_id,
            method=entry.method,
            provider=entry.provider,
            started_at=entry.started_at,
            poll_interval=entry.poll_interval,
            max_polling_time=entry.max_polling_time,
            elapsed_seconds=round(polling.elapsed(entry), 3),
        )
        for entry in polling.get_pending_payments()
    ]


@router.get(
    "/{payment_id}/polling",
    response_model=PollingStatusResponse,
    summary="Whether a payment is being polled",
)
async def polling_status(
    payment_id: str,
    polling: PaymentPollingService = Depends(get_polling_service),
) -> PollingStatusResponse:
    return PollingStatusResponse(
        payment_id=payment_id, is_polling=polling.is_polling(payment_id)
    )
