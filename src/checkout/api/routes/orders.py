from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from checkout.api.schemas.orders import OrderResponse
from checkout.orders.store import SqlAlchemyOrderStatusStore
from checkout.payments.dependencies import get_order_store

router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


@router.get("/{order_id}", response_model=OrderResponse, summary="Get an order")
async def get_order(
    order_id: str,
    store: SqlAlchemyOrderStatusStore = Depends(get_order_store),
) -> OrderResponse:
    order = await store.get_order(order_id)
    if order is None:
        raise HTTPException(
            status.HTTP_404_NOT_FOUND, detail=f"Order '{order_id}' not found"
        )
    return OrderResponse.model_validate(order)
