from __future__ import annotations

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from checkout.orders.enums import OrderStatus
from checkout.payments.enums import PaymentMethod


class OrderResponse(BaseModel):
    id: str
    status: OrderStatus
    amount: Decimal
    payment_id: str | None = None
    payment_method: PaymentMethod | None = None
    confirmed_at: dt.datetime | None = None
    cancelled_at: dt.datetime | None = None
    cancel_reason: str | None = None

    model_config = ConfigDict(from_attributes=True)
