from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from checkout.payments.enums import (
    PaymentMethod,
    PaymentProvider,
    PaymentStatus,
    ProviderHealthStatus,
)
from checkout.payments.types import PaymentOptions, PaymentRequest


class PaymentCreateRequest(BaseModel):
    """Client payload for creating a payment intent for an order."""

    order_id: str = Field(..., max_length=64, description="Checkout order identifier")
    amount: Decimal = Field(..., description="Amount to charge in major units")
    method: PaymentMethod
    customer_name: str = Field(..., max_length=255)
    customer_email: str | None = Field(default=None, max_length=255)
    customer_phone: str | None = Field(
        default=None,
        max_length=32,
        description="Required for e-wallet payments",
    )
    description: str | None = Field(default=None, max_length=255)
    provider: PaymentProvider | None = Field(
        default=None,
        description="Optional provider override; defaults to the configured route",
    )
    channel_code: str | None = Field(
        default=None, description="E-wallet channel, e.g. ID_OVO or ID_DANA"
    )
    bank_code: str | None = Field(
        default=None, description="Virtual account bank, e.g. BCA or BNI"
    )
    success_redirect_url: str | None = None
    failure_redirect_url: str | None = None
    start_polling: bool = Field(
        default=True,
        description="Track the payment in the background until it resolves",
    )

    model_config = ConfigDict(str_strip_whitespace=True)

    def to_domain(self) -> tuple[PaymentRequest, PaymentOptions]:
        request = PaymentRequest(
            order_id=self.order_id,
            amount=self.amount,
            method=self.method,
            customer_name=self.customer_name,
            customer_email=self.customer_email,
            customer_phone=self.customer_phone,
            description=self.description,
        )
        options = PaymentOptions(
            channel_code=self.channel_code,
            bank_code=self.bank_code,
            success_redirect_url=self.success_redirect_url,
            failure_redirect_url=self.failure_redirect_url,
        )
        return request, options


class PaymentIntentResponse(BaseModel):
    """Provider-agnostic payment intent plus what the payer needs to pay it."""

    payment_id: str
    order_id: str
    provider: PaymentProvider
    method: PaymentMethod
    status: PaymentStatus
    amount: Decimal
    fee: Decimal
    expires_at: dt.datetime | None = None
    qr_string: str | None = None
    account_number: str | None = None
    bank_code: str | None = None
    redirect_url: str | None = None
    client_secret: str | None = None
    polling: bool = False

    model_config = ConfigDict(from_attributes=True)


class ManualCheckRequest(BaseModel):
    method: PaymentMethod
    order_id: str = Field(..., max_length=64)
    provider: PaymentProvider | None = None


class ManualCheckResponse(BaseModel):
    is_paid: bool
    status: PaymentStatus
    message: str

    model_config = ConfigDict(from_attributes=True)


class PendingPaymentResponse(BaseModel):
    """Snapshot of one payment tracked by the polling scheduler."""

    payment_id: str
    order_id: str
    method: PaymentMethod
    provider: PaymentProvider | None
    started_at: dt.datetime
    poll_interval: float
    max_polling_time: float
    elapsed_seconds: float


class PollingStatusResponse(BaseModel):
    payment_id: str
    is_polling: bool


class PaymentWebhookAck(BaseModel):
    """Acknowledgement returned to the provider for a processed callback."""

    status: Literal["accepted"] = "accepted"
    payment_id: str
    order_id: str
    payment_status: PaymentStatus
    applied: bool = Field(
        description="Whether this callback resolved the payment; repeats are no-ops"
    )


class ProviderHealthResponse(BaseModel):
    provider: PaymentProvider
    status: ProviderHealthStatus
    response_time_ms: float | None = None
    error: str | None = None

    model_config = ConfigDict(from_attributes=True)
