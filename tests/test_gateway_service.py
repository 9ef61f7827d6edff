from __future__ import annotations

import datetime as dt
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

import pytest

from checkout.core.config import PaymentsSettings
from checkout.payments.enums import (
    PaymentMethod,
    PaymentProvider,
    PaymentStatus,
    ProviderHealthStatus,
)
from checkout.payments.exceptions import (
    PaymentConfigurationError,
    PaymentValidationError,
    ProviderQueryError,
)
from checkout.payments.service import PaymentGatewayService
from checkout.payments.types import PaymentOptions, PaymentRequest

from .fakes import StubAdapter


def _request(
    method: PaymentMethod = PaymentMethod.QRIS, **overrides: Any
) -> PaymentRequest:
    values: dict[str, Any] = {
        "order_id": "order-1001",
        "amount": Decimal("150000"),
        "method": method,
        "customer_name": "Siti Rahma",
        "customer_email": "siti@example.com",
        "customer_phone": "+6281234567890",
    }
    values.update(overrides)
    return PaymentRequest(**values)


class RecordingCallback:
    def __init__(self) -> None:
        self.calls: list[tuple[str, bool, Mapping[str, Any]]] = []

    async def __call__(
        self, order_id: str, is_paid: bool, data: Mapping[str, Any]
    ) -> None:
        self.calls.append((order_id, is_paid, data))


@pytest.mark.asyncio
async def test_ewallet_without_phone_fails_before_adapter_call(
    gateway: PaymentGatewayService, adapters: dict[PaymentMethod, StubAdapter]
) -> None:
    request = _request(PaymentMethod.EWALLET, customer_phone="  ")

    with pytest.raises(PaymentValidationError) as exc_info:
        await gateway.create_payment(
            request, options=PaymentOptions(channel_code="ID_OVO")
        )

    assert exc_info.value.field == "customer_phone"
    assert adapters[PaymentMethod.EWALLET].created == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("overrides", "field"),
    [
        ({"order_id": ""}, "order_id"),
        ({"amount": Decimal("0")}, "amount"),
        ({"amount": Decimal("-10")}, "amount"),
        ({"customer_name": ""}, "customer_name"),
    ],
)
async def test_required_fields_are_validated_locally(
    gateway: PaymentGatewayService,
    adapters: dict[PaymentMethod, StubAdapter],
    overrides: dict[str, Any],
    field: str,
) -> None:
    with pytest.raises(PaymentValidationError) as exc_info:
        await gateway.create_payment(_request(**overrides))

    assert exc_info.value.field == field
    assert adapters[PaymentMethod.QRIS].created == []


@pytest.mark.asyncio
async def test_unknown_ewallet_channel_is_rejected(
    gateway: PaymentGatewayService,
) -> None:
    with pytest.raises(PaymentValidationError) as exc_info:
        await gateway.create_payment(
            _request(PaymentMethod.EWALLET),
            options=PaymentOptions(channel_code="ID_PAYPAL"),
        )

    assert exc_info.value.field == "channel_code"


@pytest.mark.asyncio
async def test_minimum_amount_is_enforced_per_adapter(
    payments_settings: PaymentsSettings,
) -> None:
    adapter = StubAdapter(method=PaymentMethod.QRIS, minimum_amount=Decimal("1000"))
    gateway = PaymentGatewayService(settings=payments_settings, adapters=[adapter])

    with pytest.raises(PaymentValidationError):
        await gateway.create_payment(_request(amount=Decimal("500")))

    assert adapter.created == []


@pytest.mark.asyncio
async def test_xendit_virtual_account_requires_bank_code(
    payments_settings: PaymentsSettings,
) -> None:
    adapter = StubAdapter(
        method=PaymentMethod.VIRTUAL_ACCOUNT, provider=PaymentProvider.XENDIT
    )
    gateway = PaymentGatewayService(settings=payments_settings, adapters=[adapter])

    with pytest.raises(PaymentValidationError) as exc_info:
        await gateway.create_payment(
            _request(PaymentMethod.VIRTUAL_ACCOUNT), provider=PaymentProvider.XENDIT
        )

    assert exc_info.value.field == "bank_code"


@pytest.mark.asyncio
async def test_create_payment_uses_default_provider_and_normalises_intent(
    gateway: PaymentGatewayService, adapters: dict[PaymentMethod, StubAdapter]
) -> None:
    adapter = adapters[PaymentMethod.QRIS]
    adapter.intent = {
        "status": "ACTIVE",
        "qr_string": "00020101021226",
        "expires_at": "2030-01-01T00:30:00.000Z",
    }

    intent = await gateway.create_payment(_request())

    assert intent.provider is PaymentProvider.XENDIT
    assert intent.payment_id == "qris-1"
    assert intent.order_id == "order-1001"
    assert intent.status is PaymentStatus.PENDING
    assert intent.raw_status == "ACTIVE"
    assert intent.qr_string == "00020101021226"
    assert intent.expires_at == dt.datetime(2030, 1, 1, 0, 30, tzinfo=dt.UTC)
    # 0.7% of 150000
    assert intent.fee == Decimal("1050")


@pytest.mark.asyncio
async def test_provider_hint_overrides_default_route(
    payments_settings: PaymentsSettings,
) -> None:
    flip = StubAdapter(
        method=PaymentMethod.VIRTUAL_ACCOUNT, provider=PaymentProvider.FLIP
    )
    xendit = StubAdapter(
        method=PaymentMethod.VIRTUAL_ACCOUNT, provider=PaymentProvider.XENDIT
    )
    gateway = PaymentGatewayService(settings=payments_settings, adapters=[flip, xendit])

    intent = await gateway.create_payment(
        _request(PaymentMethod.VIRTUAL_ACCOUNT),
        provider=PaymentProvider.XENDIT,
        options=PaymentOptions(bank_code="bca"),
    )

    assert intent.provider is PaymentProvider.XENDIT
    assert intent.fee == Decimal("4000")
    assert len(xendit.created) == 1
    assert flip.created == []


@pytest.mark.asyncio
async def test_unconfigured_provider_raises_configuration_error(
    payments_settings: PaymentsSettings,
) -> None:
    gateway = PaymentGatewayService(settings=payments_settings, adapters=[])

    with pytest.raises(PaymentConfigurationError):
        await gateway.create_payment(_request(PaymentMethod.CARD))


def test_fee_rounds_half_up(gateway: PaymentGatewayService) -> None:
    fee = gateway.calculate_fee(
        Decimal("100050"), PaymentProvider.STRIPE, PaymentMethod.CARD
    )
    # 2.9% of 100050 = 2901.45, plus 2000 fixed
    assert fee == Decimal("4901")


@pytest.mark.asyncio
async def test_check_invokes_callback_only_when_paid(
    gateway: PaymentGatewayService, adapters: dict[PaymentMethod, StubAdapter]
) -> None:
    adapters[PaymentMethod.QRIS].statuses = ["ACTIVE", "COMPLETED"]
    callback = RecordingCallback()

    pending = await gateway.check_and_update_payment(
        "qr_1", PaymentMethod.QRIS, "order-1001", callback
    )
    paid = await gateway.check_and_update_payment(
        "qr_1", PaymentMethod.QRIS, "order-1001", callback
    )

    assert not pending.is_paid
    assert pending.status is PaymentStatus.PENDING
    assert paid.is_paid
    assert paid.status is PaymentStatus.PAID
    assert callback.calls == [("order-1001", True, {"status": "COMPLETED"})]


@pytest.mark.asyncio
async def test_check_without_status_is_never_paid(
    gateway: PaymentGatewayService, adapters: dict[PaymentMethod, StubAdapter]
) -> None:
    adapters[PaymentMethod.QRIS].statuses = [None]
    callback = RecordingCallback()

    result = await gateway.check_and_update_payment(
        "qr_1", PaymentMethod.QRIS, "order-1001", callback
    )

    assert not result.is_paid
    assert result.status is PaymentStatus.PENDING
    assert callback.calls == []


@pytest.mark.asyncio
async def test_query_errors_propagate_without_callback(
    gateway: PaymentGatewayService, adapters: dict[PaymentMethod, StubAdapter]
) -> None:
    adapters[PaymentMethod.QRIS].statuses = [ProviderQueryError("timeout")]
    callback = RecordingCallback()

    with pytest.raises(ProviderQueryError):
        await gateway.check_and_update_payment(
            "qr_1", PaymentMethod.QRIS, "order-1001", callback
        )

    assert callback.calls == []


@pytest.mark.asyncio
async def test_provider_health_pings_each_provider_once(
    gateway: PaymentGatewayService, adapters: dict[PaymentMethod, StubAdapter]
) -> None:
    adapters[PaymentMethod.VIRTUAL_ACCOUNT].healthy = False

    reports = {report.provider: report for report in await gateway.provider_health()}

    assert set(reports) == {
        PaymentProvider.XENDIT,
        PaymentProvider.FLIP,
        PaymentProvider.STRIPE,
    }
    assert reports[PaymentProvider.XENDIT].status is ProviderHealthStatus.HEALTHY
    assert reports[PaymentProvider.XENDIT].response_time_ms is not None
    assert reports[PaymentProvider.FLIP].status is ProviderHealthStatus.DOWN
    assert reports[PaymentProvider.FLIP].error == "FLIP is unreachable"
    assert sum(adapter.pings for adapter in adapters.values()) == 3


@pytest.mark.asyncio
async def test_slow_provider_is_degraded() -> None:
    adapter = StubAdapter(
        method=PaymentMethod.CARD, provider=PaymentProvider.STRIPE, stalled=True
    )
    gateway = PaymentGatewayService(
        settings=PaymentsSettings(health_check_timeout_seconds=0.05),
        adapters=[adapter],
    )

    [report] = await gateway.provider_health()

    assert report.status is ProviderHealthStatus.DEGRADED
    assert report.error == "timed out"
    assert report.response_time_ms is None
