from __future__ import annotations

import asyncio
import datetime as dt
import time
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

import structlog

from checkout.core.config import PaymentsSettings
from checkout.observability.metrics import PAYMENT_INTENTS_TOTAL

from .enums import (
    PaymentMethod,
    PaymentProvider,
    PaymentStatus,
    ProviderHealthStatus,
)
from .exceptions import (
    PaymentConfigurationError,
    PaymentGatewayError,
    PaymentValidationError,
)
from .gateway import ProviderAdapter
from .status import normalize_status
from .types import (
    ConfirmationCallback,
    PaymentCheckResult,
    PaymentIntent,
    PaymentOptions,
    PaymentRequest,
    ProviderHealth,
    ProviderIntentResponse,
)


class PaymentGatewayService:
    """Dispatches intent creation and status queries to provider adapters.

    The service is stateless per call and never writes order state itself:
    confirmation is delegated to the ``on_confirmed`` callback supplied by the
    caller.
    """

    def __init__(
        self,
        *,
        settings: PaymentsSettings,
        adapters: Iterable[ProviderAdapter],
    ) -> None:
        self._settings = settings
        self._adapters: dict[tuple[PaymentProvider, PaymentMethod], ProviderAdapter] = {
            (adapter.provider, adapter.method): adapter for adapter in adapters
        }
        self._logger = structlog.get_logger(__name__)

    @property
    def adapters(self) -> tuple[ProviderAdapter, ...]:
        return tuple(self._adapters.values())

    def resolve_provider(
        self, method: PaymentMethod, provider: PaymentProvider | None = None
    ) -> PaymentProvider:
        if provider is not None:
            return provider
        default = self._settings.default_providers.get(method)
        if default is None:
            raise PaymentConfigurationError(
                f"No default provider configured for {method.value}"
            )
        return default

    def get_adapter(
        self, method: PaymentMethod, provider: PaymentProvider | None = None
    ) -> ProviderAdapter:
        resolved = self.resolve_provider(method, provider)
        adapter = self._adapters.get((resolved, method))
        if adapter is None:
            raise PaymentConfigurationError(
                f"{resolved.value} integration for {method.value} is not configured"
            )
        return adapter

    async def create_payment(
        self,
        request: PaymentRequest,
        provider: PaymentProvider | None = None,
        options: PaymentOptions | None = None,
    ) -> PaymentIntent:
        options = options or PaymentOptions()
        self._validate(request, options)
        adapter = self.get_adapter(request.method, provider)
        if (
            adapter.provider is PaymentProvider.XENDIT
            and request.method is PaymentMethod.VIRTUAL_ACCOUNT
            and not options.bank_code
        ):
            raise PaymentValidationError(
                "bank_code is required for Xendit virtual accounts", field="bank_code"
            )
        minimum = adapter.minimum_amount
        if minimum is not None and request.amount < minimum:
            raise PaymentValidationError(
                f"{request.method.value} payments via {adapter.provider.value} "
                f"require at least {minimum}",
                field="amount",
            )

        try:
            response = await adapter.create_intent(request, options)
        except Exception:
            PAYMENT_INTENTS_TOTAL.labels(
                provider=adapter.provider.value,
                method=request.method.value,
                status="error",
            ).inc()
            raise

        intent = self._build_intent(request, adapter, response)
        PAYMENT_INTENTS_TOTAL.labels(
            provider=adapter.provider.value,
            method=request.method.value,
            status=intent.status.value,
        ).inc()
        self._logger.info(
            "payment_intent_created",
            payment_id=intent.payment_id,
            order_id=request.order_id,
            provider=adapter.provider.value,
            method=request.method.value,
            status=intent.status.value,
            amount=str(intent.amount),
        )
        return intent

    async def check_and_update_payment(
        self,
        payment_id: str,
        method: PaymentMethod,
        order_id: str,
        on_confirmed: ConfirmationCallback | None = None,
        *,
        provider: PaymentProvider | None = None,
    ) -> PaymentCheckResult:
        """Query the provider once and confirm the order when it reports paid.

        ``ProviderQueryError`` propagates: a failed query is never a payment
        outcome. ``on_confirmed`` runs on every paid observation, so its
        consumer must be idempotent.
        """

        adapter = self.get_adapter(method, provider)
        response = await adapter.query_status(payment_id)
        status = normalize_status(response["status"])
        result = PaymentCheckResult(
            payment_id=payment_id,
            status=status,
            raw_status=response["status"],
            is_paid=status is PaymentStatus.PAID,
            data=response["raw"],
        )
        self._logger.debug(
            "payment_status_checked",
            payment_id=payment_id,
            order_id=order_id,
            provider=adapter.provider.value,
            method=method.value,
            raw_status=response["status"],
            status=status.value,
        )

        if result.is_paid and on_confirmed is not None:
            await on_confirmed(order_id, True, result.data)
        return result

    async def provider_health(self) -> list[ProviderHealth]:
        """Ping every configured provider once, concurrently.

        A provider that answers is ``healthy``; one that does not answer
        within ``health_check_timeout_seconds`` is ``degraded``; one that
        fails outright is ``down``.
        """

        targets: dict[PaymentProvider, ProviderAdapter] = {}
        for adapter in self._adapters.values():
            targets.setdefault(adapter.provider, adapter)
        checks = (self._check_health(adapter) for adapter in targets.values())
        return list(await asyncio.gather(*checks))

    async def _check_health(self, adapter: ProviderAdapter) -> ProviderHealth:
        started = time.perf_counter()
        try:
            await asyncio.wait_for(
                adapter.ping(), self._settings.health_check_timeout_seconds
            )
        except TimeoutError:
            self._logger.warning(
                "payment_provider_slow", provider=adapter.provider.value
            )
            return ProviderHealth(
                provider=adapter.provider,
                status=ProviderHealthStatus.DEGRADED,
                error="timed out",
            )
        except PaymentGatewayError as exc:
            self._logger.warning(
                "payment_provider_down",
                provider=adapter.provider.value,
                error=str(exc),
            )
            return ProviderHealth(
                provider=adapter.provider,
                status=ProviderHealthStatus.DOWN,
                error=str(exc),
            )
        return ProviderHealth(
            provider=adapter.provider,
            status=ProviderHealthStatus.HEALTHY,
            response_time_ms=round((time.perf_counter() - started) * 1000, 3),
        )

    def calculate_fee(
        self, amount: Decimal, provider: PaymentProvider, method: PaymentMethod
    ) -> Decimal:
        rule = self._settings.fee_rule(provider, method)
        if rule is None:
            return Decimal("0")
        fee = amount * rule.percentage / Decimal("100") + rule.fixed
        return fee.quantize(Decimal("1"), rounding=ROUND_HALF_UP)

    def _validate(self, request: PaymentRequest, options: PaymentOptions) -> None:
        if not request.order_id or not request.order_id.strip():
            raise PaymentValidationError("order_id is required", field="order_id")
        if request.amount is None or request.amount <= 0:
            raise PaymentValidationError("amount must be positive", field="amount")
        if not request.customer_name or not request.customer_name.strip():
            raise PaymentValidationError(
                "customer_name is required", field="customer_name"
            )

        if request.method is PaymentMethod.EWALLET:
            if not request.customer_phone or not request.customer_phone.strip():
                raise PaymentValidationError(
                    "customer_phone is required for e-wallet payments",
                    field="customer_phone",
                )
            channel = (options.channel_code or "").upper()
            if channel not in self._settings.ewallet_channels:
                raise PaymentValidationError(
                    f"Unsupported e-wallet channel '{options.channel_code}'",
                    field="channel_code",
                )
        if request.method is PaymentMethod.VIRTUAL_ACCOUNT and options.bank_code:
            if options.bank_code.upper() not in self._settings.va_banks:
                raise PaymentValidationError(
                    f"Unsupported bank '{options.bank_code}'", field="bank_code"
                )

    def _build_intent(
        self,
        request: PaymentRequest,
        adapter: ProviderAdapter,
        response: ProviderIntentResponse,
    ) -> PaymentIntent:
        amount = response["amount"]
        return PaymentIntent(
            payment_id=response["id"],
            order_id=request.order_id,
            provider=adapter.provider,
            method=request.method,
            status=normalize_status(response["status"]),
            raw_status=response["status"],
            amount=amount,
            fee=self.calculate_fee(amount, adapter.provider, request.method),
            expires_at=_parse_timestamp(response.get("expires_at")),
            qr_string=response.get("qr_string"),
            account_number=response.get("account_number"),
            bank_code=response.get("bank_code"),
            redirect_url=response.get("redirect_url"),
            client_secret=response.get("client_secret"),
            provider_data=dict(response["raw"]),
        )


def _parse_timestamp(value: str | None) -> dt.datetime | None:
    if not value:
        return None
    try:
        parsed = dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=dt.UTC)
    return parsed
