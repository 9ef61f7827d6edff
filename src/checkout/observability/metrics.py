"""Prometheus counters for payment intents and the polling scheduler."""

from __future__ import annotations

from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge
from prometheus_fastapi_instrumentator import Instrumentator

if TYPE_CHECKING:
    from fastapi import FastAPI
    from prometheus_client.registry import CollectorRegistry

    from checkout.core.config import PrometheusSettings

PAYMENT_INTENTS_TOTAL = Counter(
    "payment_intents_total",
    "Total number of payment intents requested from providers",
    ["provider", "method", "status"],
)

PAYMENT_POLL_TICKS_TOTAL = Counter(
    "payment_poll_ticks_total",
    "Total number of polling ticks by result",
    ["method", "result"],  # pending, paid, failed, query_error, error, timed_out
)

PAYMENT_POLLING_OUTCOMES_TOTAL = Counter(
    "payment_polling_outcomes_total",
    "Total number of resolved payments by outcome",
    ["method", "outcome"],
)

PAYMENT_POLLING_ACTIVE = Gauge(
    "payment_polling_active",
    "Number of payments currently tracked by the polling scheduler",
)


class MetricsService:
    """Owns the HTTP instrumentator and the payment counters it sits beside."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry: CollectorRegistry | None = registry
        self._instrumentator: Instrumentator | None = None

    def create_instrumentator(self, settings: PrometheusSettings) -> Instrumentator:
        return Instrumentator(
            should_group_status_codes=settings.should_group_status_codes,
            should_ignore_untemplated=settings.should_ignore_untemplated,
            should_respect_env_var=settings.should_respect_env_var,
            excluded_handlers=settings.excluded_handlers,
            env_var_name="ENABLE_METRICS",
            registry=self.registry,
        )

    def instrument_app(self, app: FastAPI, settings: PrometheusSettings) -> None:
        if not settings.enabled:
            return

        self._instrumentator = self.create_instrumentator(settings)
        self._instrumentator.instrument(app)
        self._instrumentator.expose(
            app,
            should_gzip=True,
            endpoint=settings.metrics_path,
            include_in_schema=False,
        )

    def record_poll_tick(self, method: str, result: str) -> None:
        PAYMENT_POLL_TICKS_TOTAL.labels(method=method, result=result).inc()

    def record_polling_outcome(self, method: str, outcome: str) -> None:
        PAYMENT_POLLING_OUTCOMES_TOTAL.labels(method=method, outcome=outcome).inc()

    def update_active_polling(self, count: int) -> None:
        PAYMENT_POLLING_ACTIVE.set(count)


metrics_service: MetricsService = MetricsService()
