from __future__ import annotations

import asyncio
import datetime as dt
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from checkout.core.config import PollingPolicy
from checkout.core.logging import payment_log_context
from checkout.observability.metrics import metrics_service

from .enums import (
    CheckSource,
    PaymentMethod,
    PaymentOutcome,
    PaymentProvider,
    PaymentStatus,
)
from .events import PaymentEvent, PaymentEventBus
from .exceptions import PaymentValidationError, ProviderQueryError
from .messages import Locale, status_message
from .service import PaymentGatewayService
from .status import TERMINAL_FAILURE_STATUSES
from .types import ConfirmationCallback, ManualCheckResult

__all__ = ["PaymentPollingService", "PendingPayment"]

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]

_OUTCOME_EVENTS = {
    PaymentOutcome.CONFIRMED: "payment_polling_confirmed",
    PaymentOutcome.FAILED: "payment_polling_failed",
    PaymentOutcome.TIMED_OUT: "payment_polling_timed_out",
}

# Confirmed payment ids remembered to suppress repeat confirmations.
CONFIRMED_HISTORY_SIZE = 4096


@dataclass(slots=True, eq=False)
class PendingPayment:
    """Registry record for one payment being polled.

    ``start_time`` comes from the scheduler's monotonic clock; ``started_at``
    is the wall-clock equivalent for display.
    """

    payment_id: str
    method: PaymentMethod
    order_id: str
    provider: PaymentProvider | None
    start_time: float
    max_polling_time: float
    poll_interval: float
    started_at: dt.datetime = field(default_factory=lambda: dt.datetime.now(dt.UTC))
    task: asyncio.Task[None] | None = field(default=None, repr=False)
    busy: bool = field(default=False, repr=False)
    # Set while the entry's own timer task is running a tick.
    timer_ticking: bool = field(default=False, repr=False)


class PaymentPollingService:
    """Background reconciliation of pending payments.

    Each tracked payment owns one asyncio task that sleeps ``poll_interval``
    between ticks, so ticks for a payment never overlap. The registry is only
    mutated from the event loop without awaiting in between the existence
    check and the removal, which makes "check, then remove" atomic: whichever
    path claims an entry first (timeout, terminal status, manual check or
    explicit stop) is the only one that reports its outcome.

    Outcomes are published on the ``PaymentEventBus``; order persistence is a
    subscriber, not a dependency of the scheduler.
    """

    def __init__(
        self,
        *,
        gateway: PaymentGatewayService,
        events: PaymentEventBus,
        policies: Mapping[PaymentMethod, PollingPolicy],
        locale: Locale = "id",
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._gateway = gateway
        self._events = events
        self._policies = dict(policies)
        self._locale = locale
        self._clock = clock
        self._sleep = sleep
        self._payments: dict[str, PendingPayment] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._confirmed: OrderedDict[str, None] = OrderedDict()
        self._logger = structlog.get_logger(__name__)

    def start_polling(
        self,
        payment_id: str,
        method: PaymentMethod,
        order_id: str,
        *,
        provider: PaymentProvider | None = None,
        poll_interval: float | None = None,
        max_polling_time: float | None = None,
    ) -> PendingPayment:
        """Track ``payment_id`` and arm its timer, replacing any previous timer."""

        policy = self._policies.get(method)
        if policy is None:
            raise PaymentValidationError(
                f"No polling policy configured for {method.value}", field="method"
            )
        interval = (
            poll_interval if poll_interval is not None else policy.poll_interval_seconds
        )
        horizon = (
            max_polling_time
            if max_polling_time is not None
            else policy.max_polling_seconds
        )
        if interval <= 0:
            raise PaymentValidationError(
                "poll_interval must be positive", field="poll_interval"
            )
        if horizon <= 0:
            raise PaymentValidationError(
                "max_polling_time must be positive", field="max_polling_time"
            )

        if payment_id in self._payments:
            self._stop(self._payments[payment_id], reason="restarted")

        entry = PendingPayment(
            payment_id=payment_id,
            method=method,
            order_id=order_id,
            provider=provider,
            start_time=self._clock(),
            max_polling_time=horizon,
            poll_interval=interval,
        )
        self._payments[payment_id] = entry
        entry.task = self._spawn(entry)
        metrics_service.update_active_polling(len(self._payments))
        self._logger.info(
            "payment_polling_started",
            payment_id=payment_id,
            order_id=order_id,
            method=method.value,
            poll_interval=interval,
            max_polling_time=horizon,
        )
        return entry

    def stop_polling(self, payment_id: str) -> bool:
        """Stop tracking ``payment_id``; unknown ids are a no-op."""

        entry = self._payments.get(payment_id)
        if entry is None:
            return False
        return self._stop(entry, reason="stopped")

    async def stop_all_polling(self) -> None:
        for entry in list(self._payments.values()):
            self._stop(entry, reason="shutdown")
        tasks = list(self._tasks)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def get_pending_payments(self) -> list[PendingPayment]:
        return list(self._payments.values())

    def get_pending_payment(self, payment_id: str) -> PendingPayment | None:
        return self._payments.get(payment_id)

    def is_polling(self, payment_id: str) -> bool:
        return payment_id in self._payments

    def elapsed(self, entry: PendingPayment) -> float:
        return self._clock() - entry.start_time

    async def tick(self, payment_id: str) -> None:
        """Run one tick for ``payment_id``.

        A no-op when the payment is no longer tracked or a tick for it is
        already in flight.
        """

        entry = self._payments.get(payment_id)
        if entry is None or entry.busy:
            return
        await self._tick(entry)

    async def manual_payment_check(
        self,
        payment_id: str,
        method: PaymentMethod,
        order_id: str,
        *,
        provider: PaymentProvider | None = None,
    ) -> ManualCheckResult:
        """Check a payment once, outside the timer cadence.

        Shares the confirmation path with background ticks, so a racing tick
        and manual check publish at most one outcome per tracked entry.
        Failures never raise; they come back as an ``ERROR`` result.
        """

        tracked = self._payments.get(payment_id)
        if provider is None and tracked is not None:
            provider = tracked.provider
        log = self._logger.bind(
            payment_id=payment_id, order_id=order_id, method=method.value
        )

        try:
            result = await self._gateway.check_and_update_payment(
                payment_id,
                method,
                order_id,
                self._confirmation_handler(
                    payment_id,
                    method,
                    CheckSource.MANUAL,
                    lambda: self._payments.get(payment_id),
                ),
                provider=provider,
            )
            if result.status in TERMINAL_FAILURE_STATUSES:
                await self._resolve(
                    payment_id=payment_id,
                    method=method,
                    order_id=order_id,
                    outcome=PaymentOutcome.FAILED,
                    status=result.status,
                    source=CheckSource.MANUAL,
                    data=result.data,
                    # A vanished entry was resolved by another path meanwhile.
                    entry=self._payments.get(payment_id, tracked),
                )
        except ProviderQueryError as exc:
            log.warning("payment_manual_check_failed", error=str(exc))
            return self._manual_result(PaymentStatus.ERROR)
        except Exception:
            log.exception("payment_manual_check_failed")
            return self._manual_result(PaymentStatus.ERROR)

        return self._manual_result(result.status)

    async def apply_notification(
        self,
        payment_id: str,
        method: PaymentMethod,
        order_id: str,
        status: PaymentStatus,
        data: Mapping[str, Any],
    ) -> bool:
        """Resolve a payment from a provider callback instead of a query.

        Goes through the same claim as ticks and manual checks, so a callback
        racing the timer still yields one outcome. Returns whether an event
        was published.
        """

        if status is PaymentStatus.PAID:
            outcome = PaymentOutcome.CONFIRMED
        elif status in TERMINAL_FAILURE_STATUSES:
            outcome = PaymentOutcome.FAILED
        else:
            return False
        return await self._resolve(
            payment_id=payment_id,
            method=method,
            order_id=order_id,
            outcome=outcome,
            status=status,
            source=CheckSource.WEBHOOK,
            data=data,
            entry=self._payments.get(payment_id),
        )

    def _manual_result(self, status: PaymentStatus) -> ManualCheckResult:
        return ManualCheckResult(
            is_paid=status is PaymentStatus.PAID,
            status=status,
            message=status_message(status, self._locale),
        )

    def _spawn(self, entry: PendingPayment) -> asyncio.Task[None]:
        task = asyncio.create_task(
            self._run(entry), name=f"payment-polling:{entry.payment_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, entry: PendingPayment) -> None:
        with payment_log_context(
            payment_id=entry.payment_id,
            order_id=entry.order_id,
            method=entry.method.value,
        ):
            while True:
                await self._sleep(entry.poll_interval)
                if self._payments.get(entry.payment_id) is not entry:
                    return
                if entry.busy:
                    continue
                entry.timer_ticking = True
                try:
                    await self._tick(entry)
                finally:
                    entry.timer_ticking = False
                if self._payments.get(entry.payment_id) is not entry:
                    return

    async def _tick(self, entry: PendingPayment) -> None:
        entry.busy = True
        method = entry.method.value
        log = self._logger.bind(
            payment_id=entry.payment_id, order_id=entry.order_id, method=method
        )
        try:
            elapsed = self._clock() - entry.start_time
            if elapsed > entry.max_polling_time:
                metrics_service.record_poll_tick(method, "timed_out")
                await self._resolve(
                    payment_id=entry.payment_id,
                    method=entry.method,
                    order_id=entry.order_id,
                    outcome=PaymentOutcome.TIMED_OUT,
                    status=PaymentStatus.EXPIRED,
                    source=CheckSource.POLLING,
                    data={"elapsed_seconds": elapsed},
                    entry=entry,
                )
                return

            result = await self._gateway.check_and_update_payment(
                entry.payment_id,
                entry.method,
                entry.order_id,
                self._confirmation_handler(
                    entry.payment_id, entry.method, CheckSource.POLLING, lambda: entry
                ),
                provider=entry.provider,
            )
            if result.is_paid:
                metrics_service.record_poll_tick(method, "paid")
            elif result.status in TERMINAL_FAILURE_STATUSES:
                metrics_service.record_poll_tick(method, "failed")
                await self._resolve(
                    payment_id=entry.payment_id,
                    method=entry.method,
                    order_id=entry.order_id,
                    outcome=PaymentOutcome.FAILED,
                    status=result.status,
                    source=CheckSource.POLLING,
                    data=result.data,
                    entry=entry,
                )
            else:
                metrics_service.record_poll_tick(method, "pending")
        except ProviderQueryError as exc:
            metrics_service.record_poll_tick(method, "query_error")
            log.warning("payment_poll_query_failed", error=str(exc))
        except Exception:
            metrics_service.record_poll_tick(method, "error")
            log.exception("payment_poll_tick_failed")
        finally:
            entry.busy = False

    def _confirmation_handler(
        self,
        payment_id: str,
        method: PaymentMethod,
        source: CheckSource,
        current_entry: Callable[[], PendingPayment | None],
    ) -> ConfirmationCallback:
        # The entry is looked up when the confirmation arrives; polling may
        # have been restarted while the provider query was in flight.
        async def _on_confirmed(
            order_id: str, is_paid: bool, data: Mapping[str, Any]
        ) -> None:
            if not is_paid:
                return
            await self._resolve(
                payment_id=payment_id,
                method=method,
                order_id=order_id,
                outcome=PaymentOutcome.CONFIRMED,
                status=PaymentStatus.PAID,
                source=source,
                data=data,
                entry=current_entry(),
            )

        return _on_confirmed

    async def _resolve(
        self,
        *,
        payment_id: str,
        method: PaymentMethod,
        order_id: str,
        outcome: PaymentOutcome,
        status: PaymentStatus,
        source: CheckSource,
        data: Mapping[str, Any],
        entry: PendingPayment | None,
    ) -> bool:
        """Claim the registry entry, if any, and publish ``outcome``.

        Returns ``False`` when another path already claimed the entry or the
        payment was confirmed before. When a subscriber fails the entry is
        put back so the next tick retries.
        """

        confirming = outcome is PaymentOutcome.CONFIRMED
        if payment_id in self._confirmed:
            if entry is not None:
                self._stop(entry, reason="already_confirmed")
            self._logger.debug(
                "payment_already_confirmed",
                payment_id=payment_id,
                order_id=order_id,
                outcome=outcome.value,
                source=source.value,
            )
            return False
        if entry is not None and not self._claim(entry):
            return False
        if confirming:
            self._remember_confirmed(payment_id)

        event = PaymentEvent(
            outcome=outcome,
            payment_id=payment_id,
            order_id=order_id,
            method=method,
            status=status,
            source=source,
            data=data,
        )
        try:
            await self._events.publish(event)
        except Exception:
            if confirming:
                self._confirmed.pop(payment_id, None)
            if entry is not None:
                self._restore(entry)
            raise

        elapsed = None
        if entry is not None:
            self._cancel_timer(entry)
            elapsed = round(self._clock() - entry.start_time, 3)
        metrics_service.record_polling_outcome(method.value, outcome.value)
        log_method = (
            self._logger.info
            if outcome is PaymentOutcome.CONFIRMED
            else self._logger.warning
        )
        log_method(
            _OUTCOME_EVENTS[outcome],
            payment_id=payment_id,
            order_id=order_id,
            method=method.value,
            status=status.value,
            source=source.value,
            elapsed_seconds=elapsed,
        )
        return True

    def _claim(self, entry: PendingPayment) -> bool:
        if self._payments.get(entry.payment_id) is not entry:
            return False
        del self._payments[entry.payment_id]
        metrics_service.update_active_polling(len(self._payments))
        return True

    def _restore(self, entry: PendingPayment) -> None:
        if entry.payment_id in self._payments:
            return
        self._payments[entry.payment_id] = entry
        if entry.task is None or entry.task.done():
            entry.task = self._spawn(entry)
        metrics_service.update_active_polling(len(self._payments))

    def _stop(self, entry: PendingPayment, *, reason: str) -> bool:
        if not self._claim(entry):
            return False
        self._cancel_timer(entry)
        self._logger.info(
            "payment_polling_stopped",
            payment_id=entry.payment_id,
            order_id=entry.order_id,
            method=entry.method.value,
            reason=reason,
        )
        return True

    def _remember_confirmed(self, payment_id: str) -> None:
        self._confirmed[payment_id] = None
        self._confirmed.move_to_end(payment_id)
        while len(self._confirmed) > CONFIRMED_HISTORY_SIZE:
            self._confirmed.popitem(last=False)

    @staticmethod
    def _cancel_timer(entry: PendingPayment) -> None:
        # A tick running inside the timer task finishes on its own and the
        # loop exits right after it; a sleeping timer is always cancelled.
        task = entry.task
        if task is None or task.done() or task is asyncio.current_task():
            return
        if entry.timer_ticking:
            return
        task.cancel()
