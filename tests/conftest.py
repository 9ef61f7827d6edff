from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from decimal import Decimal
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import checkout.orders.models  # noqa: F401 - register models with SQLAlchemy metadata
from checkout.app import create_app
from checkout.core.config import PaymentsSettings, get_settings
from checkout.db import session as db_session
from checkout.db.base import Base
from checkout.db.session import dispose_engine
from checkout.orders.store import SqlAlchemyOrderStatusStore
from checkout.orders.subscriber import OrderStatusSubscriber
from checkout.payments.enums import PaymentMethod
from checkout.payments.events import PaymentEventBus
from checkout.payments.polling import PaymentPollingService
from checkout.payments.service import PaymentGatewayService

from .fakes import (
    FakeClock,
    FakeProviderAPI,
    RecordingListener,
    SpyOrderStore,
    StubAdapter,
    idle_sleep,
)


XENDIT_CALLBACK_TOKEN = "xnd-callback-test"


@pytest.fixture(autouse=True)
def configure_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("XENDIT__SECRET_KEY", "xnd_development_test")
    monkeypatch.setenv("XENDIT__CALLBACK_TOKEN", XENDIT_CALLBACK_TOKEN)
    monkeypatch.setenv("FLIP__SECRET_KEY", "flip-test-secret")
    monkeypatch.setenv("STRIPE__API_KEY", "sk_test_checkout")
    monkeypatch.setenv("PAYMENTS__LOCALE", "id")

    get_settings.cache_clear()
    try:
        yield
    finally:
        get_settings.cache_clear()


@pytest_asyncio.fixture
async def session_factory(
    tmp_path: Path,
) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    db_path = tmp_path / "checkout-tests.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")

    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    db_session._ENGINE = engine
    db_session._SESSION_FACTORY = factory

    try:
        yield factory
    finally:
        await dispose_engine()


@pytest_asyncio.fixture
async def order_store(
    session_factory: async_sessionmaker[AsyncSession],
) -> SqlAlchemyOrderStatusStore:
    return SqlAlchemyOrderStatusStore(session_factory)


@pytest_asyncio.fixture
async def pending_order(order_store: SqlAlchemyOrderStatusStore) -> str:
    order = await order_store.create_order("order-1001", Decimal("150000"))
    return order.id


@pytest.fixture
def payments_settings() -> PaymentsSettings:
    return PaymentsSettings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def adapters() -> dict[PaymentMethod, StubAdapter]:
    return {
        method: StubAdapter(method=method, provider=provider)
        for method, provider in PaymentsSettings().default_providers.items()
    }


@pytest.fixture
def gateway(
    payments_settings: PaymentsSettings, adapters: dict[PaymentMethod, StubAdapter]
) -> PaymentGatewayService:
    return PaymentGatewayService(
        settings=payments_settings, adapters=adapters.values()
    )


@pytest.fixture
def listener(clock: FakeClock) -> RecordingListener:
    return RecordingListener(clock)


@pytest_asyncio.fixture
async def spy_store(order_store: SqlAlchemyOrderStatusStore) -> SpyOrderStore:
    return SpyOrderStore(order_store)


@pytest_asyncio.fixture
async def event_bus(
    spy_store: SpyOrderStore, listener: RecordingListener
) -> PaymentEventBus:
    return PaymentEventBus([OrderStatusSubscriber(spy_store), listener])


@pytest_asyncio.fixture
async def polling(
    gateway: PaymentGatewayService,
    event_bus: PaymentEventBus,
    payments_settings: PaymentsSettings,
    clock: FakeClock,
) -> AsyncIterator[PaymentPollingService]:
    """Scheduler whose timers never fire; tests call ``tick`` explicitly."""

    service = PaymentPollingService(
        gateway=gateway,
        events=event_bus,
        policies=payments_settings.polling,
        clock=clock,
        sleep=idle_sleep,
    )
    try:
        yield service
    finally:
        await service.stop_all_polling()


@pytest_asyncio.fixture
async def running_polling(
    gateway: PaymentGatewayService,
    event_bus: PaymentEventBus,
    payments_settings: PaymentsSettings,
    clock: FakeClock,
) -> AsyncIterator[PaymentPollingService]:
    """Scheduler whose timers advance the fake clock, so policies run instantly."""

    service = PaymentPollingService(
        gateway=gateway,
        events=event_bus,
        policies=payments_settings.polling,
        clock=clock,
        sleep=clock.sleep,
    )
    try:
        yield service
    finally:
        await service.stop_all_polling()


@pytest.fixture
def provider_api() -> FakeProviderAPI:
    return FakeProviderAPI()


@pytest_asyncio.fixture()
async def app(
    session_factory: async_sessionmaker[AsyncSession],
    provider_api: FakeProviderAPI,
) -> AsyncIterator[FastAPI]:
    application = create_app(transport=provider_api.transport())
    async with application.router.lifespan_context(application):
        yield application


@pytest_asyncio.fixture()
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://testserver"
    ) as http_client:
        yield http_client
