from __future__ import annotations

from decimal import Decimal

import pytest

from checkout.core.config import DatabaseSettings, Environment, get_settings
from checkout.payments.enums import PaymentMethod, PaymentProvider


def test_settings_load_provider_credentials_from_environment() -> None:
    settings = get_settings()

    assert settings.environment is Environment.TEST
    assert settings.is_testing
    assert settings.debug
    assert settings.xendit.secret_key is not None
    assert settings.xendit.secret_key.get_secret_value() == "xnd_development_test"
    assert settings.database.dsn == "sqlite+aiosqlite:///:memory:"


def test_default_routing_and_polling_policies() -> None:
    payments = get_settings().payments

    assert payments.default_providers[PaymentMethod.VIRTUAL_ACCOUNT] is (
        PaymentProvider.FLIP
    )
    assert payments.default_providers[PaymentMethod.CARD] is PaymentProvider.STRIPE
    policy = payments.policy_for(PaymentMethod.VIRTUAL_ACCOUNT)
    assert policy.poll_interval_seconds == 30
    assert policy.max_polling_seconds == 24 * 60 * 60


def test_polling_override_keeps_other_defaults(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv(
        "PAYMENTS__POLLING",
        '{"QRIS": {"poll_interval_seconds": 5, "max_polling_seconds": 600}}',
    )
    get_settings.cache_clear()

    payments = get_settings().payments

    assert payments.policy_for(PaymentMethod.QRIS).poll_interval_seconds == 5
    assert payments.policy_for(PaymentMethod.EWALLET).poll_interval_seconds == 15


def test_fee_rules_follow_provider_and_method() -> None:
    payments = get_settings().payments

    rule = payments.fee_rule(PaymentProvider.FLIP, PaymentMethod.VIRTUAL_ACCOUNT)
    assert rule is not None
    assert rule.fixed == Decimal("2500")
    assert payments.fee_rule(PaymentProvider.STRIPE, PaymentMethod.QRIS) is None


def test_nested_database_url_overrides_components(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv(
        "DATABASE__URL", "postgresql+asyncpg://checkout:secret@db:5432/checkout"
    )
    get_settings.cache_clear()

    database = get_settings().database

    assert database.url == "postgresql+asyncpg://checkout:secret@db:5432/checkout"
    assert database.dsn == database.url


def test_database_dsn_is_assembled_without_url() -> None:
    database = DatabaseSettings.model_validate(
        {"host": "db", "user": "checkout", "password": "p@ss word", "name": "shop"}
    )

    assert database.dsn == "postgresql+asyncpg://checkout:p%40ss+word@db:5432/shop"


def test_xendit_callback_token_is_secret() -> None:
    xendit = get_settings().xendit

    assert xendit.callback_token is not None
    assert xendit.callback_token.get_secret_value() == "xnd-callback-test"
    assert "xnd-callback-test" not in repr(xendit)
