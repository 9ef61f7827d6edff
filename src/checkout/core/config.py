from __future__ import annotations

from decimal import Decimal
from enum import StrEnum
from functools import lru_cache
from typing import Literal
from urllib.parse import quote_plus

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    computed_field,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from checkout.core.constants import (
    DEFAULT_CURRENCY,
    DEFAULT_ENV_FILE,
    SECRETS_DIR,
    SERVICE_NAME,
)
from checkout.payments.enums import PaymentMethod, PaymentProvider


class Environment(StrEnum):
    """Deployment environments supported by the service."""

    DEVELOPMENT = "development"
    TEST = "test"
    STAGING = "staging"
    PRODUCTION = "production"


class DatabaseSettings(BaseModel):
    """Database connectivity configuration."""

    model_config = ConfigDict(extra="ignore")

    url: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "url", "DATABASE__URL", "database__url", "DATABASE_URL", "database_url"
        ),
    )
    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: SecretStr = SecretStr("postgres")
    name: str = SERVICE_NAME
    echo: bool = False
    pool_size: int = Field(default=5, ge=1)
    max_overflow: int = Field(default=10, ge=0)

    @computed_field
    @property
    def dsn(self) -> str:
        """Assemble the SQLAlchemy async DSN."""
        if self.url is not None:
            return self.url

        password = quote_plus(self.password.get_secret_value())
        return (
            f"postgresql+asyncpg://{self.user}:{password}"
            f"@{self.host}:{self.port}/{self.name}"
        )


class PollingPolicy(BaseModel):
    """Cadence and give-up horizon for background status polling."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    poll_interval_seconds: float = Field(..., gt=0)
    max_polling_seconds: float = Field(..., gt=0)


def _default_polling_policies() -> dict[PaymentMethod, PollingPolicy]:
    return {
        PaymentMethod.QRIS: PollingPolicy(
            poll_interval_seconds=10, max_polling_seconds=30 * 60
        ),
        PaymentMethod.VIRTUAL_ACCOUNT: PollingPolicy(
            poll_interval_seconds=30, max_polling_seconds=24 * 60 * 60
        ),
        PaymentMethod.EWALLET: PollingPolicy(
            poll_interval_seconds=15, max_polling_seconds=60 * 60
        ),
        PaymentMethod.CARD: PollingPolicy(
            poll_interval_seconds=10, max_polling_seconds=30 * 60
        ),
    }


class FeeRule(BaseModel):
    """Percentage plus fixed fee charged by a provider for one method."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    percentage: Decimal = Field(default=Decimal("0"), ge=Decimal("0"))
    fixed: Decimal = Field(default=Decimal("0"), ge=Decimal("0"))


def _default_fees() -> dict[PaymentProvider, dict[PaymentMethod, FeeRule]]:
    return {
        PaymentProvider.XENDIT: {
            PaymentMethod.QRIS: FeeRule(percentage=Decimal("0.7")),
            PaymentMethod.EWALLET: FeeRule(percentage=Decimal("2")),
            PaymentMethod.VIRTUAL_ACCOUNT: FeeRule(fixed=Decimal("4000")),
            PaymentMethod.CARD: FeeRule(
                percentage=Decimal("2.9"), fixed=Decimal("2000")
            ),
        },
        PaymentProvider.FLIP: {
            PaymentMethod.QRIS: FeeRule(percentage=Decimal("0.7")),
            PaymentMethod.VIRTUAL_ACCOUNT: FeeRule(fixed=Decimal("2500")),
            PaymentMethod.EWALLET: FeeRule(percentage=Decimal("0.3")),
        },
        PaymentProvider.STRIPE: {
            PaymentMethod.CARD: FeeRule(
                percentage=Decimal("2.9"), fixed=Decimal("2000")
            ),
        },
    }


class PaymentsSettings(BaseModel):
    """High-level configuration for payment routing and polling."""

    model_config = ConfigDict(extra="ignore")

    currency: str = Field(default=DEFAULT_CURRENCY, min_length=3, max_length=3)
    locale: Literal["id", "en"] = "id"
    default_providers: dict[PaymentMethod, PaymentProvider] = Field(
        default_factory=lambda: {
            PaymentMethod.QRIS: PaymentProvider.XENDIT,
            PaymentMethod.EWALLET: PaymentProvider.XENDIT,
            PaymentMethod.VIRTUAL_ACCOUNT: PaymentProvider.FLIP,
            PaymentMethod.CARD: PaymentProvider.STRIPE,
        }
    )
    polling: dict[PaymentMethod, PollingPolicy] = Field(
        default_factory=_default_polling_policies
    )
    intent_expiry_minutes: dict[PaymentMethod, int] = Field(
        default_factory=lambda: {
            PaymentMethod.QRIS: 30,
            PaymentMethod.EWALLET: 60,
            PaymentMethod.VIRTUAL_ACCOUNT: 24 * 60,
            PaymentMethod.CARD: 30,
        }
    )
    ewallet_channels: list[str] = Field(
        default_factory=lambda: [
            "ID_DANA",
            "ID_OVO",
            "ID_LINKAJA",
            "ID_SHOPEEPAY",
            "ID_GOJEK",
        ]
    )
    va_banks: list[str] = Field(
        default_factory=lambda: ["BNI", "BCA", "BRI", "MANDIRI", "PERMATA", "CIMB"]
    )
    fees: dict[PaymentProvider, dict[PaymentMethod, FeeRule]] = Field(
        default_factory=_default_fees
    )
    health_check_timeout_seconds: float = Field(default=5.0, gt=0)
    success_redirect_url: str = "https://checkout.local/payment/success"
    failure_redirect_url: str = "https://checkout.local/payment/failure"

    @model_validator(mode="after")
    def _normalise(self) -> PaymentsSettings:
        self.currency = self.currency.upper()
        defaults = _default_polling_policies()
        defaults.update(self.polling)
        self.polling = defaults
        self.ewallet_channels = [channel.upper() for channel in self.ewallet_channels]
        self.va_banks = [bank.upper() for bank in self.va_banks]
        return self

    def policy_for(self, method: PaymentMethod) -> PollingPolicy:
        return self.polling[method]

    def fee_rule(
        self, provider: PaymentProvider, method: PaymentMethod
    ) -> FeeRule | None:
        return self.fees.get(provider, {}).get(method)


class XenditSettings(BaseSettings):
    """Credentials for the Xendit payment provider."""

    model_config = SettingsConfigDict(
        env_prefix="XENDIT__",
        extra="ignore",
        case_sensitive=False,
    )

    secret_key: SecretStr | None = None
    base_url: str = "https://api.xendit.co"
    callback_url: str | None = None
    callback_token: SecretStr | None = None
    timeout_seconds: float = Field(default=30.0, gt=0)


class FlipSettings(BaseSettings):
    """Credentials for the Flip payment provider."""

    model_config = SettingsConfigDict(
        env_prefix="FLIP__",
        extra="ignore",
        case_sensitive=False,
    )

    secret_key: SecretStr | None = None
    base_url: str = "https://bigflip.id/api"
    timeout_seconds: float = Field(default=30.0, gt=0)


class StripeSettings(BaseSettings):
    """Credentials for the Stripe card provider."""

    model_config = SettingsConfigDict(
        env_prefix="STRIPE__",
        extra="ignore",
        case_sensitive=False,
    )

    api_key: SecretStr | None = None


class PrometheusSettings(BaseSettings):
    """Prometheus metrics configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PROMETHEUS__",
        extra="ignore",
        case_sensitive=False,
    )

    enabled: bool = True
    metrics_path: str = "/metrics"
    should_group_status_codes: bool = True
    should_ignore_untemplated: bool = True
    should_respect_env_var: bool = True
    excluded_handlers: list[str] = Field(
        default_factory=lambda: ["/metrics", "/health", "/docs"]
    )


class Settings(BaseSettings):
    """Application settings loaded from the environment or secret stores."""

    model_config = SettingsConfigDict(
        env_file=DEFAULT_ENV_FILE,
        env_nested_delimiter="__",
        secrets_dir=SECRETS_DIR,
        extra="ignore",
        validate_default=True,
        case_sensitive=False,
    )

    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    log_level: str = "INFO"

    project_name: str = "Checkout Service"
    project_description: str = "Payment orchestration and order reconciliation"
    project_version: str = "0.1.0"
    docs_url: str | None = "/docs"
    openapi_url: str = "/openapi.json"

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    payments: PaymentsSettings = Field(default_factory=PaymentsSettings)
    xendit: XenditSettings = Field(default_factory=XenditSettings)
    flip: FlipSettings = Field(default_factory=FlipSettings)
    stripe: StripeSettings = Field(default_factory=StripeSettings)
    prometheus: PrometheusSettings = Field(default_factory=PrometheusSettings)

    @model_validator(mode="after")
    def _normalize(self) -> Settings:
        self.log_level = self.log_level.upper()

        if self.environment in {Environment.DEVELOPMENT, Environment.TEST}:
            self.debug = True

        return self

    @computed_field
    @property
    def is_testing(self) -> bool:
        return self.environment is Environment.TEST

    @computed_field
    @property
    def is_production(self) -> bool:
        return self.environment is Environment.PRODUCTION


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached instance of the application settings."""

    return Settings()
