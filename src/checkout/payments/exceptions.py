from __future__ import annotations


class PaymentError(RuntimeError):
    """Base class for payment domain errors."""


class PaymentValidationError(PaymentError):
    """Raised before any provider call when a payment request is malformed."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class PaymentConfigurationError(PaymentError):
    """Raised when no provider is configured for a requested method."""


class PaymentGatewayError(PaymentError):
    """Raised when the upstream payment provider rejects a request."""


class ProviderQueryError(PaymentGatewayError):
    """Raised when a provider status query cannot be completed or parsed.

    Never a payment outcome: the polling scheduler logs it and retries on the
    next tick.
    """


class PaymentSignatureError(PaymentError):
    """Raised when a provider callback cannot be authenticated."""
