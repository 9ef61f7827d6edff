from __future__ import annotations

import logging
import logging.config
from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock
from typing import Any

import structlog
import structlog.contextvars
import structlog.stdlib
from structlog.typing import Processor

from checkout.core.config import Environment, Settings
from checkout.core.constants import REQUEST_ID_CTX_KEY, SERVICE_NAME

_LOGGING_INITIALISED = False
_LOGGING_LOCK = Lock()

# Chatty client libraries that only matter at WARNING and above.
_QUIET_LOGGERS = ("httpx", "httpcore", "stripe", "aiosqlite")


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    if isinstance(resolved, str):
        return logging.INFO
    return int(resolved)


def _renderer(settings: Settings) -> Processor:
    if settings.environment is Environment.DEVELOPMENT:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def configure_logging(settings: Settings) -> None:
    """Route structlog and stdlib records through one renderer.

    Development gets the console renderer; every other environment emits
    one JSON object per line. Safe to call more than once.
    """

    global _LOGGING_INITIALISED
    if _LOGGING_INITIALISED:
        return

    with _LOGGING_LOCK:
        if _LOGGING_INITIALISED:
            return

        level = _resolve_level(settings.log_level)
        shared: list[Processor] = [
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
        ]
        renderer = _renderer(settings)

        structlog.configure(
            processors=[
                *shared,
                structlog.processors.dict_tracebacks,
                renderer,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        loggers: dict[str, dict[str, Any]] = {
            "": {"handlers": ["default"], "level": level, "propagate": True},
        }
        for name in _QUIET_LOGGERS:
            loggers[name] = {
                "handlers": ["default"],
                "level": max(level, logging.WARNING),
                "propagate": False,
            }

        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "structlog": {
                        "()": structlog.stdlib.ProcessorFormatter,
                        "foreign_pre_chain": shared,
                        "processors": [
                            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                            renderer,
                        ],
                    }
                },
                "handlers": {
                    "default": {
                        "class": "logging.StreamHandler",
                        "formatter": "structlog",
                        "level": level,
                    }
                },
                "loggers": loggers,
            }
        )

        structlog.contextvars.bind_contextvars(
            service=SERVICE_NAME, environment=settings.environment.value
        )
        _LOGGING_INITIALISED = True


def bind_request_context(request_id: str, **kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**{REQUEST_ID_CTX_KEY: request_id, **kwargs})


def clear_request_context() -> None:
    structlog.contextvars.unbind_contextvars(REQUEST_ID_CTX_KEY)


@contextmanager
def payment_log_context(
    *, payment_id: str, order_id: str, method: str
) -> Iterator[None]:
    """Tag every record emitted inside the block with the payment it concerns."""

    with structlog.contextvars.bound_contextvars(
        payment_id=payment_id, order_id=order_id, method=method
    ):
        yield
