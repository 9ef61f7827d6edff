from __future__ import annotations

import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from checkout.core.constants import REQUEST_ID_HEADER
from checkout.core.logging import bind_request_context, clear_request_context


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and log its outcome.

    The id comes from ``X-Request-ID`` when the caller sends one, is bound
    into the structlog context for everything the request triggers
    (including the payment intents and manual checks it starts) and is
    echoed back on the response.
    """

    def __init__(self, app: ASGIApp, header_name: str = REQUEST_ID_HEADER) -> None:
        super().__init__(app)
        self._header_name = header_name
        self._logger = structlog.get_logger("checkout.request")

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(self._header_name) or uuid.uuid4().hex
        request.state.request_id = request_id
        bind_request_context(request_id)
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            self._logger.exception(
                "request_failed",
                method=request.method,
                path=request.url.path,
                duration_ms=_elapsed_ms(started),
            )
            raise
        else:
            self._logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=_elapsed_ms(started),
            )
        finally:
            clear_request_context()

        response.headers[self._header_name] = request_id
        return response


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)
