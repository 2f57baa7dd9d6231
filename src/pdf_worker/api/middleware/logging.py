"""
Access logging for worker requests.

One log line per finished request, carrying the upload size and the
time spent assembling. Requests without an ``X-Request-ID`` get one so
that spooled uploads, compile logs and the response can be correlated.
"""

import logging
import secrets
import time
from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from pdf_worker.api.middleware.rate_limit import get_client_ip
from pdf_worker.api.middleware.size_limit import declared_length

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request once it completes and tags the response."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        logger_instance: logging.Logger | None = None,
        skip_paths: frozenset[str] = frozenset({"/health"}),
    ) -> None:
        super().__init__(app)
        self._logger = logger_instance or logger
        self._skip_paths = skip_paths

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if request.url.path in self._skip_paths:
            return await call_next(request)

        request_id = request.headers.get("x-request-id") or secrets.token_hex(8)
        request.state.request_id = request_id
        fields = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "client_ip": get_client_ip(request),
            "upload_bytes": declared_length(request),
        }
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            fields["duration_ms"] = round((time.perf_counter() - started) * 1000, 2)
            self._logger.exception(
                f"{request.method} {request.url.path} raised", extra=fields
            )
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        fields.update(status_code=response.status_code, duration_ms=round(elapsed_ms, 2))
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        self._logger.log(
            level,
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"in {elapsed_ms:.0f}ms",
            extra=fields,
        )

        response.headers["X-Process-Time"] = f"{elapsed_ms:.2f}"
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
