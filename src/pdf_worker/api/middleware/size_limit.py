"""
Upload size guard.

Uploads are spooled to disk and parsed in memory, so bodies declaring
more than ``PW_MAX_REQUEST_SIZE`` bytes are refused before any of the
body is read.
"""

import logging
from typing import Awaitable, Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from pdf_worker.api.middleware.rate_limit import get_client_ip
from pdf_worker.config import DEFAULT_MAX_REQUEST_SIZE

logger = logging.getLogger(__name__)

_UNITS = (("GB", 1024**3), ("MB", 1024**2), ("KB", 1024))


def format_size(size_bytes: int) -> str:
    """Render a byte count with the largest unit it reaches, e.g. ``10.0 MB``."""
    for unit, divisor in _UNITS:
        if size_bytes >= divisor:
            return f"{size_bytes / divisor:.1f} {unit}"
    return f"{size_bytes} bytes"


def declared_length(request: Request) -> int | None:
    """The request's Content-Length, or None when absent or malformed."""
    raw = request.headers.get("content-length")
    if not raw or not raw.strip().isdigit():
        return None
    return int(raw)


class SizeLimitMiddleware(BaseHTTPMiddleware):
    """Returns 413 ``payload_too_large`` for oversized declared bodies."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        max_request_size: int = DEFAULT_MAX_REQUEST_SIZE,
        skip_paths: frozenset[str] = frozenset({"/health", "/docs", "/redoc", "/openapi.json"}),
    ) -> None:
        super().__init__(app)
        self.max_request_size = max_request_size
        self._skip_paths = skip_paths
        logger.info(f"Maximum upload size {format_size(max_request_size)}")

    def _reject(self, request: Request, size: int) -> JSONResponse:
        logger.warning(
            f"Refused {format_size(size)} upload to {request.url.path}",
            extra={
                "client_ip": get_client_ip(request),
                "content_length": size,
                "max_request_size": self.max_request_size,
            },
        )
        return JSONResponse(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            content={
                "error": {
                    "type": "payload_too_large",
                    "message": "Upload exceeds the maximum allowed size",
                    "detail": {
                        "size": format_size(size),
                        "max_size": format_size(self.max_request_size),
                    },
                }
            },
        )

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if request.url.path not in self._skip_paths:
            size = declared_length(request)
            if size is not None and size > self.max_request_size:
                return self._reject(request, size)
        return await call_next(request)
