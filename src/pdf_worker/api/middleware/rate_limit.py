"""
Per-client rate limiting for the worker API.

Two tiers, both keyed by client IP:

- ``PW_RATE_LIMIT`` counts every request under ``/api/``
- ``PW_UPLOAD_RATE_LIMIT`` additionally counts POSTs to processing
  routes, since each one parses and rewrites whole documents

Limits are written ``"<count>/<period>"`` with period ``second``,
``minute``, ``hour`` or ``day``; a bare count means per second.
"""

import asyncio
import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

_PERIODS = {"second": 1, "minute": 60, "hour": 3600, "day": 86400}


@dataclass(frozen=True)
class RateLimit:
    """A parsed limit: ``requests`` per ``window_seconds``."""

    requests: int
    window_seconds: int
    text: str


FALLBACK_RATE_LIMIT = RateLimit(100, 60, "100/minute")


def parse_rate_limit(text: str) -> RateLimit:
    """
    Parse ``"<count>/<period>"``.

    Malformed strings are logged and replaced by 100/minute rather than
    disabling the limit.
    """
    count_part, _, period = text.strip().partition("/")
    period = period.strip().lower() or "second"
    try:
        count = int(count_part)
    except ValueError:
        count = 0
    if count < 1 or period not in _PERIODS:
        logger.warning(f"Invalid rate limit {text!r}, using {FALLBACK_RATE_LIMIT.text}")
        return FALLBACK_RATE_LIMIT
    return RateLimit(count, _PERIODS[period], f"{count}/{period}")


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int = 0

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class ClientWindows:
    """
    Sliding-window request log per client.

    Clients with nothing left in their window are evicted at most once
    per window length.
    """

    def __init__(self, limit: RateLimit, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self._clock = clock
        self._log: dict[str, deque[float]] = {}
        self._lock = asyncio.Lock()
        self._next_eviction = clock() + limit.window_seconds

    @property
    def tracked_clients(self) -> int:
        return len(self._log)

    def _evict_idle(self, now: float) -> None:
        horizon = now - self.limit.window_seconds
        idle = [client for client, log in self._log.items() if not log or log[-1] <= horizon]
        for client in idle:
            del self._log[client]
        self._next_eviction = now + self.limit.window_seconds

    async def hit(self, client: str) -> RateDecision:
        """Record a request from ``client`` if it fits in the window."""
        async with self._lock:
            now = self._clock()
            if now >= self._next_eviction:
                self._evict_idle(now)
            log = self._log.get(client, deque())
            horizon = now - self.limit.window_seconds
            while log and log[0] <= horizon:
                log.popleft()

            if len(log) >= self.limit.requests:
                self._log[client] = log
                wait = log[0] + self.limit.window_seconds - now
                return RateDecision(
                    allowed=False,
                    limit=self.limit.requests,
                    remaining=0,
                    retry_after=max(1, math.ceil(wait)),
                )

            log.append(now)
            self._log[client] = log
            return RateDecision(
                allowed=True,
                limit=self.limit.requests,
                remaining=self.limit.requests - len(log),
            )


def get_client_ip(request: Request) -> str:
    """Client address, honouring proxy headers set by the front door."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if request.client:
        return request.client.host
    return "127.0.0.1"


def rate_limited_response(limit: RateLimit, decision: RateDecision) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "error": {
                "type": "rate_limit_exceeded",
                "message": f"Rate limit exceeded: {limit.text}",
                "detail": f"Retry in {decision.retry_after} seconds.",
            }
        },
        headers=decision.headers(),
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Applies the general and upload tiers to ``limited_prefix`` paths.

    Downloads and deletes are only counted against the general tier.
    The general tier's headers are copied onto successful responses.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        rate_limit: str = FALLBACK_RATE_LIMIT.text,
        upload_rate_limit: str | None = None,
        limited_prefix: str = "/api/",
        upload_exempt_prefixes: tuple[str, ...] = ("/api/download",),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(app)
        self._limited_prefix = limited_prefix
        self._upload_exempt_prefixes = upload_exempt_prefixes
        self._general = ClientWindows(parse_rate_limit(rate_limit), clock)
        self._uploads = (
            ClientWindows(parse_rate_limit(upload_rate_limit), clock)
            if upload_rate_limit
            else None
        )
        logger.info(
            f"Rate limits: {self._general.limit.text} general, "
            f"{self._uploads.limit.text if self._uploads else 'none'} for uploads"
        )

    def _counts_as_upload(self, request: Request) -> bool:
        return request.method == "POST" and not request.url.path.startswith(
            self._upload_exempt_prefixes
        )

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if not request.url.path.startswith(self._limited_prefix):
            return await call_next(request)

        client = get_client_ip(request)
        tiers = [self._general]
        if self._uploads is not None and self._counts_as_upload(request):
            tiers.append(self._uploads)

        decisions = []
        for windows in tiers:
            decision = await windows.hit(client)
            if not decision.allowed:
                logger.info(
                    f"Rate limited {client} on {request.url.path}",
                    extra={"client_ip": client, "limit": windows.limit.text},
                )
                return rate_limited_response(windows.limit, decision)
            decisions.append(decision)

        response = await call_next(request)
        response.headers.update(decisions[0].headers())
        return response
