"""Tests for rate limiting middleware."""

from unittest.mock import MagicMock

import pytest
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from pdf_worker.api.app import create_app
from pdf_worker.api.middleware.rate_limit import (
    FALLBACK_RATE_LIMIT,
    ClientWindows,
    RateLimit,
    RateLimitMiddleware,
    get_client_ip,
    parse_rate_limit,
)


class ManualClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


async def passthrough(request):
    response = MagicMock()
    response.headers = {}
    return response


def make_request(path: str = "/api/merge-pdf", method: str = "GET", host: str = "10.0.0.1"):
    request = MagicMock()
    request.url.path = path
    request.method = method
    request.headers.get.return_value = None
    request.client.host = host
    return request


@pytest.fixture
def asgi_app():
    async def app(scope, receive, send):
        pass

    return app


class TestParseRateLimit:
    """Tests for parse_rate_limit."""

    def test_count_and_period(self):
        """Periods are converted to window lengths."""
        assert parse_rate_limit("30/minute") == RateLimit(30, 60, "30/minute")
        assert parse_rate_limit("1000/hour") == RateLimit(1000, 3600, "1000/hour")

    def test_case_and_whitespace(self):
        assert parse_rate_limit(" 10/SECOND ") == RateLimit(10, 1, "10/second")

    def test_bare_count_is_per_second(self):
        assert parse_rate_limit("10") == RateLimit(10, 1, "10/second")

    @pytest.mark.parametrize("value", ["invalid", "abc/second", "", "5/fortnight", "0/minute"])
    def test_invalid_falls_back(self, value):
        """Invalid strings fall back to 100 per minute instead of disabling the limit."""
        assert parse_rate_limit(value) == FALLBACK_RATE_LIMIT


class TestClientWindows:
    """Tests for ClientWindows."""

    @pytest.mark.asyncio
    async def test_remaining_counts_down(self):
        windows = ClientWindows(RateLimit(3, 60, "3/minute"), ManualClock())

        remaining = [(await windows.hit("a")).remaining for _ in range(3)]

        assert remaining == [2, 1, 0]

    @pytest.mark.asyncio
    async def test_denied_with_retry_after(self):
        """A denied hit reports when the oldest request leaves the window."""
        clock = ManualClock()
        windows = ClientWindows(RateLimit(2, 60, "2/minute"), clock)

        await windows.hit("a")
        clock.now += 20
        await windows.hit("a")
        clock.now += 10
        decision = await windows.hit("a")

        assert decision.allowed is False
        assert decision.retry_after == 30
        assert decision.headers()["Retry-After"] == "30"

    @pytest.mark.asyncio
    async def test_window_slides(self):
        """Requests older than the window stop counting."""
        clock = ManualClock()
        windows = ClientWindows(RateLimit(1, 60, "1/minute"), clock)

        await windows.hit("a")
        assert (await windows.hit("a")).allowed is False

        clock.now += 60
        assert (await windows.hit("a")).allowed is True

    @pytest.mark.asyncio
    async def test_denied_hits_not_counted(self):
        """Rejected requests do not extend the client's wait."""
        clock = ManualClock()
        windows = ClientWindows(RateLimit(1, 10, "1/10s"), clock)

        await windows.hit("a")
        for _ in range(5):
            clock.now += 1
            await windows.hit("a")
        clock.now += 5

        assert (await windows.hit("a")).allowed is True

    @pytest.mark.asyncio
    async def test_clients_independent(self):
        windows = ClientWindows(RateLimit(1, 60, "1/minute"), ManualClock())

        await windows.hit("a")

        assert (await windows.hit("a")).allowed is False
        assert (await windows.hit("b")).allowed is True

    @pytest.mark.asyncio
    async def test_idle_clients_evicted(self):
        """Clients with an empty window are dropped once a window has passed."""
        clock = ManualClock()
        windows = ClientWindows(RateLimit(5, 60, "5/minute"), clock)

        await windows.hit("a")
        clock.now += 61
        await windows.hit("b")

        assert windows.tracked_clients == 1

    @pytest.mark.asyncio
    async def test_active_clients_kept(self):
        clock = ManualClock()
        windows = ClientWindows(RateLimit(5, 60, "5/minute"), clock)

        await windows.hit("a")
        clock.now += 30
        await windows.hit("b")
        clock.now += 31
        await windows.hit("c")

        assert windows.tracked_clients == 2
        assert (await windows.hit("b")).remaining == 3


class TestGetClientIp:
    """Tests for get_client_ip."""

    def test_forwarded_for_first_hop(self):
        request = MagicMock()
        request.headers.get.side_effect = lambda k, d=None: {
            "x-forwarded-for": "203.0.113.1, 198.51.100.1",
        }.get(k, d)

        assert get_client_ip(request) == "203.0.113.1"

    def test_real_ip(self):
        request = MagicMock()
        request.headers.get.side_effect = lambda k, d=None: {"x-real-ip": "198.51.100.7"}.get(k, d)

        assert get_client_ip(request) == "198.51.100.7"

    def test_fallback(self):
        """Without headers or client the loopback address is used."""
        request = MagicMock()
        request.headers.get.return_value = None
        request.client = None

        assert get_client_ip(request) == "127.0.0.1"


class TestRateLimitMiddleware:
    """Tests for RateLimitMiddleware."""

    @pytest.mark.asyncio
    async def test_non_api_paths_unlimited(self, asgi_app):
        """Paths outside /api/ are never limited."""
        middleware = RateLimitMiddleware(asgi_app, rate_limit="1/minute")

        for _ in range(3):
            response = await middleware.dispatch(make_request("/health"), passthrough)
            assert not isinstance(response, JSONResponse)

    @pytest.mark.asyncio
    async def test_general_limit(self, asgi_app):
        """The general limit returns 429 rate_limit_exceeded once used up."""
        middleware = RateLimitMiddleware(asgi_app, rate_limit="2/minute", clock=ManualClock())

        for expected in ("1", "0"):
            response = await middleware.dispatch(make_request(), passthrough)
            assert response.headers["X-RateLimit-Remaining"] == expected

        limited = await middleware.dispatch(make_request(), passthrough)
        assert isinstance(limited, JSONResponse)
        assert limited.status_code == 429
        assert limited.headers["retry-after"] == "60"
        assert b"rate_limit_exceeded" in limited.body

    @pytest.mark.asyncio
    async def test_upload_limit_applies_to_posts(self, asgi_app):
        """POSTs to processing routes hit the stricter upload limit."""
        middleware = RateLimitMiddleware(
            asgi_app, rate_limit="100/minute", upload_rate_limit="1/minute"
        )

        first = await middleware.dispatch(make_request(method="POST"), passthrough)
        second = await middleware.dispatch(make_request(method="POST"), passthrough)

        assert not isinstance(first, JSONResponse)
        assert isinstance(second, JSONResponse)
        assert b"1/minute" in second.body

    @pytest.mark.asyncio
    async def test_downloads_skip_upload_limit(self, asgi_app):
        """Download requests only count against the general limit."""
        middleware = RateLimitMiddleware(
            asgi_app, rate_limit="100/minute", upload_rate_limit="1/minute"
        )

        for method in ("GET", "GET", "DELETE"):
            response = await middleware.dispatch(
                make_request("/api/download/abc", method=method), passthrough
            )
            assert not isinstance(response, JSONResponse)

    @pytest.mark.asyncio
    async def test_clients_independent(self, asgi_app):
        """Each client IP has its own budget."""
        middleware = RateLimitMiddleware(asgi_app, rate_limit="1/minute")

        await middleware.dispatch(make_request(host="10.1.1.1"), passthrough)
        limited = await middleware.dispatch(make_request(host="10.1.1.1"), passthrough)
        other = await middleware.dispatch(make_request(host="10.1.1.2"), passthrough)

        assert isinstance(limited, JSONResponse)
        assert not isinstance(other, JSONResponse)


class TestRateLimitIntegration:
    """Integration tests through the application."""

    def test_upload_limit_through_app(self, settings, make_pdf):
        """The app enforces PW_UPLOAD_RATE_LIMIT on processing routes."""
        settings.upload_rate_limit = "2/minute"
        data = make_pdf(pages=1)

        with TestClient(create_app(settings)) as client:
            statuses = [
                client.post(
                    "/api/merge-pdf", files=[("files", ("a.pdf", data, "application/pdf"))]
                ).status_code
                for _ in range(3)
            ]

        assert statuses == [200, 200, 429]
