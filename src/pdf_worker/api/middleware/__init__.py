"""Request middleware: size and rate limits, access logging, CORS."""

from pdf_worker.api.middleware.cors import add_cors_middleware
from pdf_worker.api.middleware.logging import RequestLoggingMiddleware
from pdf_worker.api.middleware.rate_limit import (
    ClientWindows,
    RateLimit,
    RateLimitMiddleware,
    get_client_ip,
    parse_rate_limit,
)
from pdf_worker.api.middleware.size_limit import SizeLimitMiddleware, format_size

__all__ = [
    "add_cors_middleware",
    "RequestLoggingMiddleware",
    "ClientWindows",
    "RateLimit",
    "RateLimitMiddleware",
    "get_client_ip",
    "parse_rate_limit",
    "SizeLimitMiddleware",
    "format_size",
]
