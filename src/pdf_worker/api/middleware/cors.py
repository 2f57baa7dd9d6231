"""
CORS for the browser front end.

Only the configured origins may call the worker. Downloads need
``Content-Disposition`` exposed for the browser to pick up the file
name, and the rate limit headers let the client back off.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

WORKER_METHODS = ["GET", "POST", "DELETE", "OPTIONS"]
WORKER_REQUEST_HEADERS = ["content-type", "x-request-id"]
WORKER_EXPOSED_HEADERS = [
    "Content-Disposition",
    "X-Request-ID",
    "X-RateLimit-Limit",
    "X-RateLimit-Remaining",
    "Retry-After",
]


def add_cors_middleware(
    app: FastAPI,
    *,
    allow_origins: list[str],
    max_age: int = 86400,
) -> None:
    """Allow ``allow_origins`` to upload to and download from the worker."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=False,
        allow_methods=WORKER_METHODS,
        allow_headers=WORKER_REQUEST_HEADERS,
        expose_headers=WORKER_EXPOSED_HEADERS,
        max_age=max_age,
    )
