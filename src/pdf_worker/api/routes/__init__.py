"""
API route handlers.

This package contains all route definitions for the PDF Worker API.
"""

from pdf_worker.api.routes import download, health, pages

__all__ = [
    "download",
    "health",
    "pages",
]
