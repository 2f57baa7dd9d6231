"""
PDF Worker REST API.

FastAPI application exposing the page processing endpoints and the
artifact download surface.
"""

from pdf_worker.api.app import create_app

__all__ = ["create_app"]
