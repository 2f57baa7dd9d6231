"""
API request/response schemas.

Pydantic models for API serialization.
"""

from pdf_worker.api.schemas.responses import AssemblyResponse, DeleteResponse, HealthResponse

__all__ = [
    "AssemblyResponse",
    "DeleteResponse",
    "HealthResponse",
]
