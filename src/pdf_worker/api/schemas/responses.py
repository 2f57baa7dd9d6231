"""
Pydantic response schemas for API endpoints.

All API responses conform to these schemas for consistent output.
Field names follow the JSON keys the browser client already consumes
(``fileId``, ``outputFiles``), so aliases are used throughout.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pdf_worker.assembly.packager import PackageResult


class AssemblyResponse(BaseModel):
    """Result of a page processing request."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = Field(True, description="Whether the request succeeded")
    file_id: str = Field(alias="fileId", description="Download handle")
    file_name: str = Field(alias="fileName", description="Download file name")
    size: int = Field(description="Size of the stored artifact in bytes")
    pages: int = Field(description="Total pages across generated documents")
    output_files: int = Field(
        alias="outputFiles", description="Number of generated documents"
    )
    expires_at: str = Field(alias="expiresAt", description="ISO timestamp after which the download is gone")

    @classmethod
    def from_result(cls, result: PackageResult) -> "AssemblyResponse":
        """Build the response body for a packaged result."""
        return cls(
            file_id=result.handle,
            file_name=result.file_name,
            size=result.size_bytes,
            pages=result.page_count,
            output_files=result.document_count,
            expires_at=result.expires_at,
        )


class DeletePagesResponse(AssemblyResponse):
    """Result of a delete-pages request, with page accounting."""

    result_size: int = Field(alias="resultSize", description="Same as size")
    remaining_pages: int = Field(alias="remainingPages", description="Pages kept")
    total_original_pages: int = Field(
        alias="totalOriginalPages", description="Pages in the uploaded file"
    )

    @classmethod
    def from_delete(cls, result: PackageResult, total_original_pages: int) -> "DeletePagesResponse":
        base = AssemblyResponse.from_result(result).model_dump()
        return cls(
            **base,
            result_size=result.size_bytes,
            remaining_pages=result.page_count,
            total_original_pages=total_original_pages,
        )


class DeleteResponse(BaseModel):
    """Acknowledgement of a download handle deletion."""

    success: bool = Field(True, description="Always true; deletion is idempotent")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Overall health status")
    version: str = Field(description="API version")
    timestamp: str = Field(description="ISO timestamp of check")
    store: dict[str, Any] = Field(default_factory=dict, description="Artifact store statistics")
    jobs: dict[str, str] = Field(default_factory=dict, description="Background job status")
