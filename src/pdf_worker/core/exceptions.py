"""
PDF Worker Exception Hierarchy.

Defines the error taxonomy used by the artifact store and the page
assembly engine. Every error carries a stable ``code`` and an HTTP
``status_code`` so the request boundary can render it without a
lookup table.
"""

from typing import Any


class PdfWorkerError(Exception):
    """
    Base exception for all PDF Worker errors.

    All custom exceptions inherit from this class, allowing
    generic catch blocks and consistent error rendering.
    """

    code: str = "pdf_worker_error"
    status_code: int = 500

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        """
        Initialize a PdfWorkerError.

        Args:
            message: Human-readable error message
            details: Optional structured data for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation with details."""
        base = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{base} ({details_str})"
        return base

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "type": self.code,
            "message": self.message,
            "detail": self.details or None,
        }


class PlanValidationError(PdfWorkerError):
    """
    Raised when an instruction list or request is malformed.

    Covers missing or unparseable instructions, empty plans and
    instructions that reference a source index with no uploaded bytes.
    Raised before any page work is performed.
    """

    code = "validation_error"
    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        fields: dict[str, str] | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if fields:
            details["fields"] = fields
        super().__init__(message, details=details)
        self.fields = fields or {}


class SourceLoadError(PdfWorkerError):
    """
    Raised when a referenced source document cannot be parsed.

    Reasons are ``invalid`` (corrupt or not a PDF), ``encrypted``
    (password protected) and ``empty`` (zero pages).
    """

    code = "source_load_error"
    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        source_index: int,
        reason: str,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        details["source_index"] = source_index
        details["reason"] = reason
        super().__init__(message, details=details)
        self.source_index = source_index
        self.reason = reason


class PageIndexOutOfRangeError(PdfWorkerError):
    """Raised when an instruction requests a page outside ``[0, page_count)``."""

    code = "page_index_out_of_range"
    status_code = 400

    def __init__(
        self,
        *,
        source_index: int,
        original_page_index: int,
        page_count: int,
    ):
        super().__init__(
            f"Page index {original_page_index} is out of range for source "
            f"{source_index} with {page_count} page(s)",
            details={
                "source_index": source_index,
                "original_page_index": original_page_index,
                "page_count": page_count,
            },
        )
        self.source_index = source_index
        self.original_page_index = original_page_index
        self.page_count = page_count


class ArtifactNotFoundError(PdfWorkerError):
    """Raised when an artifact handle is unknown, deleted or expired."""

    code = "not_found"
    status_code = 404

    def __init__(self, handle: str):
        super().__init__("File not found or expired", details={"handle": handle})
        self.handle = handle


class CapacityError(PdfWorkerError):
    """Raised when a plan exceeds the configured maximum total page count."""

    code = "capacity_exceeded"
    status_code = 413

    def __init__(self, *, requested_pages: int, max_pages: int):
        super().__init__(
            f"Plan requests {requested_pages} pages, the limit is {max_pages}",
            details={"requested_pages": requested_pages, "max_pages": max_pages},
        )
        self.requested_pages = requested_pages
        self.max_pages = max_pages


class FatalIOError(PdfWorkerError):
    """
    Raised when the underlying storage cannot be written or read.

    Not recoverable locally; rendered to clients as a generic
    internal error.
    """

    code = "internal_error"
    status_code = 500


class ConfigurationError(PdfWorkerError):
    """Raised when worker settings are inconsistent."""

    code = "configuration_error"
    status_code = 500
