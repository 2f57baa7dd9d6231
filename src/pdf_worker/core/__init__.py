"""
PDF Worker core module.

Exception hierarchy shared by the artifact store, the assembly engine
and the HTTP layer.
"""

from pdf_worker.core.exceptions import (
    ArtifactNotFoundError,
    CapacityError,
    ConfigurationError,
    FatalIOError,
    PageIndexOutOfRangeError,
    PdfWorkerError,
    PlanValidationError,
    SourceLoadError,
)

__all__ = [
    "PdfWorkerError",
    "PlanValidationError",
    "SourceLoadError",
    "PageIndexOutOfRangeError",
    "ArtifactNotFoundError",
    "CapacityError",
    "FatalIOError",
    "ConfigurationError",
]
