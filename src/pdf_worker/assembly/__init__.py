"""
PDF Worker Assembly Module.

Builds new documents from pages of uploaded sources: page instruction
models, the per-request source cache, the compiler, and the packager
that registers results with the artifact store.
"""

from .models import (
    AssemblyPlan,
    BlankPage,
    CopyPage,
    GeneratedDocument,
    Multiple,
    OutputBundle,
    OutputMode,
    PageInstruction,
    Single,
    build_plan,
    parse_instructions,
)
from .sources import SourceDocumentCache, SourceLoadFailure, load_pdf
from .compiler import PageInstructionCompiler, compose_rotation, rotate_page
from .packager import OutputPackager, PackageResult
from .plans import (
    PageGroup,
    extract_pages,
    from_page_instructions,
    merge_all,
    split_fixed,
    split_ranges,
)
from .service import AssemblyService

__all__ = [
    # Models
    "AssemblyPlan",
    "BlankPage",
    "CopyPage",
    "GeneratedDocument",
    "Multiple",
    "OutputBundle",
    "OutputMode",
    "PageInstruction",
    "Single",
    "build_plan",
    "parse_instructions",
    # Sources
    "SourceDocumentCache",
    "SourceLoadFailure",
    "load_pdf",
    # Compiler
    "PageInstructionCompiler",
    "compose_rotation",
    "rotate_page",
    # Packaging
    "OutputPackager",
    "PackageResult",
    # Plan builders
    "PageGroup",
    "extract_pages",
    "from_page_instructions",
    "merge_all",
    "split_fixed",
    "split_ranges",
    "AssemblyService",
]
