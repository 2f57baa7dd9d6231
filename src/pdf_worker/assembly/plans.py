"""
Plan builders for the page-oriented endpoints.

Each endpoint (merge, split, rotate, ...) is expressed as page
instructions so that all of them run through the same compiler.
"""

from pdf_worker.assembly.models import AssemblyPlan, CopyPage, PageInstruction, build_plan
from pdf_worker.core.exceptions import PlanValidationError

PageGroup = tuple[str, list[PageInstruction]]


def _copies(source_index: int, page_indices) -> list[PageInstruction]:
    return [CopyPage(source_index=source_index, original_page_index=i) for i in page_indices]


def merge_all(page_counts: dict[int, int]) -> list[PageInstruction]:
    """Copy every page of every source, sources in ascending index order."""
    instructions: list[PageInstruction] = []
    for source_index in sorted(page_counts):
        instructions.extend(_copies(source_index, range(page_counts[source_index])))
    return instructions


def split_ranges(total_pages: int, split_points: list[int], stem: str = "part") -> list[PageGroup]:
    """
    Split a document after each split point.

    Split points are 1-based page numbers; a point of 3 ends a part after
    page 3. Points beyond the document are clamped and empty parts are
    skipped.

    Raises:
        PlanValidationError: If no split points are given
    """
    if not split_points:
        raise PlanValidationError("No split ranges defined", fields={"ranges": "required"})

    try:
        points = sorted(int(p) for p in split_points)
    except (TypeError, ValueError) as e:
        raise PlanValidationError(
            "Split ranges must be integers", fields={"ranges": str(e)}
        ) from e

    groups: list[PageGroup] = []
    start = 0
    for point in [*points, total_pages]:
        end = min(point, total_pages)
        if start >= end:
            continue
        groups.append((f"{stem}-{len(groups) + 1}.pdf", _copies(0, range(start, end))))
        start = end
    return groups


def split_fixed(total_pages: int, size: int, stem: str = "part") -> list[PageGroup]:
    """
    Split a document into parts of ``size`` pages (the last may be shorter).

    Raises:
        PlanValidationError: If size is below 1
    """
    if size < 1:
        raise PlanValidationError("Invalid split size", fields={"size": "must be at least 1"})

    return [
        (f"{stem}-{n}.pdf", _copies(0, range(start, min(start + size, total_pages))))
        for n, start in enumerate(range(0, total_pages, size), start=1)
    ]


def extract_pages(
    pages: list[int],
    merge: bool,
    stem: str = "page",
) -> list[PageGroup]:
    """
    Extract selected pages, given as 1-based page numbers.

    With ``merge`` the pages form one document; otherwise each page is its
    own document named from its position in the selection, so repeated
    pages never collide.

    Raises:
        PlanValidationError: If no pages are selected or a value is not an integer
    """
    if not pages:
        raise PlanValidationError("No pages selected", fields={"pages": "required"})

    try:
        indices = [int(p) - 1 for p in pages]
    except (TypeError, ValueError) as e:
        raise PlanValidationError(
            "Page numbers must be integers", fields={"pages": str(e)}
        ) from e

    if merge:
        return [("extracted-pages.pdf", _copies(0, indices))]
    return [
        (f"{stem}-{position}.pdf", _copies(0, [index]))
        for position, index in enumerate(indices, start=1)
    ]


def from_page_instructions(raw, mode="merge") -> AssemblyPlan:
    """
    Build a plan for a single-source endpoint.

    Every instruction must be a page copy from source 0; blank pages
    belong to the organize endpoint only.

    Raises:
        PlanValidationError: If the list is malformed, empty, or holds a
            blank page or a foreign source index
    """
    plan = build_plan(raw, mode)
    for position, instruction in enumerate(plan.instructions):
        if not isinstance(instruction, CopyPage) or instruction.source_index != 0:
            raise PlanValidationError(
                "Single-file endpoints accept only page copies from the uploaded file",
                fields={f"[{position}]": "expected a page copy with fileIndex 0"},
            )
    return plan
