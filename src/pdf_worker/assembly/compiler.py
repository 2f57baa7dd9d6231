"""
Page instruction compiler.

Turns an ``AssemblyPlan`` into one or more in-memory PDF documents by
copying pages out of the request's source documents, inserting blank
pages and composing rotations. Compilation is all-or-nothing: any
error aborts the whole plan and nothing is returned for packaging.
"""

import logging
from collections.abc import Sequence

from pypdf import PageObject, PdfWriter
from pypdf.generic import NameObject, NumberObject

from pdf_worker.assembly.models import (
    AssemblyPlan,
    BlankPage,
    CopyPage,
    GeneratedDocument,
    OutputBundle,
    OutputMode,
    PageInstruction,
    bundle_of,
)
from pdf_worker.assembly.sources import SourceDocumentCache
from pdf_worker.core.exceptions import (
    CapacityError,
    PageIndexOutOfRangeError,
    PlanValidationError,
)

logger = logging.getLogger(__name__)

# A4 in PDF points
DEFAULT_BLANK_PAGE_SIZE = (595.28, 841.89)
DEFAULT_MAX_TOTAL_PAGES = 500


def compose_rotation(existing: int, delta: int) -> int:
    """Add a rotation delta to an existing rotation, modulo 360."""
    return (existing + delta) % 360


def rotate_page(page: PageObject, delta: int) -> int:
    """
    Rotate a page relative to its current rotation.

    The value is written as-is after the modulo; angles that are not
    multiples of 90 are not rounded.

    Returns:
        The page's new rotation
    """
    rotation = compose_rotation(int(page.rotation), delta)
    page[NameObject("/Rotate")] = NumberObject(rotation)
    return rotation


class PageInstructionCompiler:
    """
    Compiles page instructions into output documents.

    Modes:
    - merge: every instruction appends one page to a single document
    - separate: every instruction produces its own one-page document
    """

    def __init__(
        self,
        max_total_pages: int = DEFAULT_MAX_TOTAL_PAGES,
        blank_page_size: tuple[float, float] = DEFAULT_BLANK_PAGE_SIZE,
    ):
        """
        Initialize the compiler.

        Args:
            max_total_pages: Upper bound on pages produced by one plan
            blank_page_size: (width, height) in points for blank pages
        """
        self.max_total_pages = max_total_pages
        self.blank_page_size = blank_page_size

    def _check(self, instructions: Sequence[PageInstruction], cache: SourceDocumentCache) -> None:
        if not instructions:
            raise PlanValidationError("No page instructions provided")

        if len(instructions) > self.max_total_pages:
            raise CapacityError(
                requested_pages=len(instructions), max_pages=self.max_total_pages
            )

        missing = sorted(
            {
                i.source_index
                for i in instructions
                if isinstance(i, CopyPage) and not cache.has(i.source_index)
            }
        )
        if missing:
            raise PlanValidationError(
                f"Instructions reference {len(missing)} source(s) with no uploaded file",
                fields={f"fileIndex={index}": "no file uploaded" for index in missing},
            )

    def _append(
        self,
        writer: PdfWriter,
        instruction: PageInstruction,
        cache: SourceDocumentCache,
    ) -> None:
        if isinstance(instruction, BlankPage):
            width, height = self.blank_page_size
            writer.add_blank_page(width=width, height=height)
            return

        source = cache.get(instruction.source_index)
        page_count = len(source.pages)
        index = instruction.original_page_index
        if not 0 <= index < page_count:
            raise PageIndexOutOfRangeError(
                source_index=instruction.source_index,
                original_page_index=index,
                page_count=page_count,
            )

        page = writer.add_page(source.pages[index])
        rotate_page(page, instruction.rotation_delta)

    def compile(
        self,
        plan: AssemblyPlan,
        cache: SourceDocumentCache,
        stem: str = "page",
    ) -> OutputBundle:
        """
        Compile a plan into an output bundle.

        Args:
            plan: Ordered instructions and output mode
            cache: Request-local source cache
            stem: Base name for generated documents; separate-mode
                documents are named ``<stem>-<position>.pdf``

        Returns:
            Single for one document, Multiple for several

        Raises:
            PlanValidationError: Empty plan, unknown source index or no pages
            CapacityError: Plan exceeds ``max_total_pages``
            SourceLoadError: A referenced source cannot be parsed
            PageIndexOutOfRangeError: A page index is outside its source
        """
        self._check(plan.instructions, cache)

        documents: list[GeneratedDocument] = []
        if plan.mode is OutputMode.MERGE:
            writer = PdfWriter()
            for instruction in plan.instructions:
                self._append(writer, instruction, cache)
            documents.append(GeneratedDocument(f"{stem}.pdf", writer, len(writer.pages)))
        else:
            for position, instruction in enumerate(plan.instructions, start=1):
                writer = PdfWriter()
                self._append(writer, instruction, cache)
                documents.append(
                    GeneratedDocument(f"{stem}-{position}.pdf", writer, len(writer.pages))
                )

        if sum(d.page_count for d in documents) == 0:
            raise PlanValidationError("The resulting document has no pages")

        logger.info(
            f"Compiled {len(plan.instructions)} instruction(s) into {len(documents)} document(s)",
            extra={"mode": plan.mode.value, "documents": len(documents)},
        )
        return bundle_of(documents)

    def compile_groups(
        self,
        groups: Sequence[tuple[str, Sequence[PageInstruction]]],
        cache: SourceDocumentCache,
    ) -> OutputBundle:
        """
        Compile several named page groups, each into its own document.

        The page limit applies to the total across all groups.

        Args:
            groups: (document name, instructions) pairs in output order
            cache: Request-local source cache

        Raises:
            Same as ``compile``
        """
        if not groups:
            raise PlanValidationError("No page groups provided")

        flat = [instruction for _, instructions in groups for instruction in instructions]
        self._check(flat, cache)

        documents: list[GeneratedDocument] = []
        for name, instructions in groups:
            if not instructions:
                raise PlanValidationError(f"Page group {name} is empty")
            writer = PdfWriter()
            for instruction in instructions:
                self._append(writer, instruction, cache)
            documents.append(GeneratedDocument(name, writer, len(writer.pages)))

        logger.info(
            f"Compiled {len(flat)} instruction(s) into {len(documents)} grouped document(s)",
            extra={"documents": len(documents)},
        )
        return bundle_of(documents)
