"""
Assembly service.

Runs one assembly request end to end: build a request-local source
cache, compile the plan, package the result. Packaging happens only
after a successful compile, so a failed request never registers an
artifact.
"""

import logging
from pathlib import PurePath
from typing import Callable

from pypdf import PdfReader

from pdf_worker.assembly.compiler import PageInstructionCompiler
from pdf_worker.assembly.models import AssemblyPlan, Single
from pdf_worker.assembly.packager import OutputPackager, PackageResult
from pdf_worker.assembly.plans import PageGroup
from pdf_worker.assembly.sources import SourceDocumentCache, load_pdf

logger = logging.getLogger(__name__)

PlanBuilder = Callable[[SourceDocumentCache], AssemblyPlan]
GroupBuilder = Callable[[SourceDocumentCache], list[PageGroup]]


def _stem(file_name: str) -> str:
    return PurePath(file_name).stem or "page"


class AssemblyService:
    """Compiles plans against uploaded sources and stores the output."""

    def __init__(
        self,
        compiler: PageInstructionCompiler,
        packager: OutputPackager,
        loader: Callable[[bytes], PdfReader] = load_pdf,
    ):
        self._compiler = compiler
        self._packager = packager
        self._loader = loader

    @property
    def compiler(self) -> PageInstructionCompiler:
        return self._compiler

    def assemble(
        self,
        plan: AssemblyPlan,
        buffers: dict[int, bytes],
        file_name: str,
    ) -> PackageResult:
        """Compile a ready-made plan and package the result."""
        return self.assemble_from(lambda cache: plan, buffers, file_name)

    def assemble_from(
        self,
        build: PlanBuilder,
        buffers: dict[int, bytes],
        file_name: str,
    ) -> PackageResult:
        """
        Build a plan from the loaded sources, compile it and package it.

        Args:
            build: Receives the source cache (for page counts) and returns the plan
            buffers: Source bytes keyed by index
            file_name: Requested download name
        """
        logger.debug(f"Assembling {file_name} from {len(buffers)} source(s)")
        with SourceDocumentCache(buffers, self._loader) as cache:
            plan = build(cache)
            bundle = self._compiler.compile(plan, cache, stem=_stem(file_name))
            return self._packager.package(bundle, file_name)

    def assemble_groups(
        self,
        build: GroupBuilder,
        buffers: dict[int, bytes],
        file_name: str,
    ) -> PackageResult:
        """
        Build named page groups, compile each to a document and package them.

        A lone group is stored under its own document name; several groups
        are archived under ``file_name`` with a .zip suffix.
        """
        with SourceDocumentCache(buffers, self._loader) as cache:
            groups = build(cache)
            bundle = self._compiler.compile_groups(groups, cache)
            if isinstance(bundle, Single):
                file_name = bundle.document.name
            return self._packager.package(bundle, file_name)
