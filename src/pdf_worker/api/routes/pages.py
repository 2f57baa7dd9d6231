"""
Page processing endpoints.

Every endpoint here reduces its request to page instructions and runs
them through the shared assembly service, so merge, organize, rotate,
delete and split all share validation, the page cap and packaging.
"""

import json
import logging
from typing import Any, Callable

from fastapi import APIRouter, File, Form, Request, UploadFile
from starlette.concurrency import run_in_threadpool

from pdf_worker.api.schemas.responses import AssemblyResponse, DeletePagesResponse
from pdf_worker.api.uploads import RequestWorkspace, collect_indexed_uploads, sanitize_filename
from pdf_worker.assembly import (
    AssemblyPlan,
    AssemblyService,
    OutputMode,
    PageGroup,
    SourceDocumentCache,
    build_plan,
    extract_pages,
    from_page_instructions,
    merge_all,
    split_fixed,
    split_ranges,
)
from pdf_worker.assembly.packager import PackageResult
from pdf_worker.config import WorkerSettings
from pdf_worker.core.exceptions import PlanValidationError

router = APIRouter()
logger = logging.getLogger(__name__)

MAX_MERGE_FILES = 50
SPLIT_MODES = ("ranges", "extract", "fixed")


def _service(request: Request) -> AssemblyService:
    return request.app.state.service


def _settings(request: Request) -> WorkerSettings:
    return request.app.state.settings


def _log_stored(result: PackageResult) -> None:
    logger.info(
        f"Stored {result.file_name}",
        extra={"handle": result.handle, "pages": result.page_count, "size": result.size_bytes},
    )


def _respond(result: PackageResult) -> AssemblyResponse:
    _log_stored(result)
    return AssemblyResponse.from_result(result)


def _parse_config(raw: str) -> dict[str, Any]:
    try:
        config = json.loads(raw or "{}")
    except json.JSONDecodeError as e:
        raise PlanValidationError(
            f"Split config is not valid JSON: {e.msg}", fields={"config": "invalid JSON"}
        ) from e
    if not isinstance(config, dict):
        raise PlanValidationError("Split config must be a JSON object", fields={"config": "expected object"})
    return config


@router.post("/merge-pdf", response_model=AssemblyResponse)
async def merge_pdf(
    request: Request,
    files: list[UploadFile] = File(..., description="PDF files to merge, in order"),
    file_name: str = Form("merged.pdf", alias="fileName"),
    compressed: bool = Form(False),
) -> AssemblyResponse:
    """
    Merge every page of every uploaded file, in upload order.

    Empty uploads are skipped.
    """
    if len(files) > MAX_MERGE_FILES:
        raise PlanValidationError(
            f"At most {MAX_MERGE_FILES} files can be merged",
            fields={"files": f"received {len(files)}"},
        )

    async with RequestWorkspace(_settings(request).uploads_dir, decompress=compressed) as workspace:
        spooled = await workspace.spool_all(dict(enumerate(files)))
        buffers = {index: data for index, data in spooled.items() if data}
        if not buffers:
            raise PlanValidationError("No files received", fields={"files": "required"})

        def build(cache: SourceDocumentCache) -> AssemblyPlan:
            counts = {index: cache.page_count(index) for index in cache.indices()}
            return AssemblyPlan(instructions=merge_all(counts), mode=OutputMode.MERGE)

        result = await run_in_threadpool(
            _service(request).assemble_from, build, buffers, sanitize_filename(file_name)
        )
    return _respond(result)


@router.post("/organize-pdf", response_model=AssemblyResponse)
async def organize_pdf(request: Request) -> AssemblyResponse:
    """
    Assemble pages from several files, with blank pages and rotation.

    Files arrive as ``file-<N>`` fields (N is the ``fileIndex`` the
    instructions refer to) or, failing that, in positional order.
    """
    async with request.form() as form:
        raw_instructions = form.get("instructions")
        if not isinstance(raw_instructions, str) or not raw_instructions:
            raise PlanValidationError(
                "No instructions provided", fields={"instructions": "required"}
            )
        plan = build_plan(raw_instructions, OutputMode.MERGE)
        compressed = str(form.get("compressed", "false")).lower() == "true"

        uploads = collect_indexed_uploads(form)
        if not uploads:
            raise PlanValidationError("No PDF files provided", fields={"files": "required"})

        async with RequestWorkspace(_settings(request).uploads_dir, decompress=compressed) as workspace:
            buffers = await workspace.spool_all(uploads)
            result = await run_in_threadpool(
                _service(request).assemble, plan, buffers, "organized.pdf"
            )
    return _respond(result)


async def _single_file(
    request: Request,
    upload: UploadFile,
    build: Callable[[SourceDocumentCache], AssemblyPlan],
    file_name: str,
    compressed: bool,
) -> PackageResult:
    async with RequestWorkspace(_settings(request).uploads_dir, decompress=compressed) as workspace:
        data = await workspace.spool(upload, 0)
        return await run_in_threadpool(
            _service(request).assemble_from, build, {0: data}, file_name
        )


@router.post("/rotate-pdf", response_model=AssemblyResponse)
async def rotate_pdf(
    request: Request,
    file: UploadFile = File(...),
    page_instructions: str = Form(..., alias="pageInstructions"),
    compressed: bool = Form(False),
) -> AssemblyResponse:
    """Copy the listed pages, adding each instruction's rotation."""
    plan = from_page_instructions(page_instructions)
    result = await _single_file(request, file, lambda cache: plan, "rotated.pdf", compressed)
    return _respond(result)


@router.post("/process-pages", response_model=AssemblyResponse)
async def process_pages(
    request: Request,
    file: UploadFile = File(...),
    page_instructions: str = Form(..., alias="pageInstructions"),
    compressed: bool = Form(False),
) -> AssemblyResponse:
    """Reorder, drop and rotate the pages of one file."""
    plan = from_page_instructions(page_instructions)
    result = await _single_file(request, file, lambda cache: plan, "processed.pdf", compressed)
    return _respond(result)


@router.post("/delete-pages", response_model=DeletePagesResponse)
async def delete_pages(
    request: Request,
    file: UploadFile = File(...),
    page_instructions: str = Form(..., alias="pageInstructions"),
    mode: str = Form("merge"),
    file_name: str = Form("modified.pdf", alias="fileName"),
    compressed: bool = Form(False),
) -> DeletePagesResponse:
    """
    Keep only the listed pages.

    In ``merge`` mode the kept pages form one document; in ``separate``
    mode each becomes its own document, archived when there are several.
    The response also reports the page count of the uploaded file.
    """
    plan = from_page_instructions(page_instructions, mode)
    original_pages: list[int] = []

    def build(cache: SourceDocumentCache) -> AssemblyPlan:
        original_pages.append(cache.page_count(0))
        return plan

    result = await _single_file(request, file, build, sanitize_filename(file_name), compressed)
    _log_stored(result)
    return DeletePagesResponse.from_delete(result, total_original_pages=original_pages[0])


@router.post("/split-pdf", response_model=AssemblyResponse)
async def split_pdf(
    request: Request,
    file: UploadFile = File(...),
    mode: str = Form(...),
    config: str = Form("{}"),
    compressed: bool = Form(False),
) -> AssemblyResponse:
    """
    Split one file.

    Modes:
        ranges: ``{"ranges": [3, 7]}`` ends a part after pages 3 and 7
        extract: ``{"pages": [1, 4], "merge": false}`` selects 1-based pages
        fixed: ``{"size": 2}`` cuts parts of two pages
    """
    if mode not in SPLIT_MODES:
        raise PlanValidationError(
            f"Invalid split mode: {mode}", fields={"mode": f"expected one of {', '.join(SPLIT_MODES)}"}
        )
    options = _parse_config(config)

    def build(cache: SourceDocumentCache) -> list[PageGroup]:
        total = cache.page_count(0)
        if mode == "ranges":
            return split_ranges(total, options.get("ranges") or [])
        if mode == "extract":
            return extract_pages(options.get("pages") or [], bool(options.get("merge")))
        try:
            size = int(options.get("size") or 0)
        except (TypeError, ValueError) as e:
            raise PlanValidationError("Invalid split size", fields={"size": str(e)}) from e
        return split_fixed(total, size)

    async with RequestWorkspace(_settings(request).uploads_dir, decompress=compressed) as workspace:
        data = await workspace.spool(file, 0)
        result = await run_in_threadpool(
            _service(request).assemble_groups, build, {0: data}, "split-files.zip"
        )
    return _respond(result)
