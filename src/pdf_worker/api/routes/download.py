"""
Download endpoints.

Serve and delete stored artifacts by handle.
"""

import logging
import re
from urllib.parse import quote

from fastapi import APIRouter, Request
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from pdf_worker.api.schemas.responses import DeleteResponse
from pdf_worker.artifacts.store import ArtifactStore

router = APIRouter()
logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def content_disposition(file_name: str) -> str:
    """Build an attachment header; non-ASCII names get an RFC 5987 variant."""
    file_name = _CONTROL_CHARS.sub("_", file_name)
    ascii_name = file_name.encode("ascii", "replace").decode("ascii").replace('"', "_")
    if ascii_name == file_name:
        return f'attachment; filename="{file_name}"'
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(file_name)}"


def _store(request: Request) -> ArtifactStore:
    return request.app.state.store


@router.get("/{handle}")
async def download(handle: str, request: Request) -> Response:
    """
    Return the stored bytes for ``handle``.

    Unknown, deleted and expired handles produce 404 ``not_found``.
    """
    artifact, content = await run_in_threadpool(_store(request).read, handle)
    return Response(
        content=content,
        media_type=artifact.media_type,
        headers={"Content-Disposition": content_disposition(artifact.display_name)},
    )


@router.delete("/{handle}", response_model=DeleteResponse)
async def delete(handle: str, request: Request) -> DeleteResponse:
    """Delete ``handle``. Succeeds whether or not the handle exists."""
    await run_in_threadpool(_store(request).delete, handle)
    return DeleteResponse()
