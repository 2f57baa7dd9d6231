"""
Upload handling for the processing routes.

Uploads are spooled into the uploads directory for the lifetime of one
request and removed when the request finishes, however it finishes.
The stale file purge job is the backstop for anything a crashed worker
leaves behind.
"""

import gzip
import logging
import re
import secrets
import time
import zlib
from pathlib import Path, PurePath

from starlette.concurrency import run_in_threadpool
from starlette.datastructures import FormData, UploadFile

from pdf_worker.core.exceptions import PlanValidationError, SourceLoadError

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"
MAX_FILENAME_LENGTH = 200
ALLOWED_UPLOAD_EXTENSIONS = frozenset({".pdf", ".gz"})

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_DOT_RUNS = re.compile(r"\.\.+")


def sanitize_filename(filename: str | None) -> str:
    """
    Reduce a client supplied file name to a safe basename.

    Strips directories, NUL bytes and dot runs, replaces anything outside
    ``[a-zA-Z0-9._-]`` and caps the length while keeping the extension.
    """
    # Normalize Windows separators before taking the basename
    safe = PurePath((filename or "").replace("\\", "/")).name
    safe = safe.replace("\x00", "")
    safe = _DOT_RUNS.sub(".", safe)
    safe = _UNSAFE_CHARS.sub("_", safe)
    if safe.startswith("."):
        safe = "_" + safe
    if len(safe) > MAX_FILENAME_LENGTH:
        suffix = PurePath(safe).suffix
        safe = safe[: MAX_FILENAME_LENGTH - len(suffix)] + suffix
    return safe or "file"


def check_upload_name(filename: str | None, source_index: int = 0) -> None:
    """
    Reject uploads whose name does not end in an accepted extension.

    Raises:
        PlanValidationError: Keyed by the upload's ``file-<N>`` field
    """
    extension = PurePath(filename or "").suffix.lower()
    if extension not in ALLOWED_UPLOAD_EXTENSIONS:
        raise PlanValidationError(
            f"Unsupported file type: {extension or '(none)'}",
            fields={
                f"file-{source_index}": f"expected one of {', '.join(sorted(ALLOWED_UPLOAD_EXTENSIONS))}"
            },
        )


def decompress_if_needed(data: bytes, source_index: int = 0, name: str = "") -> bytes:
    """
    Gunzip ``data`` when it starts with the gzip magic bytes.

    Data without the magic bytes is returned unchanged.

    Raises:
        SourceLoadError: If the gzip stream is corrupt
    """
    if not data.startswith(GZIP_MAGIC):
        return data

    start = time.time()
    try:
        decompressed = gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise SourceLoadError(
            f"Source {source_index} is not a valid gzip stream",
            source_index=source_index,
            reason="invalid",
        ) from e

    logger.debug(
        f"Decompressed {name or 'upload'}: {len(data)} -> {len(decompressed)} bytes",
        extra={"duration_ms": round((time.time() - start) * 1000, 2)},
    )
    return decompressed


def collect_indexed_uploads(form: FormData) -> dict[int, UploadFile]:
    """
    Map uploaded files to source indices.

    Fields named ``file-<N>`` map to index N and may be sparse. When no
    such field is present, every uploaded file is indexed by its
    position in the form.
    """
    uploads = [(key, value) for key, value in form.multi_items() if isinstance(value, UploadFile)]

    indexed: dict[int, UploadFile] = {}
    for key, upload in uploads:
        if not key.startswith("file-"):
            continue
        try:
            indexed[int(key[len("file-"):])] = upload
        except ValueError:
            logger.debug(f"Ignoring upload field with non-numeric index: {key}")

    if indexed:
        return indexed
    return {position: upload for position, (_, upload) in enumerate(uploads)}


class RequestWorkspace:
    """
    Request-scoped spool directory entries.

    Usage::

        async with RequestWorkspace(settings.uploads_dir) as workspace:
            data = await workspace.spool(upload, 0)

    Every path collected by ``spool`` is unlinked on exit, whether the
    block returns, raises or is cancelled.
    """

    def __init__(self, uploads_dir: Path, *, decompress: bool = False):
        self._uploads_dir = Path(uploads_dir)
        self._decompress = decompress
        self._paths: list[Path] = []

    @property
    def paths(self) -> list[Path]:
        """Paths spooled so far."""
        return list(self._paths)

    async def __aenter__(self) -> "RequestWorkspace":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        # No await here: a cancelled scope would abort the cleanup.
        self.cleanup()

    def cleanup(self) -> None:
        """Remove every spooled file."""
        for path in self._paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Failed to remove spooled upload {path}: {e}")
        self._paths.clear()

    async def spool(self, upload: UploadFile, source_index: int = 0) -> bytes:
        """
        Write an upload to the spool directory and return its content.

        Gzip content is decompressed when the workspace was opened with
        ``decompress=True`` or the upload name ends in ``.gz``.

        Raises:
            PlanValidationError: If the upload is not a .pdf or .gz file
        """
        original_name = upload.filename or ""
        check_upload_name(original_name, source_index)
        target = self._uploads_dir / (
            f"{int(time.time() * 1000)}-{secrets.token_hex(8)}-{sanitize_filename(original_name)}"
        )
        self._paths.append(target)

        data = await upload.read()
        await run_in_threadpool(target.write_bytes, data)

        if self._decompress or original_name.lower().endswith(".gz"):
            data = decompress_if_needed(data, source_index, original_name)
        return data

    async def spool_all(self, uploads: dict[int, UploadFile]) -> dict[int, bytes]:
        """Spool several uploads keyed by source index."""
        return {index: await self.spool(upload, index) for index, upload in uploads.items()}
