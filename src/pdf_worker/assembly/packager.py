"""
Output packager.

Serializes a compiled bundle and registers it with the artifact store:
a single document is stored as a PDF, several documents are stored as
one zip archive with one entry per document.
"""

import logging
import zipfile
from io import BytesIO
from pathlib import PurePath

from pydantic import BaseModel, Field
from pypdf import PdfWriter

from pdf_worker.artifacts.store import ArtifactStore
from pdf_worker.assembly.models import GeneratedDocument, Multiple, OutputBundle, Single

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
ZIP_MEDIA_TYPE = "application/zip"


class PackageResult(BaseModel):
    """Outcome of packaging one bundle."""

    handles: list[str] = Field(description="Artifact handles, one per stored artifact")
    file_name: str = Field(description="Download file name")
    media_type: str = Field(description="Stored media type")
    size_bytes: int = Field(description="Size of the stored artifact")
    document_count: int = Field(description="Number of generated documents")
    page_count: int = Field(description="Total pages across all documents")
    expires_at: str = Field(description="ISO timestamp after which the handle is gone")

    @property
    def handle(self) -> str:
        """The handle of the stored artifact."""
        return self.handles[0]


def serialize(writer: PdfWriter) -> bytes:
    """Serialize a PDF writer to bytes."""
    buffer = BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def archive_name(file_name: str) -> str:
    """Return ``file_name`` with its suffix replaced by ``.zip``."""
    path = PurePath(file_name)
    stem = path.stem if path.suffix else path.name
    return f"{stem or 'files'}.zip"


def build_archive(documents: tuple[GeneratedDocument, ...]) -> bytes:
    """
    Zip documents into one archive, one entry per document.

    Raises:
        RuntimeError: If two documents share a name
    """
    names = [document.name for document in documents]
    if len(set(names)) != len(names):
        duplicates = sorted({name for name in names if names.count(name) > 1})
        raise RuntimeError(f"Duplicate archive entry names: {duplicates}")

    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for document in documents:
            archive.writestr(document.name, serialize(document.writer))
    return buffer.getvalue()


class OutputPackager:
    """Stores compiled bundles as downloadable artifacts."""

    def __init__(self, store: ArtifactStore):
        self._store = store

    def package(self, bundle: OutputBundle, file_name: str) -> PackageResult:
        """
        Serialize and store a bundle.

        Args:
            bundle: Compiled output
            file_name: Requested download name; archives get a .zip suffix

        Returns:
            PackageResult with exactly one handle

        Raises:
            FatalIOError: If the store cannot persist the content
        """
        match bundle:
            case Single(document=document):
                content = serialize(document.writer)
                name = file_name
                media_type = PDF_MEDIA_TYPE
            case Multiple(documents=documents):
                content = build_archive(documents)
                name = archive_name(file_name)
                media_type = ZIP_MEDIA_TYPE
            case _:
                raise TypeError(f"Unsupported bundle type: {type(bundle).__name__}")

        handle = self._store.store(content, name, media_type)
        expires_at = self._store.resolve(handle).expires_at(self._store.ttl)
        logger.info(
            f"Packaged {len(bundle.documents)} document(s) as {name}",
            extra={"handle": handle, "media_type": media_type, "size_bytes": len(content)},
        )
        return PackageResult(
            handles=[handle],
            file_name=name,
            media_type=media_type,
            size_bytes=len(content),
            document_count=len(bundle.documents),
            page_count=sum(d.page_count for d in bundle.documents),
            expires_at=expires_at,
        )
