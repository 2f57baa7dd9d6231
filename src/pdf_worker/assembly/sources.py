"""
Per-request source document cache.

Source buffers are registered by the integer index the client used
(``file-3`` becomes index 3; indices may be sparse). Each buffer is
parsed at most once per request, on first use. Failed parses are never
memoized.
"""

import logging
from io import BytesIO
from typing import Callable

from pypdf import PdfReader, PasswordType
from pypdf.errors import PyPdfError

from pdf_worker.core.exceptions import SourceLoadError

logger = logging.getLogger(__name__)

_PARSE_ERRORS = (PyPdfError, ValueError, TypeError, KeyError, OSError)


class SourceLoadFailure(Exception):
    """Loader-level failure, tagged with a reason before the index is known."""

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason
        self.message = message


def load_pdf(data: bytes) -> PdfReader:
    """
    Parse PDF bytes into a reader with at least one page.

    Encrypted documents are accepted only when they open with an empty
    user password.

    Raises:
        SourceLoadFailure: With reason ``invalid``, ``encrypted`` or ``empty``
    """
    try:
        reader = PdfReader(BytesIO(data))
    except _PARSE_ERRORS as e:
        raise SourceLoadFailure("invalid", f"Not a valid PDF: {e}") from e

    if reader.is_encrypted:
        try:
            result = reader.decrypt("")
        except _PARSE_ERRORS as e:
            raise SourceLoadFailure("encrypted", "Document is password protected") from e
        if result == PasswordType.NOT_DECRYPTED:
            raise SourceLoadFailure("encrypted", "Document is password protected")

    try:
        page_count = len(reader.pages)
    except _PARSE_ERRORS as e:
        raise SourceLoadFailure("invalid", f"Unreadable page tree: {e}") from e

    if page_count == 0:
        raise SourceLoadFailure("empty", "Document has no pages")
    return reader


class SourceDocumentCache:
    """
    Lazily parses and memoizes source documents for one request.

    Use as a context manager so parsed documents are released when the
    request finishes::

        with SourceDocumentCache(buffers) as cache:
            reader = cache.get(0)
    """

    def __init__(
        self,
        buffers: dict[int, bytes],
        loader: Callable[[bytes], PdfReader] = load_pdf,
    ):
        """
        Initialize the cache.

        Args:
            buffers: Raw source bytes keyed by client-supplied index
            loader: Parser turning bytes into a document
        """
        self._buffers = dict(buffers)
        self._loader = loader
        self._loaded: dict[int, PdfReader] = {}

    def __enter__(self) -> "SourceDocumentCache":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.clear()

    def has(self, index: int) -> bool:
        """Return True if bytes were registered for ``index``."""
        return index in self._buffers

    def indices(self) -> list[int]:
        """Registered source indices in ascending order."""
        return sorted(self._buffers)

    def is_loaded(self, index: int) -> bool:
        """Return True if ``index`` has been parsed successfully."""
        return index in self._loaded

    def get(self, index: int) -> PdfReader:
        """
        Return the parsed document for ``index``, parsing it on first use.

        Raises:
            SourceLoadError: If no bytes are registered for ``index`` or
                they cannot be parsed
        """
        cached = self._loaded.get(index)
        if cached is not None:
            return cached

        data = self._buffers.get(index)
        if data is None:
            raise SourceLoadError(
                f"No document uploaded for source {index}",
                source_index=index,
                reason="missing",
            )

        try:
            reader = self._loader(data)
        except SourceLoadFailure as e:
            logger.info(
                f"Source {index} failed to load: {e.message}",
                extra={"source_index": index, "reason": e.reason},
            )
            raise SourceLoadError(e.message, source_index=index, reason=e.reason) from e

        self._loaded[index] = reader
        logger.debug(f"Loaded source {index} ({len(reader.pages)} pages)")
        return reader

    def page_count(self, index: int) -> int:
        """Return the page count of source ``index``, loading it if needed."""
        return len(self.get(index).pages)

    def clear(self) -> None:
        """Drop every parsed document."""
        self._loaded.clear()
