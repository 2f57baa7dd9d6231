"""Pytest configuration and fixtures."""

import os
import tempfile
from io import BytesIO
from pathlib import Path
from typing import Callable, Generator

import pytest
from pypdf import PdfWriter
from pypdf.generic import NameObject, NumberObject

# Keep rate limiting out of the way for tests
os.environ.setdefault("PW_RATE_LIMIT", "1000/second")
os.environ.setdefault("PW_UPLOAD_RATE_LIMIT", "1000/second")
os.environ.setdefault("PW_MAX_REQUEST_SIZE", "100M")

from pdf_worker.config import WorkerSettings  # noqa: E402

PdfFactory = Callable[..., bytes]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def page_width(index: int) -> float:
    """Width given to page ``index`` by ``make_pdf``, so pages can be told apart."""
    return 200.0 + 10 * index


@pytest.fixture
def make_pdf() -> PdfFactory:
    """
    Factory building small in-memory PDFs.

    Page ``i`` is ``page_width(i)`` points wide and 300 points tall.

    Args:
        pages: Number of pages
        rotations: Optional /Rotate value per page
        password: Encrypt with this user password (RC4-128)
    """

    def _make(
        pages: int = 3,
        rotations: list[int] | None = None,
        password: str | None = None,
    ) -> bytes:
        writer = PdfWriter()
        for i in range(pages):
            page = writer.add_blank_page(width=page_width(i), height=300)
            if rotations:
                page[NameObject("/Rotate")] = NumberObject(rotations[i])
        if password is not None:
            writer.encrypt(user_password=password, algorithm="RC4-128")
        buffer = BytesIO()
        writer.write(buffer)
        return buffer.getvalue()

    return _make


@pytest.fixture
def settings(temp_dir: Path) -> WorkerSettings:
    """Worker settings rooted in a temporary data directory."""
    return WorkerSettings(
        data_dir=temp_dir / "var",
        artifact_ttl=600,
        sweep_interval=120,
        rate_limit="1000/second",
        upload_rate_limit="1000/second",
    )
