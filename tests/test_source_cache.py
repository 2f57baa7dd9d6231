"""Tests for source loading and the request-local document cache."""

import pytest

from pdf_worker.assembly import SourceDocumentCache, SourceLoadFailure, load_pdf
from pdf_worker.core.exceptions import SourceLoadError


class CountingLoader:
    """Wraps load_pdf and counts invocations per buffer."""

    def __init__(self):
        self.calls = 0

    def __call__(self, data: bytes):
        self.calls += 1
        return load_pdf(data)


class TestLoadPdf:
    """Tests for load_pdf."""

    def test_loads_valid_pdf(self, make_pdf):
        """A valid PDF parses with its page count."""
        reader = load_pdf(make_pdf(pages=4))

        assert len(reader.pages) == 4

    def test_rejects_garbage(self):
        """Bytes that are not a PDF fail as invalid."""
        with pytest.raises(SourceLoadFailure) as exc_info:
            load_pdf(b"definitely not a pdf")

        assert exc_info.value.reason == "invalid"

    def test_rejects_password_protected(self, make_pdf):
        """A document needing a user password fails as encrypted."""
        with pytest.raises(SourceLoadFailure) as exc_info:
            load_pdf(make_pdf(pages=2, password="secret"))

        assert exc_info.value.reason == "encrypted"

    def test_accepts_empty_user_password(self, make_pdf):
        """Encryption with an empty user password opens transparently."""
        reader = load_pdf(make_pdf(pages=2, password=""))

        assert len(reader.pages) == 2

    def test_rejects_zero_pages(self, make_pdf):
        """A document without pages fails as empty."""
        with pytest.raises(SourceLoadFailure) as exc_info:
            load_pdf(make_pdf(pages=0))

        assert exc_info.value.reason == "empty"


class TestSourceDocumentCache:
    """Tests for SourceDocumentCache."""

    def test_memoizes_successful_loads(self, make_pdf):
        """Each source is parsed at most once per cache."""
        loader = CountingLoader()
        cache = SourceDocumentCache({0: make_pdf(pages=3)}, loader)

        first = cache.get(0)
        second = cache.get(0)

        assert first is second
        assert loader.calls == 1
        assert cache.page_count(0) == 3
        assert loader.calls == 1

    def test_missing_index(self, make_pdf):
        """An index with no bytes fails with reason missing."""
        cache = SourceDocumentCache({0: make_pdf()})

        with pytest.raises(SourceLoadError) as exc_info:
            cache.get(3)

        assert exc_info.value.source_index == 3
        assert exc_info.value.reason == "missing"

    def test_failure_is_not_cached(self):
        """A failed load is retried on the next get."""
        loader = CountingLoader()
        cache = SourceDocumentCache({0: b"broken"}, loader)

        for _ in range(2):
            with pytest.raises(SourceLoadError) as exc_info:
                cache.get(0)
            assert exc_info.value.reason == "invalid"

        assert loader.calls == 2
        assert not cache.is_loaded(0)

    def test_error_carries_status(self, make_pdf):
        """Load errors map to 400 source_load_error."""
        cache = SourceDocumentCache({1: make_pdf(password="pw")})

        with pytest.raises(SourceLoadError) as exc_info:
            cache.get(1)

        assert exc_info.value.status_code == 400
        assert exc_info.value.to_dict()["type"] == "source_load_error"
        assert exc_info.value.to_dict()["detail"] == {"source_index": 1, "reason": "encrypted"}

    def test_sparse_indices(self, make_pdf):
        """Sparse indices are reported in ascending order."""
        cache = SourceDocumentCache({5: make_pdf(), 2: make_pdf()})

        assert cache.indices() == [2, 5]
        assert cache.has(5)
        assert not cache.has(0)

    def test_context_manager_clears(self, make_pdf):
        """Leaving the with block drops parsed documents."""
        with SourceDocumentCache({0: make_pdf()}) as cache:
            cache.get(0)
            assert cache.is_loaded(0)

        assert not cache.is_loaded(0)
