"""Tests for the ephemeral artifact store."""

import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from pdf_worker.artifacts import ArtifactStore
from pdf_worker.core.exceptions import ArtifactNotFoundError, FatalIOError


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(temp_dir: Path, clock: FakeClock) -> ArtifactStore:
    return ArtifactStore(temp_dir / "downloads", ttl_seconds=600, clock=clock)


class TestStoreAndRead:
    """Tests for storing and reading artifacts."""

    def test_round_trip(self, store: ArtifactStore):
        """Stored bytes come back unchanged with their metadata."""
        handle = store.store(b"%PDF-1.7 test", "report.pdf", "application/pdf")

        artifact, content = store.read(handle)

        assert content == b"%PDF-1.7 test"
        assert artifact.display_name == "report.pdf"
        assert artifact.media_type == "application/pdf"
        assert artifact.size_bytes == len(b"%PDF-1.7 test")

    def test_handle_is_128_bit_hex(self, store: ArtifactStore):
        """Handles are 32 lowercase hex characters."""
        handle = store.store(b"x", "a.pdf", "application/pdf")

        assert len(handle) == 32
        assert all(c in "0123456789abcdef" for c in handle)

    def test_handles_are_unique(self, store: ArtifactStore):
        """Every store call yields a fresh handle."""
        handles = {store.store(b"x", "a.pdf", "application/pdf") for _ in range(50)}

        assert len(handles) == 50

    def test_content_lives_in_downloads_dir(self, store: ArtifactStore):
        """Content is written under the downloads directory with the name's suffix."""
        handle = store.store(b"zip", "files.zip", "application/zip")

        artifact = store.resolve(handle)

        assert artifact.storage_path.parent == store.downloads_dir
        assert artifact.storage_path.name == f"{handle}.zip"
        assert artifact.storage_path.read_bytes() == b"zip"

    def test_no_partial_files_left_behind(self, store: ArtifactStore):
        """Only the final artifact file remains after a store."""
        store.store(b"data", "a.pdf", "application/pdf")

        leftovers = [p for p in store.downloads_dir.iterdir() if p.name.startswith(".partial-")]
        assert leftovers == []

    def test_unknown_handle_not_found(self, store: ArtifactStore):
        """Unknown handles raise ArtifactNotFoundError."""
        with pytest.raises(ArtifactNotFoundError) as exc_info:
            store.read("0" * 32)

        assert exc_info.value.status_code == 404
        assert exc_info.value.code == "not_found"

    def test_write_failure_is_fatal(self, store: ArtifactStore):
        """OS errors while writing become FatalIOError and register nothing."""
        with patch("pdf_worker.artifacts.store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(FatalIOError):
                store.store(b"data", "a.pdf", "application/pdf")

        assert len(store) == 0
        assert list(store.downloads_dir.iterdir()) == []

    def test_unsafe_suffix_falls_back_to_media_type(self, store: ArtifactStore):
        """Display names with control characters never reach the file system."""
        handle = store.store(b"data", "x.pd\x00f", "application/pdf")

        artifact = store.resolve(handle)

        assert artifact.storage_path.name == f"{handle}.pdf"
        assert artifact.display_name == "x.pd\x00f"

    def test_corrupted_content_is_fatal(self, store: ArtifactStore):
        """Content changed on disk after storing is never served."""
        handle = store.store(b"%PDF-1.7 original", "a.pdf", "application/pdf")
        store.resolve(handle).storage_path.write_bytes(b"%PDF-1.7 tampered")

        with pytest.raises(FatalIOError):
            store.read(handle)


class TestExpiry:
    """Tests for time-to-live handling."""

    def test_live_before_ttl(self, store: ArtifactStore, clock: FakeClock):
        """An artifact is readable until its TTL elapses."""
        handle = store.store(b"data", "a.pdf", "application/pdf")
        clock.advance(599)

        assert handle in store
        assert store.read(handle)[1] == b"data"

    def test_expired_at_ttl(self, store: ArtifactStore, clock: FakeClock):
        """An artifact is unreachable once exactly TTL seconds have passed."""
        handle = store.store(b"data", "a.pdf", "application/pdf")
        clock.advance(600)

        with pytest.raises(ArtifactNotFoundError):
            store.resolve(handle)
        assert handle not in store

    def test_expired_is_unreachable_before_sweep(self, store: ArtifactStore, clock: FakeClock):
        """Expiry does not wait for the sweep to run."""
        handle = store.store(b"data", "a.pdf", "application/pdf")
        clock.advance(601)

        with pytest.raises(ArtifactNotFoundError):
            store.read(handle)
        # Entry still registered until swept
        assert len(store) == 1

    def test_sweep_removes_only_expired(self, store: ArtifactStore, clock: FakeClock):
        """Sweep reclaims expired entries and their files, leaving live ones."""
        old = store.store(b"old", "old.pdf", "application/pdf")
        old_path = store.resolve(old).storage_path
        clock.advance(500)
        fresh = store.store(b"fresh", "fresh.pdf", "application/pdf")
        clock.advance(200)

        removed = store.sweep()

        assert removed == 1
        assert not old_path.exists()
        assert store.read(fresh)[1] == b"fresh"

    def test_sweep_with_nothing_expired(self, store: ArtifactStore):
        """Sweep on a fresh store removes nothing."""
        store.store(b"data", "a.pdf", "application/pdf")

        assert store.sweep() == 0
        assert len(store) == 1


class TestDelete:
    """Tests for deletion."""

    def test_delete_removes_content(self, store: ArtifactStore):
        """Deleted artifacts are gone along with their file."""
        handle = store.store(b"data", "a.pdf", "application/pdf")
        path = store.resolve(handle).storage_path

        store.delete(handle)

        assert not path.exists()
        with pytest.raises(ArtifactNotFoundError):
            store.read(handle)

    def test_delete_is_idempotent(self, store: ArtifactStore):
        """Deleting twice, or deleting an unknown handle, does not raise."""
        handle = store.store(b"data", "a.pdf", "application/pdf")

        store.delete(handle)
        store.delete(handle)
        store.delete("never-issued")

    def test_close_removes_everything(self, store: ArtifactStore):
        """Closing the store deletes all artifacts."""
        for i in range(3):
            store.store(b"data", f"{i}.pdf", "application/pdf")

        store.close()

        assert len(store) == 0
        assert list(store.downloads_dir.iterdir()) == []


class TestStats:
    """Tests for store statistics."""

    def test_stats(self, store: ArtifactStore):
        """Stats report the live count and total size."""
        store.store(b"abc", "a.pdf", "application/pdf")
        store.store(b"defgh", "b.pdf", "application/pdf")

        stats = store.stats()

        assert stats.live_count == 2
        assert stats.total_size_bytes == 8
        assert stats.ttl_seconds == 600


class TestConcurrency:
    """Tests for concurrent access."""

    def test_concurrent_stores(self, store: ArtifactStore):
        """Concurrent writers each get a distinct, readable handle."""
        handles: list[str] = []
        lock = threading.Lock()

        def worker(n: int) -> None:
            handle = store.store(str(n).encode(), f"{n}.pdf", "application/pdf")
            with lock:
                handles.append(handle)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(set(handles)) == 20
        contents = {store.read(handle)[1] for handle in handles}
        assert contents == {str(n).encode() for n in range(20)}

    def test_read_races_delete(self, store: ArtifactStore):
        """A read racing a delete returns full content or not-found, never partial bytes."""
        payload = b"x" * 100_000
        handle = store.store(payload, "a.pdf", "application/pdf")
        results: list[object] = []

        def reader() -> None:
            try:
                results.append(store.read(handle)[1])
            except ArtifactNotFoundError as e:
                results.append(e)

        threads = [threading.Thread(target=reader) for _ in range(5)]
        deleter = threading.Thread(target=store.delete, args=(handle,))
        for thread in threads[:2]:
            thread.start()
        deleter.start()
        for thread in threads[2:]:
            thread.start()
        for thread in [*threads, deleter]:
            thread.join()

        for result in results:
            assert result == payload or isinstance(result, ArtifactNotFoundError)
