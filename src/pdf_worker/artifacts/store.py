"""
Ephemeral artifact store.

Keeps generated files under ``<data_dir>/downloads/`` and hands out
opaque handles for them. Artifacts expire after a fixed time-to-live;
expired entries are unreachable immediately and their files are
reclaimed by ``sweep()``.

Thread-safe: a single coarse lock guards the handle map. Content is
written to a temporary file and moved into place before the handle is
registered, so a reader never observes a half-written artifact.
"""

import hashlib
import logging
import os
import re
import secrets
import tempfile
import threading
import time
from pathlib import Path
from typing import Callable

from pdf_worker.artifacts.models import Artifact, StoreStats
from pdf_worker.core.exceptions import ArtifactNotFoundError, FatalIOError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

_SAFE_SUFFIX = re.compile(r"\.[a-z0-9]{1,8}")

_MEDIA_TYPE_EXTENSIONS = {
    "application/pdf": ".pdf",
    "application/zip": ".zip",
    "application/json": ".json",
    "text/plain": ".txt",
    "image/png": ".png",
    "image/jpeg": ".jpg",
}


class ArtifactStore:
    """
    Handle-addressed store for generated files with automatic expiry.

    Layout:
    - <downloads_dir>/<handle><ext>   artifact content

    Metadata lives in memory only; nothing survives a process restart.
    """

    HANDLE_BYTES = 16

    def __init__(
        self,
        downloads_dir: Path,
        ttl_seconds: int,
        clock: Clock | None = None,
    ):
        """
        Initialize the artifact store.

        Args:
            downloads_dir: Directory for artifact content
            ttl_seconds: Time-to-live applied to every artifact
            clock: Time source returning UNIX seconds (default: time.time)
        """
        self._downloads_dir = downloads_dir
        self._ttl = ttl_seconds
        self._clock = clock or time.time
        self._entries: dict[str, Artifact] = {}
        self._lock = threading.RLock()
        self._closed = False

        self._downloads_dir.mkdir(parents=True, exist_ok=True)

    @property
    def ttl(self) -> int:
        """Configured time-to-live in seconds."""
        return self._ttl

    @property
    def downloads_dir(self) -> Path:
        """Directory holding artifact content."""
        return self._downloads_dir

    def generate_handle(self) -> str:
        """Generate a fresh handle from a cryptographically secure source."""
        return secrets.token_hex(self.HANDLE_BYTES)

    def _extension(self, display_name: str, media_type: str) -> str:
        suffix = Path(display_name).suffix.lower()
        if _SAFE_SUFFIX.fullmatch(suffix):
            return suffix
        return _MEDIA_TYPE_EXTENSIONS.get(media_type, ".bin")

    def _write_atomic(self, target: Path, content: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(
            dir=self._downloads_dir, prefix=".partial-", suffix=target.suffix
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def store(self, content: bytes, display_name: str, media_type: str) -> str:
        """
        Persist content and register it under a new handle.

        Args:
            content: Artifact bytes
            display_name: File name offered on download
            media_type: MIME type returned on download

        Returns:
            The new artifact handle

        Raises:
            FatalIOError: If the content cannot be written
        """
        handle = self.generate_handle()
        target = self._downloads_dir / f"{handle}{self._extension(display_name, media_type)}"

        try:
            self._write_atomic(target, content)
        except OSError as e:
            logger.error(
                "Artifact write failed",
                extra={"handle": handle, "path": str(target), "error": str(e)},
            )
            raise FatalIOError(f"Failed to write artifact: {e}") from e

        artifact = Artifact(
            handle=handle,
            storage_path=target,
            display_name=display_name,
            media_type=media_type,
            size_bytes=len(content),
            content_hash=hashlib.sha256(content).hexdigest(),
            created_at=self._clock(),
        )

        with self._lock:
            # Handles come from a CSPRNG; a collision means the source is broken.
            if handle in self._entries:
                target.unlink(missing_ok=True)
                raise FatalIOError("Artifact handle collision")
            self._entries[handle] = artifact

        logger.info(
            f"Stored artifact {handle} -> {display_name}",
            extra={"handle": handle, "size_bytes": artifact.size_bytes, "media_type": media_type},
        )
        return handle

    def resolve(self, handle: str) -> Artifact:
        """
        Look up a live artifact.

        Args:
            handle: Artifact handle

        Returns:
            Artifact metadata

        Raises:
            ArtifactNotFoundError: If the handle is unknown or expired
        """
        with self._lock:
            artifact = self._entries.get(handle)
            if artifact is None or artifact.is_expired(self._clock(), self._ttl):
                raise ArtifactNotFoundError(handle)
            logger.debug(f"Resolved artifact {handle}")
            return artifact

    def read(self, handle: str) -> tuple[Artifact, bytes]:
        """
        Resolve an artifact and read its content.

        The read happens under the store lock, so a concurrent delete or
        sweep either completes first (NotFound) or waits until the full
        content has been read.

        Raises:
            ArtifactNotFoundError: If the handle is unknown or expired
            FatalIOError: If the content file cannot be read or no longer
                matches the hash recorded when it was stored
        """
        with self._lock:
            artifact = self.resolve(handle)
            try:
                content = artifact.storage_path.read_bytes()
            except FileNotFoundError:
                # Content vanished underneath us; treat the entry as gone.
                self._entries.pop(handle, None)
                raise ArtifactNotFoundError(handle)
            except OSError as e:
                raise FatalIOError(f"Failed to read artifact: {e}") from e
            if hashlib.sha256(content).hexdigest() != artifact.content_hash:
                logger.error(f"Artifact {handle} content does not match its hash")
                raise FatalIOError("Artifact content is corrupt", details={"handle": handle})
            return artifact, content

    def _remove(self, handle: str) -> Artifact | None:
        artifact = self._entries.pop(handle, None)
        if artifact is not None:
            try:
                artifact.storage_path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(
                    "Failed to remove artifact content",
                    extra={"handle": handle, "error": str(e)},
                )
        return artifact

    def delete(self, handle: str) -> None:
        """Remove an artifact. Unknown handles are ignored."""
        with self._lock:
            removed = self._remove(handle)
        if removed is not None:
            logger.info(f"Deleted artifact {handle}")

    def sweep(self) -> int:
        """
        Remove every expired artifact.

        Returns:
            Number of artifacts removed
        """
        with self._lock:
            now = self._clock()
            expired = [
                handle
                for handle, artifact in self._entries.items()
                if artifact.is_expired(now, self._ttl)
            ]
            for handle in expired:
                self._remove(handle)

        if expired:
            logger.info(f"Swept {len(expired)} expired artifact(s)", extra={"count": len(expired)})
        return len(expired)

    def __contains__(self, handle: object) -> bool:
        if not isinstance(handle, str):
            return False
        try:
            self.resolve(handle)
        except ArtifactNotFoundError:
            return False
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> StoreStats:
        """Return a snapshot of the store."""
        with self._lock:
            total = sum(a.size_bytes for a in self._entries.values())
            count = len(self._entries)
        return StoreStats(
            live_count=count,
            total_size_bytes=total,
            storage_path=str(self._downloads_dir),
            ttl_seconds=self._ttl,
        )

    def close(self) -> None:
        """Remove every artifact (call on shutdown)."""
        with self._lock:
            if self._closed:
                return
            for handle in list(self._entries):
                self._remove(handle)
            self._closed = True
        logger.info("Artifact store closed")
