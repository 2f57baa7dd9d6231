"""
Artifact lifecycle management.

Runs the periodic background work that keeps the worker's disk usage
bounded:
- the artifact sweep, which reclaims expired store entries on an
  interval strictly shorter than the artifact TTL
- the stray file purge, a coarser backstop that deletes leftover
  upload/scratch files older than a fixed age, independent of the store

Each job runs on its own daemon thread and is stopped through a
shutdown event, so the FastAPI lifespan owns start and stop explicitly.
"""

import logging
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Callable

from pdf_worker.artifacts.store import ArtifactStore
from pdf_worker.config import WorkerSettings

logger = logging.getLogger(__name__)


class SchedulerStatus(Enum):
    """Status of a periodic job."""

    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


class PeriodicJob:
    """
    Background thread running a callable on a fixed interval.

    The first run happens one interval after ``start()``. Errors raised
    by the callable are logged and the loop keeps going.
    """

    def __init__(self, name: str, interval: float, func: Callable[[], object]):
        """
        Initialize a periodic job.

        Args:
            name: Thread and log name
            interval: Seconds between runs
            func: Callable to run
        """
        self.name = name
        self._interval = interval
        self._func = func
        self._status = SchedulerStatus.STOPPED
        self._thread: threading.Thread | None = None
        self._shutdown_event = threading.Event()
        self.run_count = 0
        self.error_count = 0

    @property
    def status(self) -> SchedulerStatus:
        """Get current job status."""
        return self._status

    @property
    def interval(self) -> float:
        """Seconds between runs."""
        return self._interval

    def start(self) -> None:
        """Start the job thread. No-op if already running."""
        if self._status != SchedulerStatus.STOPPED:
            return

        self._shutdown_event.clear()
        self._thread = threading.Thread(
            target=self._loop,
            name=self.name,
            daemon=True,
        )
        self._thread.start()
        self._status = SchedulerStatus.RUNNING
        logger.info(f"Started periodic job {self.name} (every {self._interval}s)")

    def stop(self, timeout: float = 10.0) -> None:
        """Signal the thread to exit and wait for it."""
        if self._status == SchedulerStatus.STOPPED:
            return

        self._status = SchedulerStatus.STOPPING
        self._shutdown_event.set()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)

        self._thread = None
        self._status = SchedulerStatus.STOPPED
        logger.info(f"Stopped periodic job {self.name}")

    def run_once(self) -> object:
        """Run the callable once in the calling thread."""
        try:
            result = self._func()
            self.run_count += 1
            return result
        except Exception:
            self.error_count += 1
            logger.exception(f"Periodic job {self.name} failed")
            return None

    def _loop(self) -> None:
        # wait() returns True once shutdown is signalled
        while not self._shutdown_event.wait(self._interval):
            self.run_once()


def purge_stale_files(
    directories: list[Path],
    max_age_seconds: float,
    now: float | None = None,
) -> int:
    """
    Delete regular files older than ``max_age_seconds``.

    Missing directories and files that vanish mid-scan are skipped.

    Args:
        directories: Directories to scan (not recursive)
        max_age_seconds: Minimum age, by modification time, of files to delete
        now: Reference time (default: current time)

    Returns:
        Number of files deleted
    """
    cutoff = (now if now is not None else time.time()) - max_age_seconds
    deleted = 0

    for directory in directories:
        if not directory.is_dir():
            continue
        for path in directory.iterdir():
            try:
                if not path.is_file() or path.stat().st_mtime >= cutoff:
                    continue
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning(f"Failed to delete stale file {path}: {e}")
                continue
            deleted += 1
            logger.info(f"Deleted stale file: {path.name}")

    return deleted


class ArtifactLifecycle:
    """
    Owns the background jobs tied to one artifact store.

    Jobs:
    - artifact-sweep: ``store.sweep()`` every ``sweep_interval``
    - stale-file-purge: ``purge_stale_files`` over the upload and
      scratch directories every ``stale_purge_interval``
    """

    def __init__(self, store: ArtifactStore, settings: WorkerSettings):
        """
        Initialize lifecycle manager.

        Args:
            store: Artifact store to sweep
            settings: Worker settings providing intervals and directories
        """
        self._store = store
        self._settings = settings
        self.sweep_job = PeriodicJob(
            "artifact-sweep", settings.sweep_interval, store.sweep
        )
        self.purge_job = PeriodicJob(
            "stale-file-purge", settings.stale_purge_interval, self.purge_stale
        )

    @property
    def jobs(self) -> list[PeriodicJob]:
        """All managed jobs."""
        return [self.sweep_job, self.purge_job]

    def purge_stale(self) -> int:
        """Purge stray files from the upload and scratch directories."""
        return purge_stale_files(
            [self._settings.uploads_dir, self._settings.outputs_dir],
            self._settings.stale_file_max_age,
        )

    def start(self) -> None:
        """Start all background jobs."""
        for job in self.jobs:
            job.start()

    def stop(self) -> None:
        """Stop all background jobs."""
        for job in self.jobs:
            job.stop()

    def status(self) -> dict[str, str]:
        """Return the status of each job keyed by name."""
        return {job.name: job.status.value for job in self.jobs}
