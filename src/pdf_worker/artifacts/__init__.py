"""
PDF Worker Artifacts Module.

Provides the ephemeral artifact store that hands out download handles
for generated files, and the lifecycle jobs that reclaim expired
artifacts and stray temporary files.
"""

from .models import Artifact, StoreStats
from .store import ArtifactStore
from .lifecycle import ArtifactLifecycle, PeriodicJob, SchedulerStatus, purge_stale_files

__all__ = [
    # Models
    "Artifact",
    "StoreStats",
    # Storage
    "ArtifactStore",
    # Lifecycle
    "ArtifactLifecycle",
    "PeriodicJob",
    "SchedulerStatus",
    "purge_stale_files",
]
