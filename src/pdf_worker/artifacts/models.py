"""
Pydantic models for the ephemeral artifact store.

Defines the metadata record kept for each stored artifact and the
statistics snapshot reported by the health endpoint.
"""

from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field


class Artifact(BaseModel):
    """Metadata for one stored artifact."""

    handle: str = Field(description="Opaque download handle")
    storage_path: Path = Field(description="Location of the content on disk")
    display_name: str = Field(description="File name offered to the client")
    media_type: str = Field(description="MIME type of the content")
    size_bytes: int = Field(description="Size of the content in bytes")
    content_hash: str = Field(description="SHA256 hash of the content")
    created_at: float = Field(description="Creation time as a UNIX timestamp")

    model_config = {"frozen": True}

    def age(self, now: float) -> float:
        """Return the artifact age in seconds at ``now``."""
        return now - self.created_at

    def is_expired(self, now: float, ttl: float) -> bool:
        """Return True once the artifact has lived for ``ttl`` seconds."""
        return self.age(now) >= ttl

    def expires_at(self, ttl: float) -> str:
        """Return the ISO timestamp after which the artifact is gone."""
        return datetime.fromtimestamp(self.created_at + ttl, tz=timezone.utc).isoformat()


class StoreStats(BaseModel):
    """Snapshot of the artifact store."""

    live_count: int = Field(description="Number of registered artifacts")
    total_size_bytes: int = Field(description="Total size of registered artifacts")
    storage_path: str = Field(description="Directory holding artifact content")
    ttl_seconds: int = Field(description="Configured artifact time-to-live")
