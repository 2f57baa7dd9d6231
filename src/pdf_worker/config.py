"""
Worker configuration.

Settings are read from ``PW_``-prefixed environment variables. Invalid
values are logged and replaced by their defaults; inconsistent
combinations (a sweep interval that is not shorter than the artifact
TTL) are rejected by ``WorkerSettings.validate``.

Environment Variables:
    PW_DATA_DIR: Base directory for downloads/uploads/outputs (default: var)
    PW_ARTIFACT_TTL: Seconds an artifact stays downloadable (default: 600)
    PW_SWEEP_INTERVAL: Seconds between expiry sweeps (default: 120)
    PW_STALE_PURGE_INTERVAL: Seconds between stray file purges (default: 3600)
    PW_STALE_FILE_MAX_AGE: Age in seconds of a stray file to purge (default: 3600)
    PW_MAX_TOTAL_PAGES: Maximum pages a single plan may produce (default: 500)
    PW_RATE_LIMIT: General API rate limit (default: "100/minute")
    PW_UPLOAD_RATE_LIMIT: Rate limit for processing routes (default: "30/minute")
    PW_MAX_REQUEST_SIZE: Maximum request body size (default: "100M")
    PW_ALLOWED_ORIGINS: Comma-separated CORS origins (default: localhost dev origins)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from pdf_worker.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_ARTIFACT_TTL = 10 * 60
DEFAULT_SWEEP_INTERVAL = 2 * 60
DEFAULT_STALE_PURGE_INTERVAL = 60 * 60
DEFAULT_STALE_FILE_MAX_AGE = 60 * 60
DEFAULT_MAX_TOTAL_PAGES = 500
DEFAULT_RATE_LIMIT = "100/minute"
DEFAULT_UPLOAD_RATE_LIMIT = "30/minute"
DEFAULT_MAX_REQUEST_SIZE = 100 * 1024 * 1024

DEFAULT_ALLOWED_ORIGINS: list[str] = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://localhost:5174",
]

_SIZE_MULTIPLIERS = {
    "K": 1024,
    "M": 1024 * 1024,
    "G": 1024 * 1024 * 1024,
}


def parse_size(value: str) -> int:
    """
    Parse a byte size with an optional K/M/G suffix.

    Args:
        value: Size string such as "512", "10K" or "100M"

    Returns:
        Size in bytes

    Raises:
        ValueError: If the value is not a valid size
    """
    value = value.strip().upper()
    for suffix, multiplier in _SIZE_MULTIPLIERS.items():
        if value.endswith(suffix):
            return int(value[:-1]) * multiplier
    return int(value)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid {name} value: {raw}, using default {default}")
        return default


def _env_size(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return parse_size(raw)
    except ValueError:
        logger.warning(f"Invalid {name} value: {raw}, using default {default}")
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name, "")
    items = [item.strip() for item in raw.split(",") if item.strip()]
    return items or list(default)


@dataclass
class WorkerSettings:
    """Effective configuration for one worker process."""

    data_dir: Path = Path("var")
    artifact_ttl: int = DEFAULT_ARTIFACT_TTL
    sweep_interval: int = DEFAULT_SWEEP_INTERVAL
    stale_purge_interval: int = DEFAULT_STALE_PURGE_INTERVAL
    stale_file_max_age: int = DEFAULT_STALE_FILE_MAX_AGE
    max_total_pages: int = DEFAULT_MAX_TOTAL_PAGES
    rate_limit: str = DEFAULT_RATE_LIMIT
    upload_rate_limit: str = DEFAULT_UPLOAD_RATE_LIMIT
    max_request_size: int = DEFAULT_MAX_REQUEST_SIZE
    allowed_origins: list[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))

    @property
    def downloads_dir(self) -> Path:
        """Directory holding stored artifacts."""
        return self.data_dir / "downloads"

    @property
    def uploads_dir(self) -> Path:
        """Directory holding spooled request uploads."""
        return self.data_dir / "uploads"

    @property
    def outputs_dir(self) -> Path:
        """Scratch directory for intermediate outputs."""
        return self.data_dir / "outputs"

    @classmethod
    def from_env(cls) -> "WorkerSettings":
        """Build settings from PW_* environment variables."""
        return cls(
            data_dir=Path(os.getenv("PW_DATA_DIR", "var")),
            artifact_ttl=_env_int("PW_ARTIFACT_TTL", DEFAULT_ARTIFACT_TTL),
            sweep_interval=_env_int("PW_SWEEP_INTERVAL", DEFAULT_SWEEP_INTERVAL),
            stale_purge_interval=_env_int(
                "PW_STALE_PURGE_INTERVAL", DEFAULT_STALE_PURGE_INTERVAL
            ),
            stale_file_max_age=_env_int("PW_STALE_FILE_MAX_AGE", DEFAULT_STALE_FILE_MAX_AGE),
            max_total_pages=_env_int("PW_MAX_TOTAL_PAGES", DEFAULT_MAX_TOTAL_PAGES),
            rate_limit=os.getenv("PW_RATE_LIMIT", DEFAULT_RATE_LIMIT),
            upload_rate_limit=os.getenv("PW_UPLOAD_RATE_LIMIT", DEFAULT_UPLOAD_RATE_LIMIT),
            max_request_size=_env_size("PW_MAX_REQUEST_SIZE", DEFAULT_MAX_REQUEST_SIZE),
            allowed_origins=_env_list("PW_ALLOWED_ORIGINS", DEFAULT_ALLOWED_ORIGINS),
        )

    def validate(self) -> "WorkerSettings":
        """
        Check settings for consistency.

        Returns:
            The same settings instance, for chaining

        Raises:
            ConfigurationError: If a value is non-positive or the sweep
                interval is not shorter than the artifact TTL
        """
        positive = {
            "artifact_ttl": self.artifact_ttl,
            "sweep_interval": self.sweep_interval,
            "stale_purge_interval": self.stale_purge_interval,
            "stale_file_max_age": self.stale_file_max_age,
            "max_total_pages": self.max_total_pages,
            "max_request_size": self.max_request_size,
        }
        for name, value in positive.items():
            if value <= 0:
                raise ConfigurationError(
                    f"{name} must be positive", details={name: value}
                )

        if self.sweep_interval >= self.artifact_ttl:
            raise ConfigurationError(
                "sweep_interval must be shorter than artifact_ttl",
                details={
                    "sweep_interval": self.sweep_interval,
                    "artifact_ttl": self.artifact_ttl,
                },
            )
        return self

    def ensure_directories(self) -> None:
        """Create the data directories if missing."""
        for directory in (self.downloads_dir, self.uploads_dir, self.outputs_dir):
            directory.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Ensured directory exists: {directory}")

    def as_dict(self) -> dict[str, object]:
        """Return settings as a JSON-friendly dictionary."""
        return {
            "data_dir": str(self.data_dir),
            "artifact_ttl": self.artifact_ttl,
            "sweep_interval": self.sweep_interval,
            "stale_purge_interval": self.stale_purge_interval,
            "stale_file_max_age": self.stale_file_max_age,
            "max_total_pages": self.max_total_pages,
            "rate_limit": self.rate_limit,
            "upload_rate_limit": self.upload_rate_limit,
            "max_request_size": self.max_request_size,
            "allowed_origins": list(self.allowed_origins),
        }
