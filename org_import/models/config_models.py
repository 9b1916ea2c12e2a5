from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the organization structure import.

These are the typed form of config/import.yml; org_import/config/loader.py builds
them after schema validation and applies the defaults declared here.
"""

__all__ = [
    "BatchConfig",
    "HierarchyLimits",
    "DatabaseConfig",
    "ImportConfig",
]


@dataclass(frozen=True)
class BatchConfig:
    """Batch controller settings.

    `batch_size` None means the size is derived from the item count
    (see calculate_optimal_batch_size), clamped to min/max.
    Delays are in seconds.
    """
    batch_size: int | None = None
    min_batch_size: int = 10
    max_batch_size: int = 200
    delay_between_batches: float = 0.1
    retry_attempts: int = 2  # retries after the first attempt
    retry_delay: float = 1.0  # wait before the first retry
    backoff_factor: float = 2.0  # growth of the wait between retries
    max_retry_delay: float = 30.0


@dataclass(frozen=True)
class HierarchyLimits:
    """Limits applied when validating hierarchy moves."""
    max_depth: int = 10
    depth_warning_margin: int = 2  # warn when depth >= max_depth - margin
    large_subtree_threshold: int = 20


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration.

    Used as fallback when environment variables are not set.
    Environment variables take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class ImportConfig:
    """Root configuration object for an import run."""
    organization_id: str  # tenant the rows are written to
    batch: BatchConfig = field(default_factory=BatchConfig)
    hierarchy: HierarchyLimits = field(default_factory=HierarchyLimits)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    error_log_dir: str = "./logs"
