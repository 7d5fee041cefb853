"""
Engine configuration schema.

Frozen dataclasses produced by ``clm_config.loader``.  Nothing here reads
files or the environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from clm_kernel.domain.contract import DEFAULT_TRACKED_FIELDS, TrackedField


@dataclass(frozen=True)
class WorkflowSettings:
    """Approval workflow switches."""

    finance_approval_required: bool = True
    reference_prefix: str | None = None
    expiry_reminder_days: tuple[int, ...] = (30, 7, 1)


@dataclass(frozen=True)
class VersioningSettings:
    """Snapshot tracking and diff presentation."""

    tracked_fields: tuple[TrackedField, ...] = DEFAULT_TRACKED_FIELDS
    diff_context_lines: int = 3
    split_html_blocks: bool = False

    @property
    def labels(self) -> dict[str, str]:
        return {tf.name: tf.label for tf in self.tracked_fields}


@dataclass(frozen=True)
class RetrySettings:
    """Bounded retry of version writes that lost a sequence race."""

    max_attempts: int = 3
    backoff_initial_seconds: float = 0.05
    backoff_max_seconds: float = 1.0


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///clm.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 3600


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class EngineConfig:
    """Complete runtime configuration."""

    workflow: WorkflowSettings = field(default_factory=WorkflowSettings)
    versioning: VersioningSettings = field(default_factory=VersioningSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
