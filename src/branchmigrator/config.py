"""
Configuration for the migration orchestrator and its scheduler.

This module provides:
- OrchestratorConfig: Lease, retry and connection settings
- SchedulerConfig: Timing of the periodic all-branches check
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

DEFAULT_LEASE_DURATION = timedelta(minutes=10)
DEFAULT_MAX_RETRY_ATTEMPTS = 3


@dataclass(frozen=True)
class OrchestratorConfig:
    """
    Configuration for BranchMigrationOrchestrator.

    Attributes:
        lease_duration: How long a migration lease stays valid. Upper bound
            on how long a crashed operation keeps a branch busy.
        max_retry_attempts: Consecutive failures after which a branch is
            escalated to RequiresManualIntervention.
        skip_manual_intervention_in_bulk: Whether bulk apply skips branches
            waiting for an operator.
        sqlite_root: Directory under which SQLite branch databases live
            (``<sqlite_root>/<code>/Database/<code>.db``).
        connect_timeout: Seconds allowed for a reachability probe.
        enable_tracing: Whether components emit OpenTelemetry spans.

    Example:
        >>> config = OrchestratorConfig(lease_duration=timedelta(minutes=30))
        >>> config = OrchestratorConfig.from_env()
    """

    lease_duration: timedelta = DEFAULT_LEASE_DURATION
    max_retry_attempts: int = DEFAULT_MAX_RETRY_ATTEMPTS
    skip_manual_intervention_in_bulk: bool = True
    sqlite_root: Path = field(default_factory=lambda: Path("Upload") / "Branches")
    connect_timeout: float = 10.0
    enable_tracing: bool = True

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.lease_duration <= timedelta(0):
            raise ValueError(f"lease_duration must be positive, got {self.lease_duration}")
        if self.max_retry_attempts < 1:
            raise ValueError(f"max_retry_attempts must be >= 1, got {self.max_retry_attempts}")
        if self.connect_timeout <= 0:
            raise ValueError(f"connect_timeout must be positive, got {self.connect_timeout}")

    @classmethod
    def from_env(
        cls,
        prefix: str = "BRANCH_MIGRATOR_",
        environ: Mapping[str, str] | None = None,
    ) -> OrchestratorConfig:
        """
        Build a configuration from environment variables.

        Recognised variables (with the default prefix):
            BRANCH_MIGRATOR_LEASE_MINUTES
            BRANCH_MIGRATOR_MAX_RETRY_ATTEMPTS
            BRANCH_MIGRATOR_SKIP_MANUAL_INTERVENTION
            BRANCH_MIGRATOR_SQLITE_ROOT
            BRANCH_MIGRATOR_CONNECT_TIMEOUT
            BRANCH_MIGRATOR_ENABLE_TRACING

        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def get(name: str) -> str | None:
            value = env.get(f"{prefix}{name}")
            return value.strip() if value is not None and value.strip() else None

        lease = get("LEASE_MINUTES")
        retries = get("MAX_RETRY_ATTEMPTS")
        skip = get("SKIP_MANUAL_INTERVENTION")
        sqlite_root = get("SQLITE_ROOT")
        timeout = get("CONNECT_TIMEOUT")
        tracing = get("ENABLE_TRACING")

        return cls(
            lease_duration=(
                timedelta(minutes=float(lease)) if lease else defaults.lease_duration
            ),
            max_retry_attempts=int(retries) if retries else defaults.max_retry_attempts,
            skip_manual_intervention_in_bulk=(
                _parse_bool(skip) if skip else defaults.skip_manual_intervention_in_bulk
            ),
            sqlite_root=Path(sqlite_root) if sqlite_root else defaults.sqlite_root,
            connect_timeout=float(timeout) if timeout else defaults.connect_timeout,
            enable_tracing=_parse_bool(tracing) if tracing else defaults.enable_tracing,
        )


@dataclass(frozen=True)
class SchedulerConfig:
    """
    Timing of the periodic migration check.

    Attributes:
        initial_delay: Wait before the first run, so the host application
            finishes starting up.
        check_interval: Wait between the end of one run and the next.
    """

    initial_delay: timedelta = timedelta(seconds=30)
    check_interval: timedelta = timedelta(minutes=5)

    def __post_init__(self) -> None:
        if self.initial_delay < timedelta(0):
            raise ValueError(f"initial_delay must be >= 0, got {self.initial_delay}")
        if self.check_interval <= timedelta(0):
            raise ValueError(f"check_interval must be positive, got {self.check_interval}")


def _parse_bool(value: str) -> bool:
    lowered = value.lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Cannot interpret {value!r} as a boolean")


__all__ = [
    "DEFAULT_LEASE_DURATION",
    "DEFAULT_MAX_RETRY_ATTEMPTS",
    "OrchestratorConfig",
    "SchedulerConfig",
]
