"""
Data models for the branch migration subsystem.

Enums:
    - DatabaseProvider: Storage engine backing a branch database
    - SslMode: Transport security requested for networked engines
    - MigrationStatus: Per-branch migration lifecycle status

Registry record:
    - Branch: Read-only branch record consumed from the branch registry

State and results:
    - BranchMigrationState: Persistent per-branch migration record
    - MigrationResult: Ephemeral outcome of an orchestrator operation
    - MigrationHistory: Read-only projection of a branch's migration state
    - BranchStatusView: Dashboard row for the status listing
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


class DatabaseProvider(Enum):
    """
    Storage engine declared by a branch.

    Attributes:
        SQLITE: Embedded file database stored next to the head office.
        MSSQL: Microsoft SQL Server.
        POSTGRESQL: PostgreSQL.
        MYSQL: MySQL / MariaDB.
    """

    SQLITE = "sqlite"
    MSSQL = "mssql"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"

    @property
    def is_embedded(self) -> bool:
        """True for engines that live in a local file."""
        return self == DatabaseProvider.SQLITE


class SslMode(Enum):
    """Transport security mode for PostgreSQL and MySQL branches."""

    DISABLE = "disable"
    REQUIRE = "require"
    VERIFY_CA = "verify_ca"
    VERIFY_FULL = "verify_full"


class MigrationStatus(Enum):
    """
    Migration status of a branch.

    State machine:
        PENDING -> IN_PROGRESS -> COMPLETED
                               -> FAILED -> IN_PROGRESS (retry)
                               -> REQUIRES_MANUAL_INTERVENTION (retry_count >= 3)
        COMPLETED -> IN_PROGRESS (new pending units appear later)

    REQUIRES_MANUAL_INTERVENTION is not retried by scheduled bulk runs
    until an operator intervenes.
    """

    PENDING = "pending"
    """No migration attempt recorded yet."""

    IN_PROGRESS = "in_progress"
    """An operation holds the branch and is changing its schema."""

    COMPLETED = "completed"
    """All requested units applied (or rolled back) successfully."""

    FAILED = "failed"
    """Last attempt failed; will be retried automatically."""

    REQUIRES_MANUAL_INTERVENTION = "requires_manual_intervention"
    """Repeated failures; excluded from automatic retries."""

    @property
    def requires_operator(self) -> bool:
        """True when automatic retries are suspended for the branch."""
        return self == MigrationStatus.REQUIRES_MANUAL_INTERVENTION

    @property
    def is_failure(self) -> bool:
        """True for FAILED and REQUIRES_MANUAL_INTERVENTION."""
        return self in (
            MigrationStatus.FAILED,
            MigrationStatus.REQUIRES_MANUAL_INTERVENTION,
        )


class Branch(BaseModel):
    """
    One retail branch as recorded in the branch registry.

    The orchestrator only reads branches; they are created and edited by
    branch administration.

    Attributes:
        id: Branch identifier
        code: Short unique branch code (used for SQLite file names and
            for prefixing aggregated unit names)
        name: Display name
        provider: Storage engine of the branch database
        is_active: Inactive branches are skipped by bulk operations
        db_server: Host name of a networked engine
        db_name: Database (catalog) name
        db_port: TCP port, 0 for the engine default
        db_username: Login name, None for integrated security (SQL Server)
        db_password: Login password
        db_additional_params: Extra driver parameters ("key=value;key=value")
        ssl_mode: Transport security for PostgreSQL and MySQL
        trust_server_certificate: Skip certificate validation (SQL Server)
    """

    model_config = ConfigDict(frozen=True)

    id: UUID
    code: str = Field(..., min_length=1, max_length=20)
    name: str = ""
    provider: DatabaseProvider
    is_active: bool = True

    db_server: str = ""
    db_name: str = ""
    db_port: int = Field(default=0, ge=0, le=65535)
    db_username: str | None = None
    db_password: SecretStr | None = None
    db_additional_params: str | None = None

    ssl_mode: SslMode = SslMode.DISABLE
    trust_server_certificate: bool = False

    @field_validator("code")
    @classmethod
    def _code_is_path_safe(cls, value: str) -> str:
        # The code becomes a directory and file name for SQLite branches.
        if any(ch in value for ch in "/\\:") or value in (".", ".."):
            raise ValueError(f"branch code {value!r} contains path separators")
        return value


@dataclass
class BranchMigrationState:
    """
    Persistent migration record of one branch, created lazily on first touch.

    Attributes:
        branch_id: Branch the record belongs to (unique)
        status: Current migration status
        last_migration_applied: Newest applied unit name, or ""
        retry_count: Consecutive failure counter, reset to 0 on success
        error_details: Last failure message, cleared on success
        lock_owner_id: Token of the current lease holder, None when unlocked
        lock_expires_at: Lease expiry, None when unlocked
        last_attempt_at: When an operation last touched the status
        created_at: When the record was created
        updated_at: When the record was last written
    """

    branch_id: UUID
    status: MigrationStatus = MigrationStatus.PENDING
    last_migration_applied: str = ""
    retry_count: int = 0
    error_details: str | None = None
    lock_owner_id: str | None = None
    lock_expires_at: datetime | None = None
    last_attempt_at: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def is_locked(self, now: datetime | None = None) -> bool:
        """True if a lease is held and has not expired at ``now``."""
        if self.lock_owner_id is None or self.lock_expires_at is None:
            return False
        return self.lock_expires_at >= (now or datetime.now(UTC))

    def lock_is_stale(self, now: datetime | None = None) -> bool:
        """True if an owner is recorded but its lease has run out or has no expiry."""
        if self.lock_owner_id is None:
            return False
        return self.lock_expires_at is None or self.lock_expires_at < (now or datetime.now(UTC))


@dataclass
class MigrationResult:
    """
    Outcome of an orchestrator operation. Never persisted.

    Single-branch operations fill the unit lists with plain unit names;
    bulk operations prefix each name with the branch code ("[CODE] name").

    Attributes:
        success: Whether the operation succeeded overall
        applied_units: Units applied by the operation
        rolled_back_units: Units reverted by the operation
        removed_units: Ledger entries struck by force-remove
        branches_processed: Branches the operation attempted
        branches_succeeded: Branches the operation succeeded on
        branches_failed: Branches the operation failed on
        branches_skipped: Branches excluded (manual intervention pending)
        duration: Elapsed wall-clock time
        error_message: Failure description, or an informational note
        error_code: Error code of the failure, if any
    """

    success: bool = False
    applied_units: list[str] = field(default_factory=list)
    rolled_back_units: list[str] = field(default_factory=list)
    removed_units: list[str] = field(default_factory=list)
    branches_processed: int = 0
    branches_succeeded: int = 0
    branches_failed: int = 0
    branches_skipped: int = 0
    duration: timedelta = field(default_factory=timedelta)
    error_message: str | None = None
    error_code: str | None = None

    def merge_branch(self, branch_code: str, branch_result: MigrationResult) -> None:
        """
        Fold a single-branch result into this aggregate.

        Unit names are prefixed with the branch code. Counters and the
        overall success flag are left to the caller, because what counts
        as a failure differs between bulk operations.
        """
        self.applied_units.extend(f"[{branch_code}] {u}" for u in branch_result.applied_units)
        self.rolled_back_units.extend(
            f"[{branch_code}] {u}" for u in branch_result.rolled_back_units
        )
        self.removed_units.extend(f"[{branch_code}] {u}" for u in branch_result.removed_units)

    def add_failed_branch(self, branch_code: str, label: str = "Failed branches") -> None:
        """
        Append a branch code to the aggregated error message.

        Codes sharing a label are listed together:
        ``"Requires manual intervention: SF; Failed branches: NYC, LA"``.
        """
        prefix = f"{label}: "
        segments = self.error_message.split("; ") if self.error_message else []
        for index, segment in enumerate(segments):
            if segment.startswith(prefix):
                segments[index] = f"{segment}, {branch_code}"
                break
        else:
            segments.append(f"{prefix}{branch_code}")
        self.error_message = "; ".join(segments)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "success": self.success,
            "applied_units": list(self.applied_units),
            "rolled_back_units": list(self.rolled_back_units),
            "removed_units": list(self.removed_units),
            "branches_processed": self.branches_processed,
            "branches_succeeded": self.branches_succeeded,
            "branches_failed": self.branches_failed,
            "branches_skipped": self.branches_skipped,
            "duration_seconds": self.duration.total_seconds(),
            "error_message": self.error_message,
            "error_code": self.error_code,
        }


@dataclass(frozen=True)
class MigrationHistory:
    """
    Read-only view of a branch's migration progress, assembled on demand.

    Attributes:
        branch_id: Branch the history belongs to
        branch_code: Code of the branch
        applied_units: Units in the branch ledger, in application order
        pending_units: Catalog units not yet applied, in dependency order
        last_attempt_at: When an operation last touched the branch
        status: Current migration status
        retry_count: Consecutive failure counter
        error_details: Last failure message
    """

    branch_id: UUID
    branch_code: str
    applied_units: list[str]
    pending_units: list[str]
    last_attempt_at: datetime | None
    status: MigrationStatus
    retry_count: int
    error_details: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "branch_id": str(self.branch_id),
            "branch_code": self.branch_code,
            "applied_units": list(self.applied_units),
            "pending_units": list(self.pending_units),
            "last_attempt_at": self.last_attempt_at.isoformat() if self.last_attempt_at else None,
            "status": self.status.value,
            "retry_count": self.retry_count,
            "error_details": self.error_details,
        }


@dataclass(frozen=True)
class BranchStatusView:
    """One row of the migration status dashboard."""

    branch_id: UUID
    branch_code: str
    branch_name: str
    status: MigrationStatus
    last_migration_applied: str
    last_attempt_at: datetime | None
    retry_count: int
    error_details: str | None
    is_locked: bool
    lock_expires_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "branch_id": str(self.branch_id),
            "branch_code": self.branch_code,
            "branch_name": self.branch_name,
            "status": self.status.value,
            "last_migration_applied": self.last_migration_applied,
            "last_attempt_at": self.last_attempt_at.isoformat() if self.last_attempt_at else None,
            "retry_count": self.retry_count,
            "error_details": self.error_details,
            "is_locked": self.is_locked,
            "lock_expires_at": self.lock_expires_at.isoformat() if self.lock_expires_at else None,
        }


__all__ = [
    "DatabaseProvider",
    "SslMode",
    "MigrationStatus",
    "Branch",
    "BranchMigrationState",
    "MigrationResult",
    "MigrationHistory",
    "BranchStatusView",
]
