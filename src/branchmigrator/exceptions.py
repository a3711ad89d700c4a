"""
Exceptions raised by the branch migration subsystem.

Every exception carries an ``ErrorClassification`` so that callers (the
orchestrator, dashboards, alerting) can decide how to react without
matching on exception types.

Exception Hierarchy:
    BranchMigrationError (base)
    +-- BranchNotFoundError
    +-- LockContentionError
    +-- InvalidConnectionConfigError
    |   +-- UnsupportedProviderError
    +-- ConnectionFailedError
    +-- SchemaIntegrityViolationError
    +-- NothingToRollbackError
    +-- UnitNotInHistoryError
    +-- UnknownMigrationUnitError
    +-- IrreversibleUnitError
    +-- MigrationCancelledError

Classification:
    - ErrorSeverity: CRITICAL, ERROR, WARNING, INFO
    - ErrorRecoverability: RECOVERABLE, TRANSIENT, FATAL
    - ErrorClassification: error code, category and operator guidance
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID

# Codes the orchestrator matches on when aggregating bulk results.
NOTHING_TO_ROLLBACK = "NOTHING_TO_ROLLBACK"
UNIT_NOT_IN_HISTORY = "UNIT_NOT_IN_HISTORY"
MIGRATION_CANCELLED = "MIGRATION_CANCELLED"


class ErrorSeverity(Enum):
    """
    Severity level of migration errors.

    Attributes:
        CRITICAL: Failure requiring immediate attention (schema drift).
        ERROR: Failure that may require operator intervention.
        WARNING: Issue that may resolve by itself (contention, connectivity).
        INFO: Informational outcome reported through the error channel.
    """

    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def should_alert(self) -> bool:
        """True for CRITICAL and ERROR levels."""
        return self in (ErrorSeverity.CRITICAL, ErrorSeverity.ERROR)

    @property
    def log_level(self) -> int:
        """The corresponding ``logging`` level."""
        level_map = {
            ErrorSeverity.CRITICAL: logging.CRITICAL,
            ErrorSeverity.ERROR: logging.ERROR,
            ErrorSeverity.WARNING: logging.WARNING,
            ErrorSeverity.INFO: logging.INFO,
        }
        return level_map[self]


class ErrorRecoverability(Enum):
    """
    How an error can be recovered from.

    Attributes:
        RECOVERABLE: Recovers after operator action or a later attempt.
        TRANSIENT: Temporary; the caller should back off and retry.
        FATAL: The attempt is lost and needs investigation.
    """

    RECOVERABLE = "recoverable"
    TRANSIENT = "transient"
    FATAL = "fatal"

    @property
    def should_retry(self) -> bool:
        """True only for TRANSIENT errors."""
        return self == ErrorRecoverability.TRANSIENT


@dataclass(frozen=True)
class ErrorClassification:
    """
    Metadata describing an error for automated handling and operators.

    Attributes:
        severity: The severity level of the error.
        recoverability: How the error can be recovered from.
        error_code: Unique error code for programmatic handling.
        category: Error category for grouping related errors.
        suggested_action: Human-readable guidance for operators.
    """

    severity: ErrorSeverity
    recoverability: ErrorRecoverability
    error_code: str
    category: str
    suggested_action: str

    def to_dict(self) -> dict[str, Any]:
        """Convert classification to dictionary for serialization."""
        return {
            "severity": self.severity.value,
            "recoverability": self.recoverability.value,
            "error_code": self.error_code,
            "category": self.category,
            "suggested_action": self.suggested_action,
        }


class BranchMigrationError(Exception):
    """
    Base exception for all branch migration errors.

    Attributes:
        message: Human-readable error description.
        branch_id: The branch involved, if applicable.
        classification: Classification metadata of the concrete error type.
    """

    _default_classification: ErrorClassification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="BRANCH_MIGRATION_ERROR",
        category="general",
        suggested_action="Review migration logs for the branch",
    )

    def __init__(self, message: str, *, branch_id: UUID | None = None) -> None:
        self.message = message
        self.branch_id = branch_id
        super().__init__(message)

    def __str__(self) -> str:
        return self.message

    @property
    def classification(self) -> ErrorClassification:
        return self._default_classification

    @property
    def severity(self) -> ErrorSeverity:
        return self.classification.severity

    @property
    def recoverability(self) -> ErrorRecoverability:
        return self.classification.recoverability

    @property
    def error_code(self) -> str:
        return self.classification.error_code

    def to_dict(self) -> dict[str, Any]:
        """Convert the exception to a dictionary for API responses and logs."""
        return {
            "message": self.message,
            "branch_id": str(self.branch_id) if self.branch_id else None,
            "error_code": self.error_code,
            "classification": self.classification.to_dict(),
        }


class BranchNotFoundError(BranchMigrationError):
    """Raised when the branch registry has no branch with the given id."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="BRANCH_NOT_FOUND",
        category="lookup",
        suggested_action="Verify the branch id exists in the branch registry",
    )

    def __init__(self, branch_id: UUID) -> None:
        super().__init__(f"Branch not found: {branch_id}", branch_id=branch_id)


class LockContentionError(BranchMigrationError):
    """
    Raised when another owner holds a live migration lease on the branch.

    Transient: the caller should back off and retry later, not immediately.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="LOCK_CONTENTION",
        category="concurrency",
        suggested_action="Another migration operation is running; retry after it finishes",
    )

    def __init__(self, branch_id: UUID, owner_id: str | None = None) -> None:
        self.owner_id = owner_id
        super().__init__(
            f"Migration already in progress for branch {branch_id}",
            branch_id=branch_id,
        )


class InvalidConnectionConfigError(BranchMigrationError):
    """Raised when a branch's connection coordinates cannot form a target."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="INVALID_CONNECTION_CONFIG",
        category="configuration",
        suggested_action="Fix the branch database settings in branch administration",
    )

    def __init__(self, message: str, *, branch_id: UUID | None = None) -> None:
        super().__init__(message, branch_id=branch_id)


class UnsupportedProviderError(InvalidConnectionConfigError):
    """Raised when no strategy or driver exists for a declared provider."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="UNSUPPORTED_PROVIDER",
        category="configuration",
        suggested_action="Register a migration strategy for the provider",
    )

    def __init__(self, provider: object, *, branch_id: UUID | None = None) -> None:
        self.provider = provider
        super().__init__(
            f"Database provider {provider} is not supported for migrations",
            branch_id=branch_id,
        )


class ConnectionFailedError(BranchMigrationError):
    """Raised when the branch database is unreachable. Transient."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="CONNECTION_FAILED",
        category="connectivity",
        suggested_action="Check that the branch database server is reachable",
    )

    def __init__(self, branch_id: UUID | None = None, branch_code: str | None = None) -> None:
        self.branch_code = branch_code
        target = branch_code or str(branch_id)
        super().__init__(
            f"Cannot connect to branch database for {target}",
            branch_id=branch_id,
        )


class SchemaIntegrityViolationError(BranchMigrationError):
    """
    Raised when a branch schema does not match its applied-units ledger.

    Fatal for the current attempt; the schema needs investigation.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.CRITICAL,
        recoverability=ErrorRecoverability.FATAL,
        error_code="SCHEMA_INTEGRITY_VIOLATION",
        category="integrity",
        suggested_action="Inspect the branch schema for drift against the migration ledger",
    )

    def __init__(self, branch_id: UUID | None = None, operation: str = "migration") -> None:
        self.operation = operation
        super().__init__(
            f"Schema integrity validation failed after {operation}",
            branch_id=branch_id,
        )


class NothingToRollbackError(BranchMigrationError):
    """Raised when a rollback is requested but the ledger is empty."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.INFO,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code=NOTHING_TO_ROLLBACK,
        category="state",
        suggested_action="No migration units are applied to this branch",
    )

    def __init__(self, branch_id: UUID | None = None) -> None:
        super().__init__("No applied migration units to roll back", branch_id=branch_id)


class UnitNotInHistoryError(BranchMigrationError):
    """
    Raised when force-removing a unit the branch ledger does not contain.

    Benign when force-removing across many branches: the branch is
    already consistent.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.INFO,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code=UNIT_NOT_IN_HISTORY,
        category="state",
        suggested_action="Nothing to remove; the branch ledger is already clean",
    )

    def __init__(self, unit_name: str, branch_id: UUID | None = None) -> None:
        self.unit_name = unit_name
        super().__init__(
            f"Migration unit {unit_name} not found in branch history",
            branch_id=branch_id,
        )


class UnknownMigrationUnitError(BranchMigrationError):
    """Raised when a unit name is not part of the provider's catalog."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="UNKNOWN_MIGRATION_UNIT",
        category="catalog",
        suggested_action="Check the unit name against the migration catalog",
    )

    def __init__(self, unit_name: str) -> None:
        self.unit_name = unit_name
        super().__init__(f"Unknown migration unit: {unit_name}")


class IrreversibleUnitError(BranchMigrationError):
    """Raised when rolling back a unit that defines no downgrade steps."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="IRREVERSIBLE_UNIT",
        category="catalog",
        suggested_action="Repair the schema manually, then force-remove the unit",
    )

    def __init__(self, unit_name: str) -> None:
        self.unit_name = unit_name
        super().__init__(f"Migration unit {unit_name} cannot be rolled back")


class MigrationCancelledError(BranchMigrationError):
    """Raised between units when the caller's cancellation signal is set."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code=MIGRATION_CANCELLED,
        category="cancellation",
        suggested_action="Re-run the operation; units already applied are kept",
    )

    def __init__(self, completed_units: list[str] | None = None) -> None:
        self.completed_units = list(completed_units or [])
        super().__init__(
            f"Migration cancelled after {len(self.completed_units)} unit(s)",
        )


__all__ = [
    "NOTHING_TO_ROLLBACK",
    "UNIT_NOT_IN_HISTORY",
    "MIGRATION_CANCELLED",
    "ErrorSeverity",
    "ErrorRecoverability",
    "ErrorClassification",
    "BranchMigrationError",
    "BranchNotFoundError",
    "LockContentionError",
    "InvalidConnectionConfigError",
    "UnsupportedProviderError",
    "ConnectionFailedError",
    "SchemaIntegrityViolationError",
    "NothingToRollbackError",
    "UnitNotInHistoryError",
    "UnknownMigrationUnitError",
    "IrreversibleUnitError",
    "MigrationCancelledError",
]
