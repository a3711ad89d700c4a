"""
Standard span attributes for branchmigrator.

Attribute names follow OpenTelemetry semantic conventions where one
exists (``db.system``, ``error.type``) and use the ``branchmigrator.``
namespace otherwise.

Example:
    >>> from branchmigrator.observability.attributes import ATTR_BRANCH_ID
    >>>
    >>> with tracer.span(
    ...     "branchmigrator.orchestrator.apply",
    ...     {ATTR_BRANCH_ID: str(branch_id)},
    ... ):
    ...     pass
"""

# =============================================================================
# Branch Attributes
# =============================================================================

ATTR_BRANCH_ID = "branchmigrator.branch.id"
"""Identifier of the branch being migrated (UUID string)."""

ATTR_BRANCH_CODE = "branchmigrator.branch.code"
"""Short human-readable branch code (e.g., 'RYD-01')."""

# =============================================================================
# Database Attributes (OTEL semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database engine backing the branch (sqlite, postgresql, mysql, mssql)."""

# =============================================================================
# Migration Attributes
# =============================================================================

ATTR_MIGRATION_STATUS = "branchmigrator.migration.status"
"""Migration status of the branch after the operation."""

ATTR_MIGRATION_UNIT = "branchmigrator.migration.unit"
"""Name of a single migration unit."""

ATTR_MIGRATION_UNIT_COUNT = "branchmigrator.migration.unit_count"
"""Number of units affected by an operation (integer)."""

ATTR_MIGRATION_TARGET_UNIT = "branchmigrator.migration.target_unit"
"""Target unit of an apply or rollback ('' for the empty schema)."""

ATTR_BRANCHES_PROCESSED = "branchmigrator.migration.branches_processed"
"""Number of branches visited by a bulk operation (integer)."""

ATTR_BRANCHES_SUCCEEDED = "branchmigrator.migration.branches_succeeded"
"""Number of branches a bulk operation succeeded on (integer)."""

ATTR_BRANCHES_FAILED = "branchmigrator.migration.branches_failed"
"""Number of branches a bulk operation failed on (integer)."""

# =============================================================================
# Lock Attributes
# =============================================================================

ATTR_LOCK_OWNER = "branchmigrator.lock.owner"
"""Opaque owner token of a migration lease."""

ATTR_LOCK_ACQUIRED = "branchmigrator.lock.acquired"
"""Whether the lease was acquired (boolean)."""

# =============================================================================
# Error and Retry Attributes
# =============================================================================

ATTR_RETRY_COUNT = "branchmigrator.retry.count"
"""Consecutive failure count recorded for the branch (integer)."""

ATTR_ERROR_TYPE = "error.type"
"""Exception class name for failed operations."""

__all__ = [
    "ATTR_BRANCH_ID",
    "ATTR_BRANCH_CODE",
    "ATTR_DB_SYSTEM",
    "ATTR_MIGRATION_STATUS",
    "ATTR_MIGRATION_UNIT",
    "ATTR_MIGRATION_UNIT_COUNT",
    "ATTR_MIGRATION_TARGET_UNIT",
    "ATTR_BRANCHES_PROCESSED",
    "ATTR_BRANCHES_SUCCEEDED",
    "ATTR_BRANCHES_FAILED",
    "ATTR_LOCK_OWNER",
    "ATTR_LOCK_ACQUIRED",
    "ATTR_RETRY_COUNT",
    "ATTR_ERROR_TYPE",
]
