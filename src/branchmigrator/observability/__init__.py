"""
Observability utilities for branchmigrator.

Provides the composition-based tracer used by every component and the
standard span attribute names, so spans emitted by the lock manager,
the state store, the provider strategies and the orchestrator share
one vocabulary.

Example:
    >>> from branchmigrator.observability import create_tracer, ATTR_BRANCH_ID
    >>>
    >>> class MyComponent:
    ...     def __init__(self, enable_tracing: bool = True):
    ...         self._tracer = create_tracer(__name__, enable_tracing)
    ...
    ...     async def run(self, branch_id: str) -> None:
    ...         with self._tracer.span("branchmigrator.component.run", {ATTR_BRANCH_ID: branch_id}):
    ...             ...
"""

from branchmigrator.observability.attributes import (
    ATTR_BRANCH_CODE,
    ATTR_BRANCH_ID,
    ATTR_BRANCHES_FAILED,
    ATTR_BRANCHES_PROCESSED,
    ATTR_BRANCHES_SUCCEEDED,
    ATTR_DB_SYSTEM,
    ATTR_ERROR_TYPE,
    ATTR_LOCK_ACQUIRED,
    ATTR_LOCK_OWNER,
    ATTR_MIGRATION_STATUS,
    ATTR_MIGRATION_TARGET_UNIT,
    ATTR_MIGRATION_UNIT,
    ATTR_MIGRATION_UNIT_COUNT,
    ATTR_RETRY_COUNT,
)
from branchmigrator.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)

__all__ = [
    # Tracer
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    # Attributes - Branch
    "ATTR_BRANCH_ID",
    "ATTR_BRANCH_CODE",
    # Attributes - Database
    "ATTR_DB_SYSTEM",
    # Attributes - Migration
    "ATTR_MIGRATION_STATUS",
    "ATTR_MIGRATION_UNIT",
    "ATTR_MIGRATION_UNIT_COUNT",
    "ATTR_MIGRATION_TARGET_UNIT",
    "ATTR_BRANCHES_PROCESSED",
    "ATTR_BRANCHES_SUCCEEDED",
    "ATTR_BRANCHES_FAILED",
    # Attributes - Lock
    "ATTR_LOCK_OWNER",
    "ATTR_LOCK_ACQUIRED",
    # Attributes - Error/Retry
    "ATTR_RETRY_COUNT",
    "ATTR_ERROR_TYPE",
]
