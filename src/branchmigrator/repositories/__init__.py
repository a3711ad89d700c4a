"""
Persistence for the migration subsystem.

- **Migration state**: Per-branch status, retry counter and migration lease
- **Branch registry**: Read access to branch records and connection coordinates

Each repository type provides a Protocol, an in-memory implementation for
tests, and a SQLAlchemy implementation for the head-office database.
"""

from branchmigrator.repositories.branches import (
    BranchRegistry,
    InMemoryBranchRegistry,
    SQLAlchemyBranchRegistry,
)
from branchmigrator.repositories.migration_state import (
    InMemoryMigrationStateStore,
    MigrationStateStore,
    SQLAlchemyMigrationStateStore,
)

__all__ = [
    "BranchRegistry",
    "InMemoryBranchRegistry",
    "SQLAlchemyBranchRegistry",
    "MigrationStateStore",
    "InMemoryMigrationStateStore",
    "SQLAlchemyMigrationStateStore",
]
