"""
branchmigrator - Schema migration orchestration for branch databases.

This library provides:
- Provider strategies for SQLite, PostgreSQL, MySQL and SQL Server branches
- Lease-based migration locks that survive process crashes
- Per-branch migration state with retry counting and escalation
- An orchestrator for apply / rollback / force-remove, per branch or for all
- A periodic scheduler keeping every branch up to date
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("branch-migrator")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from branchmigrator.catalog import MigrationCatalog, MigrationUnit
from branchmigrator.config import OrchestratorConfig, SchedulerConfig
from branchmigrator.connections import (
    BranchContext,
    ConnectionFactory,
    mask_connection_string,
)
from branchmigrator.exceptions import (
    BranchMigrationError,
    BranchNotFoundError,
    ConnectionFailedError,
    ErrorClassification,
    ErrorRecoverability,
    ErrorSeverity,
    InvalidConnectionConfigError,
    IrreversibleUnitError,
    LockContentionError,
    MigrationCancelledError,
    NothingToRollbackError,
    SchemaIntegrityViolationError,
    UnitNotInHistoryError,
    UnknownMigrationUnitError,
    UnsupportedProviderError,
)
from branchmigrator.locks import LeaseInfo, LeaseLockManager
from branchmigrator.models import (
    Branch,
    BranchMigrationState,
    BranchStatusView,
    DatabaseProvider,
    MigrationHistory,
    MigrationResult,
    MigrationStatus,
    SslMode,
)
from branchmigrator.orchestrator import BranchMigrationOrchestrator
from branchmigrator.repositories import (
    BranchRegistry,
    InMemoryBranchRegistry,
    InMemoryMigrationStateStore,
    MigrationStateStore,
    SQLAlchemyBranchRegistry,
    SQLAlchemyMigrationStateStore,
)
from branchmigrator.scheduler import MigrationScheduler
from branchmigrator.schema import create_head_office_schema
from branchmigrator.strategies import (
    BaseMigrationStrategy,
    MigrationStrategy,
    MySqlMigrationStrategy,
    PostgreSqlMigrationStrategy,
    SqliteMigrationStrategy,
    SqlServerMigrationStrategy,
    StrategyResolver,
)

__all__ = [
    "__version__",
    # Catalog
    "MigrationUnit",
    "MigrationCatalog",
    # Configuration
    "OrchestratorConfig",
    "SchedulerConfig",
    # Connections
    "BranchContext",
    "ConnectionFactory",
    "mask_connection_string",
    # Exceptions
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
    # Locks
    "LeaseInfo",
    "LeaseLockManager",
    # Models
    "DatabaseProvider",
    "SslMode",
    "MigrationStatus",
    "Branch",
    "BranchMigrationState",
    "MigrationResult",
    "MigrationHistory",
    "BranchStatusView",
    # Orchestration
    "BranchMigrationOrchestrator",
    "MigrationScheduler",
    # Repositories
    "BranchRegistry",
    "InMemoryBranchRegistry",
    "SQLAlchemyBranchRegistry",
    "MigrationStateStore",
    "InMemoryMigrationStateStore",
    "SQLAlchemyMigrationStateStore",
    "create_head_office_schema",
    # Strategies
    "MigrationStrategy",
    "BaseMigrationStrategy",
    "SqliteMigrationStrategy",
    "PostgreSqlMigrationStrategy",
    "MySqlMigrationStrategy",
    "SqlServerMigrationStrategy",
    "StrategyResolver",
]
