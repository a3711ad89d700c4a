"""
Provider strategies: one migration strategy per storage engine.

Example:
    >>> from branchmigrator.strategies import StrategyResolver
    >>>
    >>> resolver = StrategyResolver.default(catalog)
    >>> strategy = resolver.resolve(DatabaseProvider.SQLITE)
    >>> pending = await strategy.get_pending_units(context)
"""

from branchmigrator.strategies.base import BaseMigrationStrategy, MigrationStrategy
from branchmigrator.strategies.mssql import SqlServerMigrationStrategy
from branchmigrator.strategies.mysql import MySqlMigrationStrategy
from branchmigrator.strategies.postgresql import PostgreSqlMigrationStrategy
from branchmigrator.strategies.resolver import StrategyResolver
from branchmigrator.strategies.sqlite import SqliteMigrationStrategy

__all__ = [
    "MigrationStrategy",
    "BaseMigrationStrategy",
    "SqliteMigrationStrategy",
    "PostgreSqlMigrationStrategy",
    "MySqlMigrationStrategy",
    "SqlServerMigrationStrategy",
    "StrategyResolver",
]
