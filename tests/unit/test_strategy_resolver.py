"""Unit tests for StrategyResolver."""

import pytest

from branchmigrator.exceptions import UnsupportedProviderError
from branchmigrator.models import DatabaseProvider
from branchmigrator.strategies import (
    MigrationStrategy,
    MySqlMigrationStrategy,
    PostgreSqlMigrationStrategy,
    SqliteMigrationStrategy,
    SqlServerMigrationStrategy,
    StrategyResolver,
)
from tests.fixtures import FakeMigrationStrategy


class TestStrategyResolver:
    def test_default_covers_every_provider(self, catalog):
        resolver = StrategyResolver.default(catalog, enable_tracing=False)

        assert set(resolver.providers) == set(DatabaseProvider)
        assert isinstance(resolver.resolve(DatabaseProvider.SQLITE), SqliteMigrationStrategy)
        assert isinstance(
            resolver.resolve(DatabaseProvider.POSTGRESQL), PostgreSqlMigrationStrategy
        )
        assert isinstance(resolver.resolve(DatabaseProvider.MYSQL), MySqlMigrationStrategy)
        assert isinstance(resolver.resolve(DatabaseProvider.MSSQL), SqlServerMigrationStrategy)

    def test_default_strategies_share_catalog(self, catalog):
        resolver = StrategyResolver.default(catalog, enable_tracing=False)

        assert all(resolver.resolve(p).catalog is catalog for p in resolver.providers)

    def test_unknown_provider_raises(self, fake_strategy):
        resolver = StrategyResolver([fake_strategy])

        assert resolver.supports(DatabaseProvider.SQLITE)
        assert not resolver.supports(DatabaseProvider.MSSQL)
        with pytest.raises(UnsupportedProviderError) as exc_info:
            resolver.resolve(DatabaseProvider.MSSQL)
        assert exc_info.value.provider == DatabaseProvider.MSSQL

    def test_register_replaces_existing(self, catalog):
        resolver = StrategyResolver.default(catalog, enable_tracing=False)
        fake = FakeMigrationStrategy(catalog, DatabaseProvider.MYSQL)

        resolver.register(fake)

        assert resolver.resolve(DatabaseProvider.MYSQL) is fake

    def test_strategies_satisfy_protocol(self, catalog, fake_strategy):
        assert isinstance(SqliteMigrationStrategy(catalog, enable_tracing=False), MigrationStrategy)
        assert isinstance(fake_strategy, MigrationStrategy)
