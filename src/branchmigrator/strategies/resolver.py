"""Maps a branch's declared provider to its migration strategy."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from branchmigrator.catalog import MigrationCatalog
from branchmigrator.exceptions import UnsupportedProviderError
from branchmigrator.models import DatabaseProvider
from branchmigrator.observability import Tracer
from branchmigrator.strategies.base import MigrationStrategy
from branchmigrator.strategies.mssql import SqlServerMigrationStrategy
from branchmigrator.strategies.mysql import MySqlMigrationStrategy
from branchmigrator.strategies.postgresql import PostgreSqlMigrationStrategy
from branchmigrator.strategies.sqlite import SqliteMigrationStrategy

logger = logging.getLogger(__name__)


class StrategyResolver:
    """
    Lookup table from ``DatabaseProvider`` to strategy instance.

    Example:
        >>> resolver = StrategyResolver.default(catalog)
        >>> strategy = resolver.resolve(branch.provider)
    """

    def __init__(self, strategies: Iterable[MigrationStrategy] = ()) -> None:
        self._strategies: dict[DatabaseProvider, MigrationStrategy] = {}
        for strategy in strategies:
            self.register(strategy)

    @classmethod
    def default(
        cls,
        catalog: MigrationCatalog,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> StrategyResolver:
        """Resolver with the built-in strategy for every supported engine."""
        return cls(
            strategy_cls(catalog, tracer=tracer, enable_tracing=enable_tracing)
            for strategy_cls in (
                SqliteMigrationStrategy,
                PostgreSqlMigrationStrategy,
                MySqlMigrationStrategy,
                SqlServerMigrationStrategy,
            )
        )

    def register(self, strategy: MigrationStrategy) -> None:
        """Register ``strategy`` for its provider, replacing any previous one."""
        previous = self._strategies.get(strategy.provider)
        if previous is not None:
            logger.debug(
                "Replacing %s strategy %s with %s",
                strategy.provider.value,
                type(previous).__name__,
                type(strategy).__name__,
            )
        self._strategies[strategy.provider] = strategy

    def resolve(self, provider: DatabaseProvider) -> MigrationStrategy:
        """
        Raises:
            UnsupportedProviderError: If no strategy serves ``provider``
        """
        try:
            return self._strategies[provider]
        except KeyError:
            raise UnsupportedProviderError(provider) from None

    def supports(self, provider: DatabaseProvider) -> bool:
        return provider in self._strategies

    @property
    def providers(self) -> list[DatabaseProvider]:
        return list(self._strategies)
