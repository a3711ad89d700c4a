"""
Shared pytest fixtures for the branchmigrator library tests.

This module provides:
- Catalog and configuration fixtures (catalog, config)
- Head-office fixtures (state_store, registry, head_office_engine)
- Strategy fixtures (fake_strategy, resolver)
- Orchestrator fixtures (orchestrator, sqlite_orchestrator)
- Tracing fixtures (mock_tracer)

The ``orchestrator`` fixture runs against FakeMigrationStrategy for
failure injection; ``sqlite_orchestrator`` migrates real SQLite files
under ``tmp_path``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from branchmigrator.catalog import MigrationCatalog
from branchmigrator.config import OrchestratorConfig
from branchmigrator.observability import MockTracer
from branchmigrator.orchestrator import BranchMigrationOrchestrator
from branchmigrator.repositories import InMemoryBranchRegistry, InMemoryMigrationStateStore
from branchmigrator.schema import create_head_office_schema
from branchmigrator.strategies import StrategyResolver
from tests.fixtures import FakeMigrationStrategy, sample_catalog

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for tests."""
    config.addinivalue_line("markers", "sqlite: marks tests that run against real SQLite files")


# ============================================================================
# Catalog and Configuration Fixtures
# ============================================================================


@pytest.fixture
def catalog() -> MigrationCatalog:
    """Three reversible units creating products, customers and orders."""
    return sample_catalog()


@pytest.fixture
def sqlite_root(tmp_path: Path) -> Path:
    """Directory holding per-branch SQLite databases."""
    return tmp_path / "Branches"


@pytest.fixture
def config(sqlite_root: Path) -> OrchestratorConfig:
    """Orchestrator configuration with tracing off and SQLite under tmp_path."""
    return OrchestratorConfig(sqlite_root=sqlite_root, enable_tracing=False)


@pytest.fixture
def mock_tracer() -> MockTracer:
    """Tracer recording span names and attributes."""
    return MockTracer()


# ============================================================================
# Head-Office Fixtures
# ============================================================================


@pytest.fixture
def state_store() -> InMemoryMigrationStateStore:
    """Fresh in-memory migration state store."""
    return InMemoryMigrationStateStore(enable_tracing=False)


@pytest.fixture
def registry() -> InMemoryBranchRegistry:
    """Empty in-memory branch registry; tests add branches to it."""
    return InMemoryBranchRegistry(enable_tracing=False)


@pytest_asyncio.fixture
async def head_office_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """
    Head-office SQLite database with the registry and state tables.

    Yields:
        An AsyncEngine; disposed after the test.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'head_office.db'}")
    await create_head_office_schema(engine)
    yield engine
    await engine.dispose()


# ============================================================================
# Strategy Fixtures
# ============================================================================


@pytest.fixture
def fake_strategy(catalog: MigrationCatalog) -> FakeMigrationStrategy:
    """In-memory SQLite-provider strategy with failure injection."""
    return FakeMigrationStrategy(catalog)


@pytest.fixture
def resolver(fake_strategy: FakeMigrationStrategy) -> StrategyResolver:
    """Resolver serving only the fake strategy."""
    return StrategyResolver([fake_strategy])


# ============================================================================
# Orchestrator Fixtures
# ============================================================================


@pytest.fixture
def orchestrator(
    registry: InMemoryBranchRegistry,
    state_store: InMemoryMigrationStateStore,
    resolver: StrategyResolver,
    config: OrchestratorConfig,
) -> BranchMigrationOrchestrator:
    """Orchestrator wired to the fake strategy."""
    return BranchMigrationOrchestrator(
        registry=registry,
        state_store=state_store,
        resolver=resolver,
        config=config,
    )


@pytest.fixture
def sqlite_orchestrator(
    registry: InMemoryBranchRegistry,
    state_store: InMemoryMigrationStateStore,
    catalog: MigrationCatalog,
    config: OrchestratorConfig,
) -> BranchMigrationOrchestrator:
    """Orchestrator migrating real SQLite branch databases."""
    return BranchMigrationOrchestrator(
        registry=registry,
        state_store=state_store,
        resolver=StrategyResolver.default(catalog, enable_tracing=False),
        config=config,
    )
