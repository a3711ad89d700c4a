"""
Shared test fixtures for the branchmigrator library.

This module provides reusable test helpers including:
- Sample migration catalogs (sample_catalog, mixed_provider_catalog)
- Unit name constants (UNIT_A, UNIT_B, UNIT_C)
- Branch record factory (make_branch)
- An in-memory strategy with failure injection (FakeMigrationStrategy)

Usage:
    from tests.fixtures import (
        UNIT_A,
        FakeMigrationStrategy,
        make_branch,
        sample_catalog,
    )
"""

from tests.fixtures.branches import make_branch
from tests.fixtures.catalogs import (
    UNIT_A,
    UNIT_B,
    UNIT_C,
    make_unit,
    mixed_provider_catalog,
    sample_catalog,
)
from tests.fixtures.strategies import FakeMigrationStrategy

__all__ = [
    "UNIT_A",
    "UNIT_B",
    "UNIT_C",
    "make_unit",
    "sample_catalog",
    "mixed_provider_catalog",
    "make_branch",
    "FakeMigrationStrategy",
]
