"""
Migration unit catalog.

A migration unit is one named, ordered schema change. The catalog holds
the units in dependency order and answers which of them apply to a given
storage engine. Unit names double as the ordering key, so the usual
convention is a sortable timestamp prefix::

    20240101000000_CreateProducts
    20240215093000_AddProductBarcode

Example:
    >>> catalog = MigrationCatalog()
    >>> catalog.add(MigrationUnit(
    ...     name="20240101000000_CreateProducts",
    ...     upgrade=("CREATE TABLE products (id INTEGER PRIMARY KEY, name TEXT)",),
    ...     downgrade=("DROP TABLE products",),
    ...     tables=("products",),
    ... ))
    >>> catalog.names(DatabaseProvider.SQLITE)
    ['20240101000000_CreateProducts']
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field

from branchmigrator.exceptions import UnknownMigrationUnitError
from branchmigrator.models import DatabaseProvider


@dataclass(frozen=True)
class MigrationUnit:
    """
    One named schema change.

    Attributes:
        name: Unique unit name; also the dependency-order key
        upgrade: SQL statements applying the change
        downgrade: SQL statements reverting the change. Empty means the
            unit cannot be rolled back.
        upgrade_overrides: Engine-specific replacements for ``upgrade``
        downgrade_overrides: Engine-specific replacements for ``downgrade``
        tables: Tables the unit creates; checked by schema integrity
            validation while the unit is applied
        providers: Engines the unit applies to. Empty means all engines.
    """

    name: str
    upgrade: tuple[str, ...] = ()
    downgrade: tuple[str, ...] = ()
    upgrade_overrides: Mapping[DatabaseProvider, tuple[str, ...]] = field(default_factory=dict)
    downgrade_overrides: Mapping[DatabaseProvider, tuple[str, ...]] = field(default_factory=dict)
    tables: tuple[str, ...] = ()
    providers: frozenset[DatabaseProvider] = frozenset()

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Migration unit name must not be empty")

    def applies_to(self, provider: DatabaseProvider) -> bool:
        return not self.providers or provider in self.providers

    def upgrade_for(self, provider: DatabaseProvider) -> tuple[str, ...]:
        """Statements to run when applying the unit on ``provider``."""
        return tuple(self.upgrade_overrides.get(provider, self.upgrade))

    def downgrade_for(self, provider: DatabaseProvider) -> tuple[str, ...]:
        """Statements to run when reverting the unit on ``provider``."""
        return tuple(self.downgrade_overrides.get(provider, self.downgrade))

    def is_reversible(self, provider: DatabaseProvider) -> bool:
        return bool(self.downgrade_for(provider))


class MigrationCatalog:
    """
    Ordered, name-unique collection of migration units.

    Units are kept in the order they were added, which must be dependency
    order. Adding a unit whose name sorts before an existing one is
    rejected, so the ledger's "newest applied" is always the maximum name.
    """

    def __init__(self, units: Iterable[MigrationUnit] = ()) -> None:
        self._units: dict[str, MigrationUnit] = {}
        for unit in units:
            self.add(unit)

    def add(self, unit: MigrationUnit) -> MigrationUnit:
        """
        Append a unit to the catalog.

        Raises:
            ValueError: If the name is taken or sorts before the last unit
        """
        if unit.name in self._units:
            raise ValueError(f"Duplicate migration unit name: {unit.name}")
        if self._units:
            last = next(reversed(self._units))
            if unit.name < last:
                raise ValueError(
                    f"Migration unit {unit.name} must sort after {last}"
                )
        self._units[unit.name] = unit
        return unit

    def get(self, name: str) -> MigrationUnit:
        """
        Look up a unit by name.

        Raises:
            UnknownMigrationUnitError: If no unit has that name
        """
        try:
            return self._units[name]
        except KeyError:
            raise UnknownMigrationUnitError(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._units

    def __iter__(self) -> Iterator[MigrationUnit]:
        return iter(self._units.values())

    def __len__(self) -> int:
        return len(self._units)

    def units_for(self, provider: DatabaseProvider) -> list[MigrationUnit]:
        """Units applicable to ``provider``, in dependency order."""
        return [unit for unit in self._units.values() if unit.applies_to(provider)]

    def names(self, provider: DatabaseProvider | None = None) -> list[str]:
        if provider is None:
            return list(self._units)
        return [unit.name for unit in self.units_for(provider)]

    def slice_to(self, name: str, provider: DatabaseProvider | None = None) -> list[MigrationUnit]:
        """
        Units up to and including ``name``, in dependency order.

        Raises:
            UnknownMigrationUnitError: If ``name`` is not in the catalog or
                does not apply to ``provider``
        """
        units = self.units_for(provider) if provider is not None else list(self._units.values())
        for index, unit in enumerate(units):
            if unit.name == name:
                return units[: index + 1]
        raise UnknownMigrationUnitError(name)


__all__ = ["MigrationUnit", "MigrationCatalog"]
