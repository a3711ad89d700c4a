"""
Provider strategy protocol and the shared ledger-based implementation.

A provider strategy translates the abstract migration protocol (probe,
list, apply, roll back, validate) into operations on one storage engine.
Strategies are stateless apart from the catalog they serve, so a single
instance is shared across all branches using that engine.

Every branch database carries a ledger table, ``__migration_history``,
with one row per applied unit. The ledger is the source of truth for
"applied"; the catalog is the source of truth for "exists".
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import ClassVar, Protocol, runtime_checkable

from sqlalchemy import delete, insert, select, text
from sqlalchemy.ext.asyncio import AsyncConnection

from branchmigrator.catalog import MigrationCatalog, MigrationUnit
from branchmigrator.connections import BranchContext
from branchmigrator.exceptions import (
    IrreversibleUnitError,
    MigrationCancelledError,
    UnitNotInHistoryError,
    UnknownMigrationUnitError,
)
from branchmigrator.models import DatabaseProvider
from branchmigrator.observability import Tracer, create_tracer
from branchmigrator.observability.attributes import (
    ATTR_BRANCH_CODE,
    ATTR_DB_SYSTEM,
    ATTR_MIGRATION_TARGET_UNIT,
    ATTR_MIGRATION_UNIT,
    ATTR_MIGRATION_UNIT_COUNT,
)
from branchmigrator.schema import LEDGER_TABLE_NAME, PRODUCT_VERSION, ledger_table

logger = logging.getLogger(__name__)


@runtime_checkable
class MigrationStrategy(Protocol):
    """
    Capability set every storage engine must provide.

    Implementations:
    - SqliteMigrationStrategy
    - PostgreSqlMigrationStrategy
    - MySqlMigrationStrategy
    - SqlServerMigrationStrategy
    """

    @property
    def provider(self) -> DatabaseProvider:
        """The storage engine this strategy serves."""
        ...

    async def can_connect(self, context: BranchContext) -> bool:
        """Lightweight reachability probe. Never raises."""
        ...

    async def database_exists(self, context: BranchContext) -> bool:
        """True if the branch database already exists."""
        ...

    async def get_pending_units(self, context: BranchContext) -> list[str]:
        """Catalog units not yet in the ledger, in dependency order."""
        ...

    async def get_applied_units(self, context: BranchContext) -> list[str]:
        """Units recorded in the ledger, in application order."""
        ...

    async def apply_units(
        self,
        context: BranchContext,
        cancel: asyncio.Event | None = None,
        target_unit: str | None = None,
    ) -> list[str]:
        """
        Apply pending units in order, each atomically with its ledger row.

        Args:
            context: Branch connection context
            cancel: Checked between units; when set, stops with
                MigrationCancelledError
            target_unit: Stop after this unit; later units stay pending

        Returns:
            Names of the units applied by this call
        """
        ...

    async def validate_schema_integrity(self, context: BranchContext) -> bool:
        """Check that the tables of every applied unit exist."""
        ...

    async def rollback_to_unit(
        self,
        context: BranchContext,
        target_unit: str | None,
        cancel: asyncio.Event | None = None,
    ) -> list[str]:
        """
        Revert applied units newer than ``target_unit``, newest first.

        ``None`` reverts everything.

        Returns:
            Names of the reverted units, in the order they were reverted
        """
        ...

    async def remove_ledger_entry(self, context: BranchContext, unit_name: str) -> bool:
        """Delete a ledger row without touching the schema."""
        ...


class BaseMigrationStrategy(ABC):
    """
    Shared implementation over the ``__migration_history`` ledger.

    Subclasses set ``provider`` and ``db_system``, and implement table
    listing and the reachability probe for their engine.

    Args:
        catalog: Catalog of migration units
        tracer: Optional tracer (if not provided, one will be created)
        enable_tracing: Whether to enable OpenTelemetry tracing (default True)
    """

    provider: ClassVar[DatabaseProvider]
    db_system: ClassVar[str]

    def __init__(
        self,
        catalog: MigrationCatalog,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._catalog = catalog
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def catalog(self) -> MigrationCatalog:
        return self._catalog

    # Engine-specific hooks

    @abstractmethod
    async def _list_tables(self, conn: AsyncConnection) -> set[str]:
        """Lower-cased names of the user tables in the branch database."""

    @abstractmethod
    async def _probe(self, context: BranchContext) -> None:
        """Raise if the branch database cannot be reached."""

    async def database_exists(self, context: BranchContext) -> bool:
        try:
            async with context.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.debug(
                "Database for branch %s does not exist or is unreachable",
                context.branch.code,
                exc_info=True,
            )
            return False

    # Protocol operations

    async def can_connect(self, context: BranchContext) -> bool:
        with self._tracer.span(
            "branchmigrator.strategy.can_connect",
            self._attributes(context),
        ):
            try:
                await asyncio.wait_for(self._probe(context), timeout=context.connect_timeout)
                return True
            except Exception as e:
                logger.error(
                    "Cannot connect to %s database for branch %s (%s): %s",
                    self.db_system,
                    context.branch.code,
                    context.masked_url,
                    e,
                )
                return False

    async def get_applied_units(self, context: BranchContext) -> list[str]:
        with self._tracer.span(
            "branchmigrator.strategy.get_applied_units",
            self._attributes(context),
        ):
            async with context.engine.connect() as conn:
                return await self._applied(conn)

    async def get_pending_units(self, context: BranchContext) -> list[str]:
        with self._tracer.span(
            "branchmigrator.strategy.get_pending_units",
            self._attributes(context),
        ):
            applied = set(await self.get_applied_units(context))
            return [name for name in self._catalog.names(self.provider) if name not in applied]

    async def apply_units(
        self,
        context: BranchContext,
        cancel: asyncio.Event | None = None,
        target_unit: str | None = None,
    ) -> list[str]:
        attributes = self._attributes(context)
        if target_unit:
            attributes[ATTR_MIGRATION_TARGET_UNIT] = target_unit
        with self._tracer.span("branchmigrator.strategy.apply_units", attributes) as span:
            if target_unit:
                units = self._catalog.slice_to(target_unit, self.provider)
            else:
                units = self._catalog.units_for(self.provider)

            async with context.engine.begin() as conn:
                await self._ensure_ledger(conn)
                applied = set(await self._applied(conn))

            pending = [unit for unit in units if unit.name not in applied]
            done: list[str] = []
            for unit in pending:
                if cancel is not None and cancel.is_set():
                    raise MigrationCancelledError(done)
                logger.info(
                    "Applying migration unit %s to branch %s",
                    unit.name,
                    context.branch.code,
                )
                with self._tracer.span(
                    "branchmigrator.strategy.apply_unit",
                    {**self._attributes(context), ATTR_MIGRATION_UNIT: unit.name},
                ):
                    await self._apply_unit(context, unit)
                done.append(unit.name)

            if span is not None:
                span.set_attribute(ATTR_MIGRATION_UNIT_COUNT, len(done))
            return done

    async def rollback_to_unit(
        self,
        context: BranchContext,
        target_unit: str | None,
        cancel: asyncio.Event | None = None,
    ) -> list[str]:
        attributes = self._attributes(context)
        attributes[ATTR_MIGRATION_TARGET_UNIT] = target_unit or ""
        with self._tracer.span("branchmigrator.strategy.rollback_to_unit", attributes):
            applied = await self.get_applied_units(context)
            if target_unit is None:
                to_revert = applied
            elif target_unit in applied:
                to_revert = applied[applied.index(target_unit) + 1 :]
            elif target_unit in self._catalog:
                raise UnitNotInHistoryError(target_unit, context.branch.id)
            else:
                raise UnknownMigrationUnitError(target_unit)

            # Resolve every unit first so nothing is reverted if one cannot be.
            plan: list[MigrationUnit] = []
            for name in reversed(to_revert):
                unit = self._catalog.get(name)
                if not unit.is_reversible(self.provider):
                    raise IrreversibleUnitError(name)
                plan.append(unit)

            reverted: list[str] = []
            for unit in plan:
                if cancel is not None and cancel.is_set():
                    raise MigrationCancelledError(reverted)
                logger.info(
                    "Reverting migration unit %s on branch %s",
                    unit.name,
                    context.branch.code,
                )
                await self._revert_unit(context, unit)
                reverted.append(unit.name)
            return reverted

    async def validate_schema_integrity(self, context: BranchContext) -> bool:
        with self._tracer.span(
            "branchmigrator.strategy.validate_schema_integrity",
            self._attributes(context),
        ):
            try:
                async with context.engine.connect() as conn:
                    tables = await self._list_tables(conn)
                    applied = await self._applied(conn, tables)
            except Exception:
                logger.exception(
                    "Error validating schema integrity for branch %s",
                    context.branch.code,
                )
                return False

            if applied and LEDGER_TABLE_NAME not in tables:
                logger.warning("Branch %s has no migration ledger table", context.branch.code)
                return False

            missing: list[str] = []
            for name in applied:
                if name not in self._catalog:
                    logger.debug(
                        "Ledger of branch %s lists unit %s unknown to the catalog",
                        context.branch.code,
                        name,
                    )
                    continue
                unit = self._catalog.get(name)
                missing.extend(t for t in unit.tables if t.lower() not in tables)

            if missing:
                logger.warning(
                    "Branch %s is missing required tables: %s",
                    context.branch.code,
                    ", ".join(missing),
                )
                return False
            return True

    async def remove_ledger_entry(self, context: BranchContext, unit_name: str) -> bool:
        with self._tracer.span(
            "branchmigrator.strategy.remove_ledger_entry",
            {**self._attributes(context), ATTR_MIGRATION_UNIT: unit_name},
        ):
            async with context.engine.begin() as conn:
                tables = await self._list_tables(conn)
                if LEDGER_TABLE_NAME not in tables:
                    return False
                result = await conn.execute(
                    delete(ledger_table).where(ledger_table.c.migration_id == unit_name)
                )
            return result.rowcount > 0

    # Unit execution; MySQL overrides these

    async def _apply_unit(self, context: BranchContext, unit: MigrationUnit) -> None:
        async with context.engine.begin() as conn:
            await self._run_statements(conn, unit.upgrade_for(self.provider))
            await self._record(conn, unit.name)

    async def _revert_unit(self, context: BranchContext, unit: MigrationUnit) -> None:
        async with context.engine.begin() as conn:
            await self._run_statements(conn, unit.downgrade_for(self.provider))
            await self._unrecord(conn, unit.name)

    # Helpers

    async def _ensure_ledger(self, conn: AsyncConnection) -> None:
        await conn.run_sync(
            ledger_table.metadata.create_all, tables=[ledger_table], checkfirst=True
        )

    async def _applied(
        self,
        conn: AsyncConnection,
        tables: set[str] | None = None,
    ) -> list[str]:
        if tables is None:
            tables = await self._list_tables(conn)
        if LEDGER_TABLE_NAME not in tables:
            return []
        result = await conn.execute(
            select(ledger_table.c.migration_id).order_by(ledger_table.c.migration_id)
        )
        return [row[0] for row in result.fetchall()]

    @staticmethod
    async def _run_statements(conn: AsyncConnection, statements: tuple[str, ...]) -> None:
        for statement in statements:
            await conn.execute(text(statement))

    @staticmethod
    async def _record(conn: AsyncConnection, unit_name: str) -> None:
        await conn.execute(
            insert(ledger_table).values(
                migration_id=unit_name,
                product_version=PRODUCT_VERSION,
                applied_at=datetime.now(UTC).replace(tzinfo=None),
            )
        )

    @staticmethod
    async def _unrecord(conn: AsyncConnection, unit_name: str) -> None:
        await conn.execute(delete(ledger_table).where(ledger_table.c.migration_id == unit_name))

    def _attributes(self, context: BranchContext) -> dict[str, str]:
        return {
            ATTR_DB_SYSTEM: self.db_system,
            ATTR_BRANCH_CODE: context.branch.code,
        }


__all__ = ["MigrationStrategy", "BaseMigrationStrategy"]
