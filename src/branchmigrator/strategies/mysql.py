"""MySQL provider strategy."""

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from branchmigrator.catalog import MigrationUnit
from branchmigrator.connections import BranchContext
from branchmigrator.models import DatabaseProvider
from branchmigrator.strategies.base import BaseMigrationStrategy

logger = logging.getLogger(__name__)


class MySqlMigrationStrategy(BaseMigrationStrategy):
    """
    Strategy for MySQL and MariaDB branches.

    MySQL commits every DDL statement implicitly, so a unit cannot be
    applied atomically. The statements run first and the ledger row is
    written in its own transaction afterwards; a unit that fails halfway
    is re-run from the start on the next attempt, which is why MySQL units
    must be idempotent (``CREATE TABLE IF NOT EXISTS`` and friends).
    """

    provider = DatabaseProvider.MYSQL
    db_system = "mysql"

    async def _probe(self, context: BranchContext) -> None:
        async with context.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def _list_tables(self, conn: AsyncConnection) -> set[str]:
        result = await conn.execute(
            text(
                "SELECT table_name FROM information_schema.tables "
                "WHERE table_schema = DATABASE() AND table_type = 'BASE TABLE'"
            )
        )
        return {row[0].lower() for row in result.fetchall()}

    async def _apply_unit(self, context: BranchContext, unit: MigrationUnit) -> None:
        async with context.engine.begin() as conn:
            await self._run_statements(conn, unit.upgrade_for(self.provider))
        async with context.engine.begin() as conn:
            await self._record(conn, unit.name)
        logger.debug("Recorded MySQL unit %s in ledger", unit.name)

    async def _revert_unit(self, context: BranchContext, unit: MigrationUnit) -> None:
        async with context.engine.begin() as conn:
            await self._run_statements(conn, unit.downgrade_for(self.provider))
        async with context.engine.begin() as conn:
            await self._unrecord(conn, unit.name)
