"""SQL Server provider strategy."""

from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from branchmigrator.connections import BranchContext
from branchmigrator.models import DatabaseProvider
from branchmigrator.strategies.base import BaseMigrationStrategy


class SqlServerMigrationStrategy(BaseMigrationStrategy):
    """Strategy for SQL Server branches, reached through ODBC."""

    provider = DatabaseProvider.MSSQL
    db_system = "mssql"

    async def _probe(self, context: BranchContext) -> None:
        async with context.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def _list_tables(self, conn: AsyncConnection) -> set[str]:
        result = await conn.execute(
            text(
                "SELECT TABLE_NAME FROM INFORMATION_SCHEMA.TABLES "
                "WHERE TABLE_TYPE = 'BASE TABLE'"
            )
        )
        return {row[0].lower() for row in result.fetchall()}
