"""PostgreSQL provider strategy."""

from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from branchmigrator.connections import BranchContext
from branchmigrator.models import DatabaseProvider
from branchmigrator.strategies.base import BaseMigrationStrategy


class PostgreSqlMigrationStrategy(BaseMigrationStrategy):
    """
    Strategy for PostgreSQL branches.

    DDL is transactional, so a failing unit leaves no trace. Tables are
    looked up in the ``public`` schema.
    """

    provider = DatabaseProvider.POSTGRESQL
    db_system = "postgresql"

    async def _probe(self, context: BranchContext) -> None:
        async with context.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def _list_tables(self, conn: AsyncConnection) -> set[str]:
        result = await conn.execute(
            text(
                "SELECT table_name FROM information_schema.tables "
                "WHERE table_schema = 'public' AND table_type = 'BASE TABLE'"
            )
        )
        return {row[0].lower() for row in result.fetchall()}
