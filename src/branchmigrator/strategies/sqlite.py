"""SQLite provider strategy: one database file per branch."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from branchmigrator.connections import BranchContext
from branchmigrator.models import DatabaseProvider
from branchmigrator.strategies.base import BaseMigrationStrategy

logger = logging.getLogger(__name__)


class SqliteMigrationStrategy(BaseMigrationStrategy):
    """
    Strategy for branches stored as local SQLite files.

    The probe does not open the database (that would create the file); it
    makes sure the database directory exists and is writable. A branch
    database "exists" once its file exists.
    """

    provider = DatabaseProvider.SQLITE
    db_system = "sqlite"

    async def _probe(self, context: BranchContext) -> None:
        path = _require_path(context)
        await asyncio.to_thread(_check_directory_writable, path.parent)

    async def database_exists(self, context: BranchContext) -> bool:
        path = _require_path(context)
        return await asyncio.to_thread(path.is_file)

    async def get_applied_units(self, context: BranchContext) -> list[str]:
        # Opening a missing file would create it.
        if not await self.database_exists(context):
            return []
        return await super().get_applied_units(context)

    async def validate_schema_integrity(self, context: BranchContext) -> bool:
        if not await self.database_exists(context):
            return True
        return await super().validate_schema_integrity(context)

    async def _list_tables(self, conn: AsyncConnection) -> set[str]:
        result = await conn.execute(
            text("SELECT name FROM sqlite_master WHERE type = 'table'")
        )
        return {row[0].lower() for row in result.fetchall()}


def _require_path(context: BranchContext) -> Path:
    if context.sqlite_path is None:
        raise ValueError(f"Branch {context.branch.code} has no SQLite database path")
    return context.sqlite_path


def _check_directory_writable(directory: Path) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    probe = directory / f".write_test_{os.getpid()}"
    probe.write_text("ok")
    probe.unlink()
