"""
Branch registry: read access to branch records.

The orchestrator never mutates branches; ``add`` exists so that tools and
tests can seed a registry.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import insert, select, true
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from branchmigrator.models import Branch, DatabaseProvider, SslMode
from branchmigrator.observability import Tracer, create_tracer
from branchmigrator.observability.attributes import ATTR_BRANCH_ID
from branchmigrator.repositories._connection import execute_with_connection
from branchmigrator.schema import branches_table


@runtime_checkable
class BranchRegistry(Protocol):
    """Protocol for branch registries."""

    async def get_branch(self, branch_id: UUID) -> Branch | None:
        """Return the branch, or None if unknown."""
        ...

    async def list_active_branches(self) -> list[Branch]:
        """Return active branches ordered by code."""
        ...

    async def list_branches(self) -> list[Branch]:
        """Return all branches ordered by code."""
        ...


class InMemoryBranchRegistry:
    """
    In-memory branch registry for tests and embedded use.

    Example:
        >>> registry = InMemoryBranchRegistry([branch_a, branch_b])
        >>> await registry.get_branch(branch_a.id)
    """

    def __init__(
        self,
        branches: list[Branch] | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._branches: dict[UUID, Branch] = {b.id: b for b in branches or []}
        self._lock = asyncio.Lock()

    async def add(self, branch: Branch) -> None:
        async with self._lock:
            self._branches[branch.id] = branch

    async def remove(self, branch_id: UUID) -> None:
        async with self._lock:
            self._branches.pop(branch_id, None)

    async def get_branch(self, branch_id: UUID) -> Branch | None:
        with self._tracer.span(
            "branchmigrator.branch_registry.get_branch",
            {ATTR_BRANCH_ID: str(branch_id)},
        ):
            async with self._lock:
                return self._branches.get(branch_id)

    async def list_active_branches(self) -> list[Branch]:
        async with self._lock:
            return sorted(
                (b for b in self._branches.values() if b.is_active),
                key=lambda b: b.code,
            )

    async def list_branches(self) -> list[Branch]:
        async with self._lock:
            return sorted(self._branches.values(), key=lambda b: b.code)


class SQLAlchemyBranchRegistry:
    """
    Branch registry backed by the head-office ``branches`` table.

    Args:
        conn: Head-office engine or connection
        tracer: Optional tracer (if not provided, one will be created)
        enable_tracing: Whether to enable OpenTelemetry tracing (default True)
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._conn = conn
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def add(self, branch: Branch) -> None:
        stmt = insert(branches_table).values(
            id=str(branch.id),
            code=branch.code,
            name=branch.name,
            provider=branch.provider.value,
            is_active=branch.is_active,
            db_server=branch.db_server,
            db_name=branch.db_name,
            db_port=branch.db_port,
            db_username=branch.db_username,
            db_password=(
                branch.db_password.get_secret_value() if branch.db_password is not None else None
            ),
            db_additional_params=branch.db_additional_params,
            ssl_mode=branch.ssl_mode.value,
            trust_server_certificate=branch.trust_server_certificate,
        )
        async with execute_with_connection(self._conn) as conn:
            await conn.execute(stmt)

    async def get_branch(self, branch_id: UUID) -> Branch | None:
        with self._tracer.span(
            "branchmigrator.branch_registry.get_branch",
            {ATTR_BRANCH_ID: str(branch_id)},
        ):
            stmt = select(branches_table).where(branches_table.c.id == str(branch_id))
            async with execute_with_connection(self._conn, transactional=False) as conn:
                result = await conn.execute(stmt)
                row = result.fetchone()
            return _row_to_branch(row._mapping) if row else None

    async def list_active_branches(self) -> list[Branch]:
        with self._tracer.span("branchmigrator.branch_registry.list_active_branches", {}):
            stmt = (
                select(branches_table)
                .where(branches_table.c.is_active == true())
                .order_by(branches_table.c.code)
            )
            return await self._fetch(stmt)

    async def list_branches(self) -> list[Branch]:
        stmt = select(branches_table).order_by(branches_table.c.code)
        return await self._fetch(stmt)

    async def _fetch(self, stmt: Any) -> list[Branch]:
        async with execute_with_connection(self._conn, transactional=False) as conn:
            result = await conn.execute(stmt)
            return [_row_to_branch(row._mapping) for row in result.fetchall()]


def _row_to_branch(row: Any) -> Branch:
    return Branch(
        id=UUID(str(row["id"])),
        code=row["code"],
        name=row["name"] or "",
        provider=DatabaseProvider(row["provider"]),
        is_active=bool(row["is_active"]),
        db_server=row["db_server"] or "",
        db_name=row["db_name"] or "",
        db_port=row["db_port"] or 0,
        db_username=row["db_username"],
        db_password=row["db_password"],
        db_additional_params=row["db_additional_params"],
        ssl_mode=SslMode(row["ssl_mode"]),
        trust_server_certificate=bool(row["trust_server_certificate"]),
    )


__all__ = [
    "BranchRegistry",
    "InMemoryBranchRegistry",
    "SQLAlchemyBranchRegistry",
]
