"""
Migration state store: one persistent record per branch.

The record carries the branch's migration status, retry counter, last
error and the migration lease (owner token and expiry). The lease fields
are only written through ``try_acquire_lease`` / ``release_lease``, never
through ``save``, so a status update cannot clobber somebody else's lease.

Implementations:
    - InMemoryMigrationStateStore: Process-local, for tests and tooling
    - SQLAlchemyMigrationStateStore: ``branch_migration_states`` table in
      the head-office database (SQLite, PostgreSQL, MySQL, SQL Server)
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import and_, insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from branchmigrator.models import BranchMigrationState, MigrationStatus
from branchmigrator.observability import Tracer, create_tracer
from branchmigrator.observability.attributes import (
    ATTR_BRANCH_ID,
    ATTR_LOCK_ACQUIRED,
    ATTR_LOCK_OWNER,
    ATTR_MIGRATION_STATUS,
)
from branchmigrator.repositories._connection import execute_with_connection
from branchmigrator.schema import migration_states_table

logger = logging.getLogger(__name__)


@runtime_checkable
class MigrationStateStore(Protocol):
    """
    Protocol for branch migration state persistence.

    Records are created lazily: ``get_or_create`` inserts a Pending record
    the first time a branch is touched.
    """

    async def get(self, branch_id: UUID) -> BranchMigrationState | None:
        """Return the record for ``branch_id``, or None if never touched."""
        ...

    async def get_or_create(self, branch_id: UUID) -> BranchMigrationState:
        """Return the record for ``branch_id``, inserting a Pending one if absent."""
        ...

    async def save(self, state: BranchMigrationState) -> BranchMigrationState:
        """
        Persist status, last applied unit, retry counter, error details and
        last attempt time. Lease fields are left untouched.
        """
        ...

    async def list_all(self) -> list[BranchMigrationState]:
        """Return every record."""
        ...

    async def try_acquire_lease(
        self,
        branch_id: UUID,
        owner_id: str,
        expires_at: datetime,
        now: datetime,
    ) -> bool:
        """
        Atomically claim the lease if it is free or expired at ``now``.

        Returns:
            True if ``owner_id`` now holds the lease, False otherwise
        """
        ...

    async def release_lease(self, branch_id: UUID, owner_id: str | None = None) -> None:
        """
        Clear the lease. With ``owner_id`` the lease is cleared only while
        that owner still holds it; without, it is cleared unconditionally.
        """
        ...


class InMemoryMigrationStateStore:
    """
    In-memory implementation of the migration state store.

    All data is lost when the process terminates. Records handed out are
    copies; mutate them and call ``save`` to persist.

    Example:
        >>> store = InMemoryMigrationStateStore()
        >>> state = await store.get_or_create(branch_id)
        >>> state.status = MigrationStatus.COMPLETED
        >>> await store.save(state)
    """

    def __init__(
        self,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._states: dict[UUID, BranchMigrationState] = {}
        self._lock: asyncio.Lock = asyncio.Lock()

    async def get(self, branch_id: UUID) -> BranchMigrationState | None:
        with self._tracer.span(
            "branchmigrator.state_store.get",
            {ATTR_BRANCH_ID: str(branch_id)},
        ):
            async with self._lock:
                state = self._states.get(branch_id)
                return dataclasses.replace(state) if state else None

    async def get_or_create(self, branch_id: UUID) -> BranchMigrationState:
        with self._tracer.span(
            "branchmigrator.state_store.get_or_create",
            {ATTR_BRANCH_ID: str(branch_id)},
        ):
            async with self._lock:
                state = self._states.get(branch_id)
                if state is None:
                    state = BranchMigrationState(branch_id=branch_id)
                    self._states[branch_id] = state
                    logger.debug("Created migration state for branch %s", branch_id)
                return dataclasses.replace(state)

    async def save(self, state: BranchMigrationState) -> BranchMigrationState:
        with self._tracer.span(
            "branchmigrator.state_store.save",
            {
                ATTR_BRANCH_ID: str(state.branch_id),
                ATTR_MIGRATION_STATUS: state.status.value,
            },
        ):
            now = datetime.now(UTC)
            async with self._lock:
                current = self._states.get(state.branch_id)
                stored = dataclasses.replace(
                    state,
                    lock_owner_id=current.lock_owner_id if current else None,
                    lock_expires_at=current.lock_expires_at if current else None,
                    created_at=current.created_at if current else state.created_at,
                    updated_at=now,
                )
                self._states[state.branch_id] = stored
                return dataclasses.replace(stored)

    async def list_all(self) -> list[BranchMigrationState]:
        async with self._lock:
            return [dataclasses.replace(s) for s in self._states.values()]

    async def try_acquire_lease(
        self,
        branch_id: UUID,
        owner_id: str,
        expires_at: datetime,
        now: datetime,
    ) -> bool:
        with self._tracer.span(
            "branchmigrator.state_store.try_acquire_lease",
            {ATTR_BRANCH_ID: str(branch_id), ATTR_LOCK_OWNER: owner_id},
        ):
            async with self._lock:
                state = self._states.get(branch_id)
                if state is None:
                    state = BranchMigrationState(branch_id=branch_id)
                    self._states[branch_id] = state
                if state.is_locked(now):
                    return False
                state.lock_owner_id = owner_id
                state.lock_expires_at = expires_at
                state.updated_at = now
                return True

    async def release_lease(self, branch_id: UUID, owner_id: str | None = None) -> None:
        with self._tracer.span(
            "branchmigrator.state_store.release_lease",
            {ATTR_BRANCH_ID: str(branch_id)},
        ):
            async with self._lock:
                state = self._states.get(branch_id)
                if state is None:
                    return
                if owner_id is not None and state.lock_owner_id != owner_id:
                    return
                state.lock_owner_id = None
                state.lock_expires_at = None
                state.updated_at = datetime.now(UTC)

    async def clear(self) -> None:
        """Remove every record."""
        async with self._lock:
            self._states.clear()


class SQLAlchemyMigrationStateStore:
    """
    Migration state store backed by the ``branch_migration_states`` table.

    Works on any engine SQLAlchemy supports; the table is defined in
    ``branchmigrator.schema``. Lease acquisition is a single conditional
    UPDATE, so two processes racing for an expired lease cannot both win.

    Example:
        >>> engine = create_async_engine("sqlite+aiosqlite:///head_office.db")
        >>> await create_head_office_schema(engine)
        >>> store = SQLAlchemyMigrationStateStore(engine)
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the store.

        Args:
            conn: Head-office engine or connection
            tracer: Optional tracer (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._conn = conn
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def get(self, branch_id: UUID) -> BranchMigrationState | None:
        with self._tracer.span(
            "branchmigrator.state_store.get",
            {ATTR_BRANCH_ID: str(branch_id)},
        ):
            async with execute_with_connection(self._conn, transactional=False) as conn:
                return await self._select(conn, branch_id)

    async def get_or_create(self, branch_id: UUID) -> BranchMigrationState:
        with self._tracer.span(
            "branchmigrator.state_store.get_or_create",
            {ATTR_BRANCH_ID: str(branch_id)},
        ):
            existing = await self.get(branch_id)
            if existing is not None:
                return existing
            await self._insert_if_missing(branch_id)
            state = await self.get(branch_id)
            if state is None:
                raise RuntimeError(f"Migration state for branch {branch_id} vanished after insert")
            return state

    async def save(self, state: BranchMigrationState) -> BranchMigrationState:
        with self._tracer.span(
            "branchmigrator.state_store.save",
            {
                ATTR_BRANCH_ID: str(state.branch_id),
                ATTR_MIGRATION_STATUS: state.status.value,
            },
        ):
            await self._insert_if_missing(state.branch_id)
            now = datetime.now(UTC)
            stmt = (
                update(migration_states_table)
                .where(migration_states_table.c.branch_id == str(state.branch_id))
                .values(
                    status=state.status.value,
                    last_migration_applied=state.last_migration_applied,
                    retry_count=state.retry_count,
                    error_details=state.error_details,
                    last_attempt_at=_to_db(state.last_attempt_at),
                    updated_at=_to_db(now),
                )
            )
            async with execute_with_connection(self._conn) as conn:
                await conn.execute(stmt)
                saved = await self._select(conn, state.branch_id)
            if saved is None:
                raise RuntimeError(f"Migration state for branch {state.branch_id} vanished on save")
            return saved

    async def list_all(self) -> list[BranchMigrationState]:
        with self._tracer.span("branchmigrator.state_store.list_all", {}):
            stmt = select(migration_states_table).order_by(migration_states_table.c.branch_id)
            async with execute_with_connection(self._conn, transactional=False) as conn:
                result = await conn.execute(stmt)
                return [_row_to_state(row._mapping) for row in result.fetchall()]

    async def try_acquire_lease(
        self,
        branch_id: UUID,
        owner_id: str,
        expires_at: datetime,
        now: datetime,
    ) -> bool:
        with self._tracer.span(
            "branchmigrator.state_store.try_acquire_lease",
            {ATTR_BRANCH_ID: str(branch_id), ATTR_LOCK_OWNER: owner_id},
        ) as span:
            await self._insert_if_missing(branch_id)
            table = migration_states_table
            stmt = (
                update(table)
                .where(
                    and_(
                        table.c.branch_id == str(branch_id),
                        or_(
                            table.c.lock_owner_id.is_(None),
                            table.c.lock_expires_at.is_(None),
                            table.c.lock_expires_at < _to_db(now),
                        ),
                    )
                )
                .values(
                    lock_owner_id=owner_id,
                    lock_expires_at=_to_db(expires_at),
                    updated_at=_to_db(now),
                )
            )
            async with execute_with_connection(self._conn) as conn:
                result = await conn.execute(stmt)
            acquired = result.rowcount == 1
            if span is not None:
                span.set_attribute(ATTR_LOCK_ACQUIRED, acquired)
            return acquired

    async def release_lease(self, branch_id: UUID, owner_id: str | None = None) -> None:
        with self._tracer.span(
            "branchmigrator.state_store.release_lease",
            {ATTR_BRANCH_ID: str(branch_id)},
        ):
            table = migration_states_table
            condition = table.c.branch_id == str(branch_id)
            if owner_id is not None:
                condition = and_(condition, table.c.lock_owner_id == owner_id)
            stmt = (
                update(table)
                .where(condition)
                .values(
                    lock_owner_id=None,
                    lock_expires_at=None,
                    updated_at=_to_db(datetime.now(UTC)),
                )
            )
            async with execute_with_connection(self._conn) as conn:
                await conn.execute(stmt)

    async def _select(self, conn: AsyncConnection, branch_id: UUID) -> BranchMigrationState | None:
        stmt = select(migration_states_table).where(
            migration_states_table.c.branch_id == str(branch_id)
        )
        result = await conn.execute(stmt)
        row = result.fetchone()
        return _row_to_state(row._mapping) if row else None

    async def _insert_if_missing(self, branch_id: UUID) -> None:
        now = _to_db(datetime.now(UTC))
        async with execute_with_connection(self._conn, transactional=False) as conn:
            existing = await self._select(conn, branch_id)
        if existing is not None:
            return
        stmt = insert(migration_states_table).values(
            branch_id=str(branch_id),
            status=MigrationStatus.PENDING.value,
            last_migration_applied="",
            retry_count=0,
            created_at=now,
            updated_at=now,
        )
        try:
            async with execute_with_connection(self._conn) as conn:
                await conn.execute(stmt)
            logger.debug("Created migration state for branch %s", branch_id)
        except IntegrityError:
            # Another caller inserted the row first.
            logger.debug("Migration state for branch %s already created", branch_id)


def _to_db(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.replace(tzinfo=None)


def _from_db(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _row_to_state(row: Any) -> BranchMigrationState:
    return BranchMigrationState(
        branch_id=UUID(str(row["branch_id"])),
        status=MigrationStatus(row["status"]),
        last_migration_applied=row["last_migration_applied"] or "",
        retry_count=row["retry_count"] or 0,
        error_details=row["error_details"],
        lock_owner_id=row["lock_owner_id"],
        lock_expires_at=_from_db(row["lock_expires_at"]),
        last_attempt_at=_from_db(row["last_attempt_at"]),
        created_at=_from_db(row["created_at"]) or datetime.now(UTC),
        updated_at=_from_db(row["updated_at"]) or datetime.now(UTC),
    )


__all__ = [
    "MigrationStateStore",
    "InMemoryMigrationStateStore",
    "SQLAlchemyMigrationStateStore",
]
