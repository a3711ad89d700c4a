"""
Lease-based migration locks over the branch migration state store.

A lease is an owner token plus an expiry written into the branch's
migration state record. The persisted lease is authoritative across
processes and restarts; an expired lease is treated as abandoned and can
be taken over by the next caller. Inside one process an ``asyncio.Lock``
serializes the acquire and release bookkeeping.

Usage:
    >>> locks = LeaseLockManager(state_store)
    >>> async with locks.hold(branch_id):
    ...     # Only one migration operation per branch at a time
    ...     await apply_units()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

from branchmigrator.config import DEFAULT_LEASE_DURATION
from branchmigrator.exceptions import LockContentionError
from branchmigrator.observability import Tracer, create_tracer
from branchmigrator.observability.attributes import (
    ATTR_BRANCH_ID,
    ATTR_LOCK_ACQUIRED,
    ATTR_LOCK_OWNER,
)
from branchmigrator.repositories.migration_state import MigrationStateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeaseInfo:
    """
    A lease held by this manager.

    Attributes:
        branch_id: Branch the lease covers
        owner_id: Random token written as the lease owner
        acquired_at: When the lease was taken
        expires_at: When the lease lapses unless released earlier
    """

    branch_id: UUID
    owner_id: str
    acquired_at: datetime
    expires_at: datetime


def _utcnow() -> datetime:
    return datetime.now(UTC)


class LeaseLockManager:
    """
    Grants exclusive migration rights over one branch for a bounded lease.

    Share one instance per process: its internal mutex is what keeps two
    coroutines from racing on the same state record.

    Example:
        >>> locks = LeaseLockManager(store, lease_duration=timedelta(minutes=10))
        >>> if await locks.acquire(branch_id):
        ...     try:
        ...         await migrate()
        ...     finally:
        ...         await locks.release(branch_id)
    """

    def __init__(
        self,
        state_store: MigrationStateStore,
        lease_duration: timedelta = DEFAULT_LEASE_DURATION,
        *,
        clock: Callable[[], datetime] | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the lock manager.

        Args:
            state_store: Store holding the lease fields
            lease_duration: Validity of a freshly acquired lease
            clock: Source of the current UTC time (tests substitute it)
            tracer: Optional custom Tracer instance. If not provided, one is
                   created based on enable_tracing setting.
            enable_tracing: Whether to enable OpenTelemetry tracing.
                          Ignored if tracer is explicitly provided.
        """
        if lease_duration <= timedelta(0):
            raise ValueError(f"lease_duration must be positive, got {lease_duration}")
        self._store = state_store
        self._lease_duration = lease_duration
        self._clock = clock or _utcnow
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._held: dict[UUID, LeaseInfo] = {}
        self._lock = asyncio.Lock()

    @property
    def lease_duration(self) -> timedelta:
        return self._lease_duration

    async def acquire(self, branch_id: UUID) -> bool:
        """
        Try to take the migration lease for a branch.

        Never raises for contention: returns False when another owner holds
        a live lease. An expired lease is reclaimed.

        Returns:
            True if the lease was acquired, False otherwise
        """
        with self._tracer.span(
            "branchmigrator.lock.acquire",
            {ATTR_BRANCH_ID: str(branch_id)},
        ) as span:
            async with self._lock:
                now = self._clock()
                current = await self._store.get(branch_id)
                if current is not None and current.lock_is_stale(now):
                    logger.warning(
                        "Reclaiming expired migration lease for branch %s "
                        "(owner=%s, expired_at=%s)",
                        branch_id,
                        current.lock_owner_id,
                        current.lock_expires_at,
                    )

                owner_id = uuid4().hex
                expires_at = now + self._lease_duration
                acquired = await self._store.try_acquire_lease(
                    branch_id, owner_id, expires_at, now
                )
                if acquired:
                    self._held[branch_id] = LeaseInfo(
                        branch_id=branch_id,
                        owner_id=owner_id,
                        acquired_at=now,
                        expires_at=expires_at,
                    )
                    logger.debug(
                        "Acquired migration lease: branch=%s, owner=%s, expires_at=%s",
                        branch_id,
                        owner_id,
                        expires_at.isoformat(),
                    )
                else:
                    logger.debug("Migration lease for branch %s is held elsewhere", branch_id)

            if span is not None:
                span.set_attribute(ATTR_LOCK_ACQUIRED, acquired)
                if acquired:
                    span.set_attribute(ATTR_LOCK_OWNER, owner_id)
            return acquired

    async def release(self, branch_id: UUID) -> None:
        """
        Release the migration lease for a branch.

        Idempotent. A lease this manager took is cleared only while its
        token is still the recorded owner; a lease it never took is
        cleared unconditionally.
        """
        with self._tracer.span(
            "branchmigrator.lock.release",
            {ATTR_BRANCH_ID: str(branch_id)},
        ):
            async with self._lock:
                lease = self._held.pop(branch_id, None)
                await self._store.release_lease(
                    branch_id, lease.owner_id if lease else None
                )
            logger.debug("Released migration lease for branch %s", branch_id)

    @asynccontextmanager
    async def hold(self, branch_id: UUID) -> AsyncIterator[LeaseInfo]:
        """
        Hold the lease for the duration of the ``async with`` block.

        Raises:
            LockContentionError: If another owner holds a live lease
        """
        if not await self.acquire(branch_id):
            raise LockContentionError(branch_id, await self.owner_of(branch_id))
        try:
            yield self._held[branch_id]
        finally:
            await self.release(branch_id)

    async def is_locked(self, branch_id: UUID) -> bool:
        """True if any owner holds a live lease on the branch."""
        state = await self._store.get(branch_id)
        return state is not None and state.is_locked(self._clock())

    async def owner_of(self, branch_id: UUID) -> str | None:
        """Token of the live lease holder, or None."""
        state = await self._store.get(branch_id)
        if state is None or not state.is_locked(self._clock()):
            return None
        return state.lock_owner_id

    def is_held(self, branch_id: UUID) -> bool:
        """True if this manager holds the branch's lease."""
        return branch_id in self._held

    @property
    def held_lease_count(self) -> int:
        return len(self._held)


__all__ = ["LeaseInfo", "LeaseLockManager"]
