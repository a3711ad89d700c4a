"""
BranchMigrationOrchestrator - evolves every branch database's schema.

The orchestrator is the public surface of the migration subsystem. It
combines the branch registry, the migration state store, the lease lock
manager, the connection factory and the provider strategies into the
apply / rollback / force-remove operations, each in a single-branch and
an all-branches form.

State machine per branch:
    PENDING -> IN_PROGRESS -> COMPLETED | FAILED
    FAILED -> IN_PROGRESS (retry)
    FAILED -> REQUIRES_MANUAL_INTERVENTION (retry_count >= max_retry_attempts)
    COMPLETED -> IN_PROGRESS (new units appear later)

Mutating operations never raise: every failure is recorded into the
branch's migration state and returned as a failed ``MigrationResult``.

Usage:
    >>> orchestrator = BranchMigrationOrchestrator(
    ...     registry=registry,
    ...     state_store=state_store,
    ...     resolver=StrategyResolver.default(catalog),
    ... )
    >>> result = await orchestrator.apply_to_branch(branch_id)
    >>> if not result.success:
    ...     print(result.error_code, result.error_message)
    >>>
    >>> summary = await orchestrator.apply_to_all_branches()
    >>> print(summary.branches_succeeded, summary.branches_failed)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from uuid import UUID

from opentelemetry.trace import Span

from branchmigrator.config import OrchestratorConfig
from branchmigrator.connections import BranchContext, ConnectionFactory
from branchmigrator.exceptions import (
    MIGRATION_CANCELLED,
    NOTHING_TO_ROLLBACK,
    UNIT_NOT_IN_HISTORY,
    BranchMigrationError,
    BranchNotFoundError,
    ConnectionFailedError,
    LockContentionError,
    MigrationCancelledError,
    NothingToRollbackError,
    SchemaIntegrityViolationError,
    UnitNotInHistoryError,
    UnknownMigrationUnitError,
)
from branchmigrator.locks import LeaseLockManager
from branchmigrator.models import (
    Branch,
    BranchMigrationState,
    BranchStatusView,
    MigrationHistory,
    MigrationResult,
    MigrationStatus,
)
from branchmigrator.observability import Tracer, create_tracer
from branchmigrator.observability.attributes import (
    ATTR_BRANCH_ID,
    ATTR_BRANCHES_FAILED,
    ATTR_BRANCHES_PROCESSED,
    ATTR_BRANCHES_SUCCEEDED,
    ATTR_ERROR_TYPE,
    ATTR_MIGRATION_STATUS,
    ATTR_MIGRATION_TARGET_UNIT,
    ATTR_MIGRATION_UNIT,
    ATTR_RETRY_COUNT,
)
from branchmigrator.repositories import BranchRegistry, MigrationStateStore
from branchmigrator.strategies import MigrationStrategy, StrategyResolver

logger = logging.getLogger(__name__)

# Outcomes that report a failure without counting against the branch.
_BENIGN_ERRORS = (NothingToRollbackError, UnitNotInHistoryError)

BranchWork = Callable[
    [Branch, MigrationStrategy, BranchContext, BranchMigrationState, MigrationResult],
    Awaitable[None],
]


class BranchMigrationOrchestrator:
    """
    Applies, rolls back and force-removes migration units on branches.

    Share one instance (and so one lock manager) per process. Bulk
    operations visit branches sequentially.

    Args:
        registry: Source of branch records
        state_store: Persistent per-branch migration state
        resolver: Maps a branch's provider to its strategy
        connection_factory: Builds branch connection contexts
        lock_manager: Lease lock manager over ``state_store``
        config: Orchestrator configuration
        tracer: Optional tracer (if not provided, one will be created)
        enable_tracing: Overrides ``config.enable_tracing`` when given
    """

    def __init__(
        self,
        registry: BranchRegistry,
        state_store: MigrationStateStore,
        resolver: StrategyResolver,
        connection_factory: ConnectionFactory | None = None,
        lock_manager: LeaseLockManager | None = None,
        config: OrchestratorConfig | None = None,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool | None = None,
    ) -> None:
        self._config = config or OrchestratorConfig()
        if enable_tracing is None:
            enable_tracing = self._config.enable_tracing
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._registry = registry
        self._store = state_store
        self._resolver = resolver
        self._connections = connection_factory or ConnectionFactory(self._config)
        self._locks = lock_manager or LeaseLockManager(
            state_store,
            self._config.lease_duration,
            tracer=self._tracer,
        )

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    @property
    def lock_manager(self) -> LeaseLockManager:
        return self._locks

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    async def apply_to_branch(
        self,
        branch_id: UUID,
        target_unit: str | None = None,
        cancel: asyncio.Event | None = None,
    ) -> MigrationResult:
        """
        Apply pending migration units to one branch.

        Args:
            branch_id: Branch to migrate
            target_unit: Stop after this unit; later units stay pending
            cancel: Cooperative cancellation, honoured between units

        Returns:
            MigrationResult with the units applied by this call
        """
        attributes = {ATTR_BRANCH_ID: str(branch_id)}
        if target_unit:
            attributes[ATTR_MIGRATION_TARGET_UNIT] = target_unit

        async def work(
            branch: Branch,
            strategy: MigrationStrategy,
            context: BranchContext,
            state: BranchMigrationState,
            result: MigrationResult,
        ) -> None:
            if not await strategy.database_exists(context):
                logger.info("Branch %s has no database yet; creating it fresh", branch.code)

            pending = await strategy.get_pending_units(context)
            if target_unit:
                pending = await self._pending_up_to(strategy, context, pending, target_unit)

            if not pending:
                applied = await strategy.get_applied_units(context)
                logger.info("No pending migrations for branch %s", branch.code)
                await self._mark_completed(state, applied[-1] if applied else "")
                result.success = True
                return

            logger.info(
                "Applying %d migration unit(s) to branch %s: %s",
                len(pending),
                branch.code,
                ", ".join(pending),
            )
            await self._mark_in_progress(state)

            try:
                result.applied_units = await strategy.apply_units(context, cancel, target_unit)
            except MigrationCancelledError as e:
                result.applied_units = list(e.completed_units)
                applied = await strategy.get_applied_units(context)
                state.last_migration_applied = applied[-1] if applied else ""
                raise

            if not await strategy.validate_schema_integrity(context):
                raise SchemaIntegrityViolationError(branch.id, "migration")

            applied = await strategy.get_applied_units(context)
            await self._mark_completed(state, applied[-1] if applied else "")
            result.success = True
            logger.info(
                "Applied %d migration unit(s) to branch %s",
                len(result.applied_units),
                branch.code,
            )

        with self._tracer.span("branchmigrator.orchestrator.apply_to_branch", attributes):
            return await self._run_on_branch(branch_id, "apply", work)

    async def apply_to_all_branches(
        self,
        cancel: asyncio.Event | None = None,
    ) -> MigrationResult:
        """
        Apply pending units to every active branch, one branch at a time.

        Branches awaiting manual intervention are skipped when
        ``config.skip_manual_intervention_in_bulk`` is set.
        """
        with self._tracer.span("branchmigrator.orchestrator.apply_to_all_branches", {}) as span:
            summary = await self._fan_out(
                "apply",
                lambda branch: self.apply_to_branch(branch.id, cancel=cancel),
                cancel,
                skip_manual=self._config.skip_manual_intervention_in_bulk,
            )
            self._record_summary(span, summary)
            return summary

    # ------------------------------------------------------------------
    # Rollback
    # ------------------------------------------------------------------

    async def rollback_last_unit(
        self,
        branch_id: UUID,
        cancel: asyncio.Event | None = None,
    ) -> MigrationResult:
        """
        Revert the most recently applied unit of one branch.

        The rollback target is the second-to-last applied unit, or the
        empty schema when only one unit is applied.
        """

        async def work(
            branch: Branch,
            strategy: MigrationStrategy,
            context: BranchContext,
            state: BranchMigrationState,
            result: MigrationResult,
        ) -> None:
            applied = await strategy.get_applied_units(context)
            if not applied:
                raise NothingToRollbackError(branch.id)

            target = applied[-2] if len(applied) >= 2 else None
            logger.info(
                "Rolling back branch %s from %s to %s",
                branch.code,
                applied[-1],
                target or "(empty schema)",
            )
            await self._mark_in_progress(state)

            try:
                result.rolled_back_units = await strategy.rollback_to_unit(
                    context, target, cancel
                )
            except MigrationCancelledError as e:
                result.rolled_back_units = list(e.completed_units)
                remaining = await strategy.get_applied_units(context)
                state.last_migration_applied = remaining[-1] if remaining else ""
                raise

            if not await strategy.validate_schema_integrity(context):
                raise SchemaIntegrityViolationError(branch.id, "rollback")

            remaining = await strategy.get_applied_units(context)
            await self._mark_completed(state, remaining[-1] if remaining else "")
            result.success = True
            logger.info(
                "Rolled back %s on branch %s",
                ", ".join(result.rolled_back_units),
                branch.code,
            )

        with self._tracer.span(
            "branchmigrator.orchestrator.rollback_last_unit",
            {ATTR_BRANCH_ID: str(branch_id)},
        ):
            return await self._run_on_branch(branch_id, "rollback", work)

    async def rollback_all_branches(
        self,
        cancel: asyncio.Event | None = None,
    ) -> MigrationResult:
        """
        Roll back the last unit on every active branch, one at a time.

        Branches with nothing to roll back are not failures.
        """
        with self._tracer.span("branchmigrator.orchestrator.rollback_all_branches", {}) as span:
            summary = await self._fan_out(
                "rollback",
                lambda branch: self.rollback_last_unit(branch.id, cancel=cancel),
                cancel,
                benign_code=NOTHING_TO_ROLLBACK,
            )
            self._record_summary(span, summary)
            return summary

    # ------------------------------------------------------------------
    # Force-remove
    # ------------------------------------------------------------------

    async def force_remove_unit(self, branch_id: UUID, unit_name: str) -> MigrationResult:
        """
        Strike a unit from a branch's ledger without reverting its schema.

        Emergency repair for units known to be broken. The unit's schema
        effects stay in place; only its bookkeeping row is deleted.
        """

        async def work(
            branch: Branch,
            strategy: MigrationStrategy,
            context: BranchContext,
            state: BranchMigrationState,
            result: MigrationResult,
        ) -> None:
            logger.warning(
                "FORCE-REMOVING migration unit %s from branch %s ledger "
                "(schema changes are NOT reverted)",
                unit_name,
                branch.code,
            )
            await self._mark_in_progress(state)

            applied = await strategy.get_applied_units(context)
            if unit_name not in applied:
                raise UnitNotInHistoryError(unit_name, branch.id)
            if not await strategy.remove_ledger_entry(context, unit_name):
                raise UnitNotInHistoryError(unit_name, branch.id)

            remaining = await strategy.get_applied_units(context)
            await self._mark_completed(state, max(remaining) if remaining else "")
            result.removed_units = [unit_name]
            result.success = True
            logger.warning(
                "Force-removed migration unit %s from branch %s",
                unit_name,
                branch.code,
            )

        with self._tracer.span(
            "branchmigrator.orchestrator.force_remove_unit",
            {ATTR_BRANCH_ID: str(branch_id), ATTR_MIGRATION_UNIT: unit_name},
        ):
            return await self._run_on_branch(branch_id, "force-remove", work)

    async def force_remove_from_all_branches(
        self,
        unit_name: str,
        cancel: asyncio.Event | None = None,
    ) -> MigrationResult:
        """
        Force-remove a unit from every active branch, one at a time.

        Branches whose ledger does not contain the unit are already
        consistent: they are neither failures nor successes.
        """
        with self._tracer.span(
            "branchmigrator.orchestrator.force_remove_from_all_branches",
            {ATTR_MIGRATION_UNIT: unit_name},
        ) as span:
            logger.warning("Force-removing migration unit %s from all active branches", unit_name)
            summary = await self._fan_out(
                "force-remove",
                lambda branch: self.force_remove_unit(branch.id, unit_name),
                cancel,
                benign_code=UNIT_NOT_IN_HISTORY,
            )
            self._record_summary(span, summary)
            return summary

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    async def get_pending_units(self, branch_id: UUID) -> list[str]:
        """
        Units not yet applied to a branch, in dependency order.

        Raises:
            BranchNotFoundError: If the branch does not exist
        """
        with self._tracer.span(
            "branchmigrator.orchestrator.get_pending_units",
            {ATTR_BRANCH_ID: str(branch_id)},
        ):
            branch = await self._require_branch(branch_id)
            strategy = self._resolver.resolve(branch.provider)
            async with self._connections.create_branch_context(branch) as context:
                return await strategy.get_pending_units(context)

    async def get_migration_history(self, branch_id: UUID) -> MigrationHistory:
        """
        Applied and pending units plus the branch's migration state.

        Raises:
            BranchNotFoundError: If the branch does not exist
        """
        with self._tracer.span(
            "branchmigrator.orchestrator.get_migration_history",
            {ATTR_BRANCH_ID: str(branch_id)},
        ):
            branch = await self._require_branch(branch_id)
            strategy = self._resolver.resolve(branch.provider)
            async with self._connections.create_branch_context(branch) as context:
                applied = await strategy.get_applied_units(context)
                pending = await strategy.get_pending_units(context)

            state = await self._store.get(branch_id) or BranchMigrationState(branch_id=branch_id)
            return MigrationHistory(
                branch_id=branch.id,
                branch_code=branch.code,
                applied_units=applied,
                pending_units=pending,
                last_attempt_at=state.last_attempt_at,
                status=state.status,
                retry_count=state.retry_count,
                error_details=state.error_details,
            )

    async def validate_branch_database(self, branch_id: UUID) -> bool:
        """
        Check that a branch database is reachable and matches its ledger.

        Never raises; any error yields False.
        """
        with self._tracer.span(
            "branchmigrator.orchestrator.validate_branch_database",
            {ATTR_BRANCH_ID: str(branch_id)},
        ):
            try:
                branch = await self._require_branch(branch_id)
                strategy = self._resolver.resolve(branch.provider)
                async with self._connections.create_branch_context(branch) as context:
                    # The embedded probe creates the database directory.
                    if not branch.provider.is_embedded and not await strategy.can_connect(
                        context
                    ):
                        return False
                    if not await strategy.database_exists(context):
                        return False
                    return await strategy.validate_schema_integrity(context)
            except Exception:
                logger.exception("Error validating database for branch %s", branch_id)
                return False

    async def list_branch_statuses(self) -> list[BranchStatusView]:
        """Dashboard listing: one row per registered branch, ordered by code."""
        with self._tracer.span("branchmigrator.orchestrator.list_branch_statuses", {}):
            branches = await self._registry.list_branches()
            states = {state.branch_id: state for state in await self._store.list_all()}
            now = datetime.now(UTC)
            views = []
            for branch in branches:
                state = states.get(branch.id) or BranchMigrationState(branch_id=branch.id)
                locked = state.is_locked(now)
                views.append(
                    BranchStatusView(
                        branch_id=branch.id,
                        branch_code=branch.code,
                        branch_name=branch.name,
                        status=state.status,
                        last_migration_applied=state.last_migration_applied,
                        last_attempt_at=state.last_attempt_at,
                        retry_count=state.retry_count,
                        error_details=state.error_details,
                        is_locked=locked,
                        lock_expires_at=state.lock_expires_at if locked else None,
                    )
                )
            return views

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    async def clear_manual_intervention(self, branch_id: UUID) -> MigrationResult:
        """
        Return a branch escalated to manual intervention to Pending.

        Resets the retry counter so scheduled bulk runs pick the branch up
        again. A no-op success for branches in any other status.
        """
        with self._tracer.span(
            "branchmigrator.orchestrator.clear_manual_intervention",
            {ATTR_BRANCH_ID: str(branch_id)},
        ):
            started = time.perf_counter()
            result = MigrationResult()
            try:
                branch = await self._require_branch(branch_id)
                async with self._locks.hold(branch_id):
                    state = await self._store.get_or_create(branch_id)
                    if state.status.requires_operator:
                        state.status = MigrationStatus.PENDING
                        state.retry_count = 0
                        state.error_details = None
                        await self._store.save(state)
                        logger.warning(
                            "Manual intervention cleared for branch %s",
                            branch.code,
                        )
                    else:
                        result.error_message = (
                            f"Branch {branch.code} is {state.status.value}; nothing to clear"
                        )
                result.success = True
            except (BranchNotFoundError, LockContentionError) as e:
                logger.warning("Cannot clear manual intervention for %s: %s", branch_id, e)
                _fail(result, e)
            except Exception as e:
                logger.exception("Error clearing manual intervention for %s", branch_id)
                _fail(result, e)
            result.duration = _elapsed(started)
            return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run_on_branch(
        self,
        branch_id: UUID,
        operation: str,
        work: BranchWork,
    ) -> MigrationResult:
        """
        Shared lock / strategy / status choreography of mutating operations.

        Branch lookup and lease acquisition failures are reported without
        touching the branch's state. Any failure after the lease is taken
        is recorded into the state (retry counter, escalation) unless it is
        benign or a cancellation.
        """
        started = time.perf_counter()
        result = MigrationResult()
        try:
            await self._attempt(branch_id, operation, work, result)
        except Exception as e:
            # Head-office store or registry failures.
            logger.exception("Unexpected error during %s of branch %s", operation, branch_id)
            _fail(result, e)
        result.duration = _elapsed(started)
        return result

    async def _attempt(
        self,
        branch_id: UUID,
        operation: str,
        work: BranchWork,
        result: MigrationResult,
    ) -> None:
        branch = await self._registry.get_branch(branch_id)
        if branch is None:
            error: BranchMigrationError = BranchNotFoundError(branch_id)
            logger.warning("Cannot %s: %s", operation, error)
            _fail(result, error)
            return

        if not await self._locks.acquire(branch_id):
            error = LockContentionError(branch_id, await self._locks.owner_of(branch_id))
            logger.warning("Cannot %s branch %s: %s", operation, branch.code, error)
            _fail(result, error)
            return

        try:
            state = await self._store.get_or_create(branch_id)
            previous_status = state.status
            try:
                strategy = self._resolver.resolve(branch.provider)
                async with self._connections.create_branch_context(branch) as context:
                    if not await strategy.can_connect(context):
                        raise ConnectionFailedError(branch.id, branch.code)
                    await work(branch, strategy, context, state, result)
            except _BENIGN_ERRORS as e:
                logger.info("%s on branch %s: %s", operation.capitalize(), branch.code, e)
                state.status = previous_status
                state.last_attempt_at = datetime.now(UTC)
                await self._store.save(state)
                _fail(result, e)
            except MigrationCancelledError as e:
                logger.warning(
                    "%s on branch %s cancelled: %s", operation.capitalize(), branch.code, e
                )
                state.status = MigrationStatus.PENDING
                state.error_details = str(e)
                state.last_attempt_at = datetime.now(UTC)
                await self._store.save(state)
                _fail(result, e)
            except Exception as e:
                await self._record_failure(branch, state, e)
                _fail(result, e)
        finally:
            await self._locks.release(branch_id)

    async def _record_failure(
        self,
        branch: Branch,
        state: BranchMigrationState,
        error: Exception,
    ) -> None:
        state.retry_count += 1
        if state.retry_count >= self._config.max_retry_attempts:
            state.status = MigrationStatus.REQUIRES_MANUAL_INTERVENTION
        else:
            state.status = MigrationStatus.FAILED
        state.error_details = str(error) or type(error).__name__
        state.last_attempt_at = datetime.now(UTC)
        with self._tracer.span(
            "branchmigrator.orchestrator.record_failure",
            {
                ATTR_BRANCH_ID: str(branch.id),
                ATTR_RETRY_COUNT: state.retry_count,
                ATTR_MIGRATION_STATUS: state.status.value,
                ATTR_ERROR_TYPE: type(error).__name__,
            },
        ):
            await self._store.save(state)

        logger.error(
            "Migration failed for branch %s (attempt %d/%d): %s",
            branch.code,
            state.retry_count,
            self._config.max_retry_attempts,
            error,
            exc_info=error,
            extra={
                "branch_id": str(branch.id),
                "branch_code": branch.code,
                "retry_count": state.retry_count,
                "error_type": type(error).__name__,
            },
        )
        if state.status.requires_operator:
            logger.error(
                "Branch %s requires manual intervention after %d failed attempts",
                branch.code,
                state.retry_count,
            )

    async def _mark_in_progress(self, state: BranchMigrationState) -> None:
        state.status = MigrationStatus.IN_PROGRESS
        state.last_attempt_at = datetime.now(UTC)
        await self._store.save(state)

    async def _mark_completed(self, state: BranchMigrationState, last_applied: str) -> None:
        state.status = MigrationStatus.COMPLETED
        state.last_migration_applied = last_applied
        state.retry_count = 0
        state.error_details = None
        state.last_attempt_at = datetime.now(UTC)
        await self._store.save(state)

    async def _pending_up_to(
        self,
        strategy: MigrationStrategy,
        context: BranchContext,
        pending: list[str],
        target_unit: str,
    ) -> list[str]:
        if target_unit in pending:
            return pending[: pending.index(target_unit) + 1]
        if target_unit in await strategy.get_applied_units(context):
            return []
        raise UnknownMigrationUnitError(target_unit)

    async def _require_branch(self, branch_id: UUID) -> Branch:
        branch = await self._registry.get_branch(branch_id)
        if branch is None:
            raise BranchNotFoundError(branch_id)
        return branch

    async def _fan_out(
        self,
        operation: str,
        run_one: Callable[[Branch], Awaitable[MigrationResult]],
        cancel: asyncio.Event | None,
        *,
        benign_code: str | None = None,
        skip_manual: bool = False,
    ) -> MigrationResult:
        """Run a single-branch operation over every active branch in turn."""
        started = time.perf_counter()
        summary = MigrationResult()
        try:
            branches = await self._registry.list_active_branches()
            logger.info("Bulk %s over %d active branch(es)", operation, len(branches))

            for branch in branches:
                if self._cancelled(cancel, summary):
                    break
                if skip_manual:
                    state = await self._store.get(branch.id)
                    if state is not None and state.status.requires_operator:
                        logger.warning(
                            "Skipping branch %s: requires manual intervention (%s)",
                            branch.code,
                            state.error_details,
                        )
                        summary.branches_skipped += 1
                        summary.add_failed_branch(branch.code, "Requires manual intervention")
                        continue

                self._fold(summary, branch, await run_one(branch), benign_code)
        except Exception as e:
            logger.exception("Bulk %s aborted", operation)
            _fail(summary, e)

        summary.success = (
            summary.branches_failed == 0
            and summary.branches_skipped == 0
            and summary.error_code is None
        )
        summary.duration = _elapsed(started)
        logger.info(
            "Bulk %s finished: %d processed, %d succeeded, %d failed, %d skipped in %.2fs",
            operation,
            summary.branches_processed,
            summary.branches_succeeded,
            summary.branches_failed,
            summary.branches_skipped,
            summary.duration.total_seconds(),
        )
        return summary

    @staticmethod
    def _fold(
        summary: MigrationResult,
        branch: Branch,
        branch_result: MigrationResult,
        benign_code: str | None = None,
    ) -> None:
        summary.branches_processed += 1
        summary.merge_branch(branch.code, branch_result)
        if branch_result.success:
            summary.branches_succeeded += 1
        elif benign_code is not None and branch_result.error_code == benign_code:
            logger.debug("Branch %s: %s", branch.code, branch_result.error_message)
        else:
            summary.branches_failed += 1
            summary.add_failed_branch(branch.code)

    @staticmethod
    def _cancelled(cancel: asyncio.Event | None, summary: MigrationResult) -> bool:
        if cancel is None or not cancel.is_set():
            return False
        logger.warning(
            "Bulk operation cancelled after %d branch(es)",
            summary.branches_processed,
        )
        summary.error_code = MIGRATION_CANCELLED
        summary.error_message = (
            f"{summary.error_message}; Cancelled" if summary.error_message else "Cancelled"
        )
        return True

    @staticmethod
    def _record_summary(span: Span | None, summary: MigrationResult) -> None:
        if span is None:
            return
        span.set_attribute(ATTR_BRANCHES_PROCESSED, summary.branches_processed)
        span.set_attribute(ATTR_BRANCHES_SUCCEEDED, summary.branches_succeeded)
        span.set_attribute(ATTR_BRANCHES_FAILED, summary.branches_failed)


def _fail(result: MigrationResult, error: Exception) -> None:
    result.success = False
    result.error_message = str(error) or type(error).__name__
    if isinstance(error, BranchMigrationError):
        result.error_code = error.error_code
    else:
        result.error_code = type(error).__name__


def _elapsed(started: float) -> timedelta:
    return timedelta(seconds=time.perf_counter() - started)


__all__ = ["BranchMigrationOrchestrator"]
