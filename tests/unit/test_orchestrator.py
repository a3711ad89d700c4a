"""
Unit tests for BranchMigrationOrchestrator.

Runs against FakeMigrationStrategy so that failures, unreachable
branches, schema drift and cancellation can be induced precisely.

Tests cover:
- Single-branch apply, rollback and force-remove
- Failure recording, retry counting and escalation
- Lock contention and missing branches
- Bulk operations and their summaries
- Read-only queries and the operator reset
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from branchmigrator.catalog import MigrationCatalog
from branchmigrator.config import OrchestratorConfig
from branchmigrator.exceptions import BranchNotFoundError
from branchmigrator.locks import LeaseLockManager
from branchmigrator.models import Branch, DatabaseProvider, MigrationStatus
from branchmigrator.observability import MockTracer
from branchmigrator.orchestrator import BranchMigrationOrchestrator
from branchmigrator.strategies import StrategyResolver
from tests.fixtures import (
    UNIT_A,
    UNIT_B,
    UNIT_C,
    FakeMigrationStrategy,
    make_branch,
    make_unit,
)


async def add_branch(registry, code: str = "NYC", **overrides) -> Branch:
    branch = make_branch(code, **overrides)
    await registry.add(branch)
    return branch


async def set_status(state_store, branch: Branch, status: MigrationStatus, retries: int) -> None:
    state = await state_store.get_or_create(branch.id)
    state.status = status
    state.retry_count = retries
    state.error_details = "earlier failure"
    await state_store.save(state)


# ============================================================================
# Apply to one branch
# ============================================================================


class TestApplyToBranch:
    @pytest.mark.asyncio
    async def test_applies_all_pending_units(self, orchestrator, registry, state_store):
        branch = await add_branch(registry)

        result = await orchestrator.apply_to_branch(branch.id)

        assert result.success is True
        assert result.applied_units == [UNIT_A, UNIT_B, UNIT_C]
        assert result.error_message is None
        state = await state_store.get(branch.id)
        assert state.status == MigrationStatus.COMPLETED
        assert state.last_migration_applied == UNIT_C
        assert state.retry_count == 0
        assert state.error_details is None
        assert state.last_attempt_at is not None
        assert state.lock_owner_id is None

    @pytest.mark.asyncio
    async def test_second_apply_is_noop(self, orchestrator, registry, state_store, fake_strategy):
        branch = await add_branch(registry)
        await orchestrator.apply_to_branch(branch.id)

        result = await orchestrator.apply_to_branch(branch.id)

        assert result.success is True
        assert result.applied_units == []
        assert result.error_message is None
        assert fake_strategy.apply_calls == 1
        state = await state_store.get(branch.id)
        assert state.status == MigrationStatus.COMPLETED
        assert state.last_migration_applied == UNIT_C

    @pytest.mark.asyncio
    async def test_no_pending_units_clears_previous_failure(
        self, orchestrator, registry, state_store, fake_strategy
    ):
        branch = await add_branch(registry)
        fake_strategy.ledgers["NYC"] = [UNIT_A, UNIT_B, UNIT_C]
        await set_status(state_store, branch, MigrationStatus.FAILED, 2)

        result = await orchestrator.apply_to_branch(branch.id)

        assert result.success is True
        state = await state_store.get(branch.id)
        assert state.status == MigrationStatus.COMPLETED
        assert state.retry_count == 0
        assert state.error_details is None

    @pytest.mark.asyncio
    async def test_target_unit_stops_early(self, orchestrator, registry, state_store):
        branch = await add_branch(registry)

        result = await orchestrator.apply_to_branch(branch.id, target_unit=UNIT_B)

        assert result.applied_units == [UNIT_A, UNIT_B]
        assert (await state_store.get(branch.id)).last_migration_applied == UNIT_B
        assert await orchestrator.get_pending_units(branch.id) == [UNIT_C]

    @pytest.mark.asyncio
    async def test_already_applied_target_is_noop(self, orchestrator, registry, state_store):
        branch = await add_branch(registry)
        await orchestrator.apply_to_branch(branch.id, target_unit=UNIT_B)

        result = await orchestrator.apply_to_branch(branch.id, target_unit=UNIT_A)

        assert result.success is True
        assert result.applied_units == []
        assert (await state_store.get(branch.id)).last_migration_applied == UNIT_B

    @pytest.mark.asyncio
    async def test_unknown_target_is_a_failure(self, orchestrator, registry, state_store):
        branch = await add_branch(registry)

        result = await orchestrator.apply_to_branch(branch.id, target_unit="nope")

        assert result.success is False
        assert result.error_code == "UNKNOWN_MIGRATION_UNIT"
        state = await state_store.get(branch.id)
        assert state.status == MigrationStatus.FAILED
        assert state.retry_count == 1

    @pytest.mark.asyncio
    async def test_new_units_move_completed_branch_forward(
        self, orchestrator, registry, state_store
    ):
        branch = await add_branch(registry)
        await orchestrator.apply_to_branch(branch.id, target_unit=UNIT_A)

        result = await orchestrator.apply_to_branch(branch.id)

        assert result.applied_units == [UNIT_B, UNIT_C]
        assert (await state_store.get(branch.id)).last_migration_applied == UNIT_C


# ============================================================================
# Failures and escalation
# ============================================================================


class TestFailureHandling:
    @pytest.mark.asyncio
    async def test_failing_unit_records_failure(
        self, orchestrator, registry, state_store, fake_strategy
    ):
        branch = await add_branch(registry)
        fake_strategy.failing_units[UNIT_B] = RuntimeError("syntax error near CREATE")

        result = await orchestrator.apply_to_branch(branch.id)

        assert result.success is False
        assert result.error_code == "RuntimeError"
        assert "syntax error" in result.error_message
        state = await state_store.get(branch.id)
        assert state.status == MigrationStatus.FAILED
        assert state.retry_count == 1
        assert state.error_details == "syntax error near CREATE"
        assert state.lock_owner_id is None
        assert fake_strategy.ledgers["NYC"] == [UNIT_A]

    @pytest.mark.asyncio
    async def test_three_failures_require_manual_intervention(
        self, orchestrator, registry, state_store, fake_strategy
    ):
        branch = await add_branch(registry)
        fake_strategy.failing_units[UNIT_A] = RuntimeError("boom")

        for expected_retries in (1, 2):
            await orchestrator.apply_to_branch(branch.id)
            state = await state_store.get(branch.id)
            assert state.status == MigrationStatus.FAILED
            assert state.retry_count == expected_retries

        await orchestrator.apply_to_branch(branch.id)
        state = await state_store.get(branch.id)
        assert state.status == MigrationStatus.REQUIRES_MANUAL_INTERVENTION
        assert state.retry_count == 3

    @pytest.mark.asyncio
    async def test_fourth_failure_keeps_counting(
        self, orchestrator, registry, state_store, fake_strategy
    ):
        branch = await add_branch(registry)
        await set_status(state_store, branch, MigrationStatus.REQUIRES_MANUAL_INTERVENTION, 3)
        fake_strategy.failing_units[UNIT_A] = RuntimeError("boom")

        await orchestrator.apply_to_branch(branch.id)

        state = await state_store.get(branch.id)
        assert state.status == MigrationStatus.REQUIRES_MANUAL_INTERVENTION
        assert state.retry_count == 4

    @pytest.mark.asyncio
    async def test_success_resets_retry_count(
        self, orchestrator, registry, state_store, fake_strategy
    ):
        branch = await add_branch(registry)
        fake_strategy.failing_units[UNIT_B] = RuntimeError("boom")
        await orchestrator.apply_to_branch(branch.id)
        fake_strategy.failing_units.clear()

        result = await orchestrator.apply_to_branch(branch.id)

        assert result.applied_units == [UNIT_B, UNIT_C]
        state = await state_store.get(branch.id)
        assert state.retry_count == 0
        assert state.error_details is None

    @pytest.mark.asyncio
    async def test_unreachable_branch(self, orchestrator, registry, state_store, fake_strategy):
        branch = await add_branch(registry)
        fake_strategy.unreachable.add("NYC")

        result = await orchestrator.apply_to_branch(branch.id)

        assert result.error_code == "CONNECTION_FAILED"
        assert "NYC" in result.error_message
        state = await state_store.get(branch.id)
        assert state.status == MigrationStatus.FAILED
        assert state.retry_count == 1

    @pytest.mark.asyncio
    async def test_schema_drift_after_apply(
        self, orchestrator, registry, state_store, fake_strategy
    ):
        branch = await add_branch(registry)
        fake_strategy.corrupt.add("NYC")

        result = await orchestrator.apply_to_branch(branch.id)

        assert result.success is False
        assert result.error_code == "SCHEMA_INTEGRITY_VIOLATION"
        assert result.applied_units == [UNIT_A, UNIT_B, UNIT_C]
        assert (await state_store.get(branch.id)).status == MigrationStatus.FAILED

    @pytest.mark.asyncio
    async def test_unsupported_provider(self, orchestrator, registry, state_store):
        branch = await add_branch(registry, "SQL1", provider=DatabaseProvider.MSSQL)

        result = await orchestrator.apply_to_branch(branch.id)

        assert result.error_code == "UNSUPPORTED_PROVIDER"
        assert (await state_store.get(branch.id)).retry_count == 1

    @pytest.mark.asyncio
    async def test_invalid_connection_config(
        self, orchestrator, registry, state_store, resolver, catalog
    ):
        resolver.register(FakeMigrationStrategy(catalog, DatabaseProvider.POSTGRESQL))
        branch = await add_branch(
            registry, "PG1", provider=DatabaseProvider.POSTGRESQL, db_server=""
        )

        result = await orchestrator.apply_to_branch(branch.id)

        assert result.error_code == "INVALID_CONNECTION_CONFIG"
        state = await state_store.get(branch.id)
        assert state.status == MigrationStatus.FAILED
        assert state.retry_count == 1

    @pytest.mark.asyncio
    async def test_state_store_failure_never_raises(self, orchestrator, registry, state_store):
        branch = await add_branch(registry)

        with patch.object(state_store, "save", AsyncMock(side_effect=RuntimeError("db down"))):
            result = await orchestrator.apply_to_branch(branch.id)

        assert result.success is False
        assert result.error_code == "RuntimeError"
        assert not await orchestrator.lock_manager.is_locked(branch.id)


class TestPreconditions:
    """Failures reported without touching the branch's migration state."""

    @pytest.mark.asyncio
    async def test_branch_not_found(self, orchestrator, state_store):
        branch_id = uuid4()

        result = await orchestrator.apply_to_branch(branch_id)

        assert result.success is False
        assert result.error_code == "BRANCH_NOT_FOUND"
        assert await state_store.get(branch_id) is None

    @pytest.mark.asyncio
    async def test_lock_contention(self, orchestrator, registry, state_store, fake_strategy):
        branch = await add_branch(registry)
        other = LeaseLockManager(state_store, enable_tracing=False)
        await other.acquire(branch.id)

        result = await orchestrator.apply_to_branch(branch.id)

        assert result.success is False
        assert result.error_code == "LOCK_CONTENTION"
        state = await state_store.get(branch.id)
        assert state.status == MigrationStatus.PENDING
        assert state.retry_count == 0
        assert await other.is_locked(branch.id)
        assert fake_strategy.apply_calls == 0


# ============================================================================
# Cancellation
# ============================================================================


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_before_first_unit(self, orchestrator, registry, state_store):
        branch = await add_branch(registry)
        cancel = asyncio.Event()
        cancel.set()

        result = await orchestrator.apply_to_branch(branch.id, cancel=cancel)

        assert result.success is False
        assert result.error_code == "MIGRATION_CANCELLED"
        state = await state_store.get(branch.id)
        assert state.status == MigrationStatus.PENDING
        assert state.retry_count == 0
        assert state.error_details is not None

    @pytest.mark.asyncio
    async def test_cancel_between_units_keeps_applied(
        self, orchestrator, registry, state_store, fake_strategy
    ):
        branch = await add_branch(registry)
        cancel = asyncio.Event()
        fake_strategy.after_unit = lambda name: cancel.set() if name == UNIT_A else None

        result = await orchestrator.apply_to_branch(branch.id, cancel=cancel)

        assert result.error_code == "MIGRATION_CANCELLED"
        assert result.applied_units == [UNIT_A]
        state = await state_store.get(branch.id)
        assert state.status == MigrationStatus.PENDING
        assert state.last_migration_applied == UNIT_A
        assert state.lock_owner_id is None


# ============================================================================
# Rollback and force-remove
# ============================================================================


class TestRollbackLastUnit:
    @pytest.mark.asyncio
    async def test_rollback_single_unit_empties_ledger(
        self, orchestrator, registry, state_store, fake_strategy
    ):
        branch = await add_branch(registry)
        fake_strategy.ledgers["NYC"] = [UNIT_A]

        result = await orchestrator.rollback_last_unit(branch.id)

        assert result.success is True
        assert result.rolled_back_units == [UNIT_A]
        assert fake_strategy.ledgers["NYC"] == []
        state = await state_store.get(branch.id)
        assert state.status == MigrationStatus.COMPLETED
        assert state.last_migration_applied == ""

    @pytest.mark.asyncio
    async def test_rollback_reverts_only_newest(
        self, orchestrator, registry, state_store, fake_strategy
    ):
        branch = await add_branch(registry)
        await orchestrator.apply_to_branch(branch.id)

        result = await orchestrator.rollback_last_unit(branch.id)

        assert result.rolled_back_units == [UNIT_C]
        assert fake_strategy.ledgers["NYC"] == [UNIT_A, UNIT_B]
        assert (await state_store.get(branch.id)).last_migration_applied == UNIT_B

    @pytest.mark.asyncio
    async def test_nothing_to_rollback_is_benign(self, orchestrator, registry, state_store):
        branch = await add_branch(registry)

        result = await orchestrator.rollback_last_unit(branch.id)

        assert result.success is False
        assert result.error_code == "NOTHING_TO_ROLLBACK"
        state = await state_store.get(branch.id)
        assert state.status == MigrationStatus.PENDING
        assert state.retry_count == 0
        assert state.last_attempt_at is not None

    @pytest.mark.asyncio
    async def test_irreversible_unit_counts_as_failure(
        self, orchestrator, registry, state_store, fake_strategy
    ):
        branch = await add_branch(registry)
        fake_strategy.catalog = MigrationCatalog(
            [
                make_unit(UNIT_A, "products"),
                make_unit(UNIT_B, "customers"),
                make_unit(UNIT_C, "orders", reversible=False),
            ]
        )
        fake_strategy.ledgers["NYC"] = [UNIT_A, UNIT_B, UNIT_C]

        result = await orchestrator.rollback_last_unit(branch.id)

        assert result.error_code == "IRREVERSIBLE_UNIT"
        assert fake_strategy.ledgers["NYC"] == [UNIT_A, UNIT_B, UNIT_C]
        assert (await state_store.get(branch.id)).retry_count == 1


class TestForceRemoveUnit:
    @pytest.mark.asyncio
    async def test_removes_entry_and_recomputes_last_applied(
        self, orchestrator, registry, state_store, fake_strategy
    ):
        branch = await add_branch(registry)
        fake_strategy.ledgers["NYC"] = [UNIT_A, UNIT_B, UNIT_C]

        result = await orchestrator.force_remove_unit(branch.id, UNIT_C)

        assert result.success is True
        assert result.removed_units == [UNIT_C]
        assert fake_strategy.ledgers["NYC"] == [UNIT_A, UNIT_B]
        state = await state_store.get(branch.id)
        assert state.status == MigrationStatus.COMPLETED
        assert state.last_migration_applied == UNIT_B

    @pytest.mark.asyncio
    async def test_removing_middle_unit_keeps_newest(
        self, orchestrator, registry, state_store, fake_strategy
    ):
        branch = await add_branch(registry)
        fake_strategy.ledgers["NYC"] = [UNIT_A, UNIT_B, UNIT_C]

        await orchestrator.force_remove_unit(branch.id, UNIT_B)

        assert (await state_store.get(branch.id)).last_migration_applied == UNIT_C
        assert await orchestrator.get_pending_units(branch.id) == [UNIT_B]

    @pytest.mark.asyncio
    async def test_clears_failure_state(self, orchestrator, registry, state_store, fake_strategy):
        branch = await add_branch(registry)
        fake_strategy.ledgers["NYC"] = [UNIT_A]
        await set_status(state_store, branch, MigrationStatus.REQUIRES_MANUAL_INTERVENTION, 3)

        await orchestrator.force_remove_unit(branch.id, UNIT_A)

        state = await state_store.get(branch.id)
        assert state.status == MigrationStatus.COMPLETED
        assert state.retry_count == 0
        assert state.error_details is None
        assert state.last_migration_applied == ""

    @pytest.mark.asyncio
    async def test_unit_not_in_history_restores_status(
        self, orchestrator, registry, state_store, fake_strategy
    ):
        branch = await add_branch(registry)
        fake_strategy.ledgers["NYC"] = [UNIT_A]
        await set_status(state_store, branch, MigrationStatus.FAILED, 1)

        result = await orchestrator.force_remove_unit(branch.id, UNIT_B)

        assert result.success is False
        assert result.error_code == "UNIT_NOT_IN_HISTORY"
        state = await state_store.get(branch.id)
        assert state.status == MigrationStatus.FAILED
        assert state.retry_count == 1


# ============================================================================
# Bulk operations
# ============================================================================


class TestApplyToAllBranches:
    @pytest.mark.asyncio
    async def test_partial_failure_summary(self, orchestrator, registry, fake_strategy):
        await add_branch(registry, "X")
        await add_branch(registry, "Y")
        fake_strategy.unreachable.add("Y")

        summary = await orchestrator.apply_to_all_branches()

        assert summary.success is False
        assert summary.branches_processed == 2
        assert summary.branches_succeeded == 1
        assert summary.branches_failed == 1
        assert summary.error_message == "Failed branches: Y"
        assert summary.applied_units == [f"[X] {UNIT_A}", f"[X] {UNIT_B}", f"[X] {UNIT_C}"]

    @pytest.mark.asyncio
    async def test_all_succeed(self, orchestrator, registry):
        await add_branch(registry, "X")
        await add_branch(registry, "Y")

        summary = await orchestrator.apply_to_all_branches()

        assert summary.success is True
        assert summary.branches_succeeded == 2
        assert summary.error_message is None
        assert summary.duration.total_seconds() >= 0

    @pytest.mark.asyncio
    async def test_inactive_branches_are_ignored(self, orchestrator, registry, fake_strategy):
        await add_branch(registry, "X")
        await add_branch(registry, "OLD", is_active=False)

        summary = await orchestrator.apply_to_all_branches()

        assert summary.branches_processed == 1
        assert "OLD" not in fake_strategy.ledgers

    @pytest.mark.asyncio
    async def test_manual_intervention_branches_are_skipped(
        self, orchestrator, registry, state_store, fake_strategy
    ):
        await add_branch(registry, "X")
        stuck = await add_branch(registry, "Z")
        await set_status(state_store, stuck, MigrationStatus.REQUIRES_MANUAL_INTERVENTION, 3)

        summary = await orchestrator.apply_to_all_branches()

        assert summary.success is False
        assert summary.branches_processed == 1
        assert summary.branches_skipped == 1
        assert "Requires manual intervention: Z" in summary.error_message
        assert "Z" not in fake_strategy.ledgers
        assert (await state_store.get(stuck.id)).retry_count == 3

    @pytest.mark.asyncio
    async def test_skip_can_be_disabled(
        self, registry, state_store, resolver, sqlite_root, fake_strategy
    ):
        orchestrator = BranchMigrationOrchestrator(
            registry,
            state_store,
            resolver,
            config=OrchestratorConfig(
                sqlite_root=sqlite_root,
                skip_manual_intervention_in_bulk=False,
                enable_tracing=False,
            ),
        )
        stuck = await add_branch(registry, "Z")
        await set_status(state_store, stuck, MigrationStatus.REQUIRES_MANUAL_INTERVENTION, 3)

        summary = await orchestrator.apply_to_all_branches()

        assert summary.branches_skipped == 0
        assert summary.branches_succeeded == 1
        assert (await state_store.get(stuck.id)).status == MigrationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, orchestrator, registry):
        await add_branch(registry, "X")
        cancel = asyncio.Event()
        cancel.set()

        summary = await orchestrator.apply_to_all_branches(cancel)

        assert summary.success is False
        assert summary.branches_processed == 0
        assert summary.error_code == "MIGRATION_CANCELLED"
        assert summary.error_message == "Cancelled"

    @pytest.mark.asyncio
    async def test_cancel_between_branches(self, orchestrator, registry, fake_strategy):
        await add_branch(registry, "X")
        await add_branch(registry, "Y")
        cancel = asyncio.Event()
        fake_strategy.after_unit = lambda name: cancel.set() if name == UNIT_C else None

        summary = await orchestrator.apply_to_all_branches(cancel)

        assert summary.branches_processed == 1
        assert summary.branches_succeeded == 1
        assert summary.error_code == "MIGRATION_CANCELLED"
        assert "Y" not in fake_strategy.ledgers

    @pytest.mark.asyncio
    async def test_registry_failure_never_raises(self, orchestrator, registry):
        with patch.object(
            registry, "list_active_branches", AsyncMock(side_effect=RuntimeError("down"))
        ):
            summary = await orchestrator.apply_to_all_branches()

        assert summary.success is False
        assert summary.error_code == "RuntimeError"


class TestRollbackAllBranches:
    @pytest.mark.asyncio
    async def test_empty_branches_are_not_failures(self, orchestrator, registry, fake_strategy):
        await add_branch(registry, "X")
        await add_branch(registry, "Y")
        fake_strategy.ledgers["X"] = [UNIT_A, UNIT_B]

        summary = await orchestrator.rollback_all_branches()

        assert summary.success is True
        assert summary.branches_processed == 2
        assert summary.branches_succeeded == 1
        assert summary.branches_failed == 0
        assert summary.rolled_back_units == [f"[X] {UNIT_B}"]


class TestForceRemoveFromAllBranches:
    @pytest.mark.asyncio
    async def test_only_branches_with_the_unit_count(self, orchestrator, registry, fake_strategy):
        for code in ("X", "Y", "Z"):
            await add_branch(registry, code)
        fake_strategy.ledgers["X"] = [UNIT_A]
        fake_strategy.ledgers["Y"] = [UNIT_A, UNIT_B]
        fake_strategy.ledgers["Z"] = [UNIT_A]

        summary = await orchestrator.force_remove_from_all_branches(UNIT_B)

        assert summary.success is True
        assert summary.branches_processed == 3
        assert summary.branches_succeeded == 1
        assert summary.branches_failed == 0
        assert summary.removed_units == [f"[Y] {UNIT_B}"]
        assert fake_strategy.ledgers["Y"] == [UNIT_A]

    @pytest.mark.asyncio
    async def test_unreachable_branch_fails(self, orchestrator, registry, fake_strategy):
        await add_branch(registry, "X")
        await add_branch(registry, "Y")
        fake_strategy.ledgers["X"] = [UNIT_A]
        fake_strategy.unreachable.add("Y")

        summary = await orchestrator.force_remove_from_all_branches(UNIT_A)

        assert summary.success is False
        assert summary.branches_succeeded == 1
        assert summary.error_message == "Failed branches: Y"


# ============================================================================
# Queries
# ============================================================================


class TestQueries:
    @pytest.mark.asyncio
    async def test_pending_units(self, orchestrator, registry, fake_strategy):
        branch = await add_branch(registry)
        fake_strategy.ledgers["NYC"] = [UNIT_A]

        assert await orchestrator.get_pending_units(branch.id) == [UNIT_B, UNIT_C]

    @pytest.mark.asyncio
    async def test_queries_on_unknown_branch_raise(self, orchestrator):
        with pytest.raises(BranchNotFoundError):
            await orchestrator.get_pending_units(uuid4())
        with pytest.raises(BranchNotFoundError):
            await orchestrator.get_migration_history(uuid4())

    @pytest.mark.asyncio
    async def test_migration_history(self, orchestrator, registry, fake_strategy):
        branch = await add_branch(registry)
        fake_strategy.unreachable.add("NYC")
        await orchestrator.apply_to_branch(branch.id)
        fake_strategy.unreachable.clear()
        fake_strategy.ledgers["NYC"] = [UNIT_A]

        history = await orchestrator.get_migration_history(branch.id)

        assert history.branch_code == "NYC"
        assert history.applied_units == [UNIT_A]
        assert history.pending_units == [UNIT_B, UNIT_C]
        assert history.status == MigrationStatus.FAILED
        assert history.retry_count == 1
        assert history.error_details is not None
        assert history.last_attempt_at is not None

    @pytest.mark.asyncio
    async def test_history_of_untouched_branch(self, orchestrator, registry):
        branch = await add_branch(registry)

        history = await orchestrator.get_migration_history(branch.id)

        assert history.status == MigrationStatus.PENDING
        assert history.applied_units == []
        assert history.last_attempt_at is None

    @pytest.mark.asyncio
    async def test_validate_branch_database(self, orchestrator, registry, fake_strategy):
        good = await add_branch(registry, "X")
        drifted = await add_branch(registry, "Y")
        missing = await add_branch(registry, "Z")
        fake_strategy.ledgers["X"] = [UNIT_A]
        fake_strategy.ledgers["Y"] = [UNIT_A]
        fake_strategy.corrupt.add("Y")

        assert await orchestrator.validate_branch_database(good.id) is True
        assert await orchestrator.validate_branch_database(drifted.id) is False
        assert await orchestrator.validate_branch_database(missing.id) is False
        assert await orchestrator.validate_branch_database(uuid4()) is False

    @pytest.mark.asyncio
    async def test_list_branch_statuses(self, orchestrator, registry, state_store):
        done = await add_branch(registry, "A1")
        untouched = await add_branch(registry, "B1", is_active=False)
        busy = await add_branch(registry, "C1")
        await orchestrator.apply_to_branch(done.id)
        await orchestrator.lock_manager.acquire(busy.id)

        views = await orchestrator.list_branch_statuses()

        by_code = {v.branch_code: v for v in views}
        assert [v.branch_code for v in views] == ["A1", "B1", "C1"]
        assert by_code["A1"].status == MigrationStatus.COMPLETED
        assert by_code["A1"].last_migration_applied == UNIT_C
        assert by_code["A1"].is_locked is False
        assert by_code["B1"].branch_id == untouched.id
        assert by_code["B1"].status == MigrationStatus.PENDING
        assert by_code["C1"].is_locked is True
        assert by_code["C1"].lock_expires_at is not None


# ============================================================================
# Operator actions
# ============================================================================


class TestClearManualIntervention:
    @pytest.mark.asyncio
    async def test_resets_escalated_branch(self, orchestrator, registry, state_store):
        branch = await add_branch(registry)
        await set_status(state_store, branch, MigrationStatus.REQUIRES_MANUAL_INTERVENTION, 3)

        result = await orchestrator.clear_manual_intervention(branch.id)

        assert result.success is True
        assert result.error_message is None
        state = await state_store.get(branch.id)
        assert state.status == MigrationStatus.PENDING
        assert state.retry_count == 0
        assert state.error_details is None
        assert state.lock_owner_id is None

    @pytest.mark.asyncio
    async def test_branch_is_picked_up_by_next_bulk_run(self, orchestrator, registry, state_store):
        branch = await add_branch(registry)
        await set_status(state_store, branch, MigrationStatus.REQUIRES_MANUAL_INTERVENTION, 3)
        await orchestrator.clear_manual_intervention(branch.id)

        summary = await orchestrator.apply_to_all_branches()

        assert summary.branches_succeeded == 1
        assert summary.branches_skipped == 0

    @pytest.mark.asyncio
    async def test_other_status_is_noop(self, orchestrator, registry, state_store):
        branch = await add_branch(registry)
        await set_status(state_store, branch, MigrationStatus.FAILED, 1)

        result = await orchestrator.clear_manual_intervention(branch.id)

        assert result.success is True
        assert "nothing to clear" in result.error_message
        assert (await state_store.get(branch.id)).retry_count == 1

    @pytest.mark.asyncio
    async def test_unknown_branch(self, orchestrator):
        result = await orchestrator.clear_manual_intervention(uuid4())

        assert result.success is False
        assert result.error_code == "BRANCH_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_lock_contention(self, orchestrator, registry, state_store):
        branch = await add_branch(registry)
        await set_status(state_store, branch, MigrationStatus.REQUIRES_MANUAL_INTERVENTION, 3)
        await LeaseLockManager(state_store, enable_tracing=False).acquire(branch.id)

        result = await orchestrator.clear_manual_intervention(branch.id)

        assert result.error_code == "LOCK_CONTENTION"
        state = await state_store.get(branch.id)
        assert state.status == MigrationStatus.REQUIRES_MANUAL_INTERVENTION


class TestTracing:
    @pytest.mark.asyncio
    async def test_operations_emit_spans(self, registry, state_store, fake_strategy, config):
        tracer = MockTracer()
        orchestrator = BranchMigrationOrchestrator(
            registry,
            state_store,
            StrategyResolver([fake_strategy]),
            config=config,
            tracer=tracer,
        )
        branch = await add_branch(registry)

        await orchestrator.apply_to_branch(branch.id, target_unit=UNIT_A)

        assert tracer.span_names[0] == "branchmigrator.orchestrator.apply_to_branch"
        assert "branchmigrator.lock.acquire" in tracer.span_names
        assert "branchmigrator.lock.release" in tracer.span_names
