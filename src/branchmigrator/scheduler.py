"""
Periodic background check that keeps every branch migrated.

The scheduler waits ``initial_delay`` after ``start()`` so the host
application finishes starting up, then calls
``apply_to_all_branches()`` every ``check_interval``. A failing run is
logged and the loop carries on.

Example:
    >>> scheduler = MigrationScheduler(orchestrator, SchedulerConfig())
    >>> await scheduler.start()
    >>> ...
    >>> await scheduler.stop()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from branchmigrator.config import SchedulerConfig
from branchmigrator.models import MigrationResult
from branchmigrator.observability import Tracer, create_tracer
from branchmigrator.observability.attributes import (
    ATTR_BRANCHES_FAILED,
    ATTR_BRANCHES_PROCESSED,
    ATTR_BRANCHES_SUCCEEDED,
)
from branchmigrator.orchestrator import BranchMigrationOrchestrator

logger = logging.getLogger(__name__)


class MigrationScheduler:
    """
    Background task running bulk apply on a fixed interval.

    Args:
        orchestrator: Orchestrator whose ``apply_to_all_branches`` is run
        config: Timing configuration
        tracer: Optional tracer (if not provided, one will be created)
        enable_tracing: Whether to enable OpenTelemetry tracing (default True)
    """

    def __init__(
        self,
        orchestrator: BranchMigrationOrchestrator,
        config: SchedulerConfig | None = None,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._orchestrator = orchestrator
        self._config = config or SchedulerConfig()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self._runs = 0
        self._last_result: MigrationResult | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def runs(self) -> int:
        """Number of completed bulk runs."""
        return self._runs

    @property
    def last_result(self) -> MigrationResult | None:
        return self._last_result

    async def start(self) -> None:
        """Start the background loop. No-op if already running."""
        if self._running:
            return
        self._running = True
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop(), name="branch-migration-scheduler")
        logger.info(
            "Migration scheduler started (initial delay %.0fs, interval %.0fs)",
            self._config.initial_delay.total_seconds(),
            self._config.check_interval.total_seconds(),
        )

    async def stop(self) -> None:
        """
        Stop the loop.

        A bulk run in progress is cancelled cooperatively: the branch being
        migrated finishes its current unit and later branches are skipped.
        """
        if not self._running:
            return
        self._running = False
        self._stop_event.set()
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("Migration scheduler stopped after %d run(s)", self._runs)

    async def run_once(self) -> MigrationResult:
        """Run one bulk apply now and log its summary."""
        with self._tracer.span("branchmigrator.scheduler.run_once", {}) as span:
            logger.info("Starting scheduled migration check")
            result = await self._orchestrator.apply_to_all_branches(cancel=self._stop_event)
            self._runs += 1
            self._last_result = result
            if span is not None:
                span.set_attribute(ATTR_BRANCHES_PROCESSED, result.branches_processed)
                span.set_attribute(ATTR_BRANCHES_SUCCEEDED, result.branches_succeeded)
                span.set_attribute(ATTR_BRANCHES_FAILED, result.branches_failed)

            if result.success:
                logger.info(
                    "Scheduled migration check completed: %d branch(es) processed",
                    result.branches_processed,
                    extra={"result": result.to_dict()},
                )
            else:
                logger.warning(
                    "Scheduled migration check finished with problems: %s",
                    result.error_message,
                    extra={"result": result.to_dict()},
                )
            return result

    async def _loop(self) -> None:
        if await self._wait(self._config.initial_delay.total_seconds()):
            return
        while self._running:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Scheduled migration check failed")
            if await self._wait(self._config.check_interval.total_seconds()):
                return

    async def _wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; True if stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            return True
        except TimeoutError:
            return False


__all__ = ["MigrationScheduler"]
