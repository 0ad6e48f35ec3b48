"""SchedulerEngine — APScheduler lifecycle and per-task timers.

Each enabled definition with a valid cron expression gets one APScheduler
job (job id = task id) driven by a one-shot ``DateTrigger``.  The fire time
comes from :mod:`cadence.scheduler.cron`, evaluated on wall-clock time in
the configured timezone, and the job is re-armed after every fire whether
the run succeeded or not.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from cadence.config import settings
from cadence.pipeline.context import RunContext
from cadence.pipeline.sequences import SequenceTable
from cadence.scheduler import cron
from cadence.scheduler.errors import (
    InvalidCronExpression,
    NotFound,
    SchedulerError,
    SubTaskFailure,
)
from cadence.scheduler.models import TRIGGER_MANUAL, TRIGGER_SYSTEM
from cadence.scheduler.seed import seed_default_definitions
from cadence.scheduler.tracker import ExecutionTracker

if TYPE_CHECKING:
    from cadence.pipeline.context import CancelToken
    from cadence.pipeline.registry import SubTaskRegistry
    from cadence.scheduler.models import TaskDefinition, TaskExecution
    from cadence.scheduler.store import TaskStore

logger = logging.getLogger(__name__)


@dataclass
class SchedulerStatus:
    is_running: bool
    scheduled_task_ids: list[str] = field(default_factory=list)
    running_task_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "scheduled_task_ids": self.scheduled_task_ids,
            "running_task_ids": self.running_task_ids,
        }


def run_params(definition: TaskDefinition, now: datetime) -> dict[str, int]:
    """Run parameters implied by the definition's category."""
    category = definition.category
    if category == "monthly":
        return {"year": now.year, "month": now.month}
    if category == "weekly":
        iso = now.isocalendar()
        return {"year": iso[0], "week": iso[1]}
    return {}


class SchedulerEngine:
    """Arms cron timers for task definitions and runs their pipelines.

    Args:
        store: TaskStore for persistence.
        registry: Sub-task units the sequences refer to.
        tracker: ExecutionTracker (one is created over *store* if omitted).
        sequences: Task name → sub-task ids (loaded from settings if omitted).
        timezone: IANA timezone string (default from settings).
        seed: Insert the default definitions on start.
    """

    def __init__(
        self,
        store: TaskStore,
        registry: SubTaskRegistry,
        tracker: ExecutionTracker | None = None,
        sequences: SequenceTable | None = None,
        timezone: str | None = None,
        seed: bool | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._tracker = tracker or ExecutionTracker(store)
        self._sequences = sequences or SequenceTable.from_yaml(settings.sequences_path)
        self._timezone = timezone or settings.scheduler_timezone
        self._tz = ZoneInfo(self._timezone)
        self._seed = settings.seed_default_tasks if seed is None else seed
        self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def tracker(self) -> ExecutionTracker:
        return self._tracker

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Seed defaults, arm a timer per enabled definition and start."""
        if self._running:
            logger.warning("Scheduler already running")
            return
        if self._seed:
            await seed_default_definitions(self._store)

        self._scheduler.start()
        self._running = True
        armed = await self._arm_all()
        logger.info(
            "Scheduler started with %d armed task(s) (tz=%s)", armed, self._timezone
        )

    async def stop(self) -> None:
        """Disarm every timer and shut the scheduler down.

        In-flight runs keep going.
        """
        if not self._running:
            return
        self._running = False
        self._scheduler.remove_all_jobs()
        self._scheduler.shutdown(wait=False)
        # AsyncIOScheduler defers shutdown to the next loop iteration.
        await asyncio.sleep(0)
        logger.info("Scheduler stopped")

    async def reload(self) -> None:
        """Disarm everything and re-arm from the current definitions.

        A stopped engine has nothing armed; its timers are set up by :meth:`start`.
        """
        if not self._running:
            logger.info("Scheduler stopped, nothing to reload")
            return
        self._scheduler.remove_all_jobs()
        armed = await self._arm_all()
        logger.info("Reloaded %d task(s)", armed)

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            is_running=self._running,
            scheduled_task_ids=sorted(job.id for job in self._scheduler.get_jobs()),
            running_task_ids=self._tracker.running_task_ids(),
        )

    # -- Task management -------------------------------------------------------

    async def toggle(self, task_id: str, enabled: bool) -> TaskDefinition:
        """Enable or disable a task and arm or disarm its timer.

        Disabling never interrupts a run in flight.

        Raises:
            NotFound: no definition with that id.
        """
        if not await self._store.set_enabled(task_id, enabled):
            raise NotFound(f"Task definition not found: {task_id}", task_id=task_id)
        definition = await self._store.get_definition(task_id)
        if definition is None:
            raise NotFound(f"Task definition not found: {task_id}", task_id=task_id)

        if not enabled:
            self._disarm(task_id)
            await self._store.upsert_status(task_id, next_run_at=None)
        elif self._running and self._scheduler.get_job(task_id) is None:
            await self._arm(definition)
        logger.info("Task %s %s", definition.name, "enabled" if enabled else "disabled")
        return definition

    async def execute(
        self,
        task_id: str,
        triggered_by: str = TRIGGER_MANUAL,
        *,
        wait: bool = True,
        dry_run: bool = False,
    ) -> str:
        """Run a task now, outside its schedule.

        Returns the execution ID.  With *wait* the call returns once the run
        has settled; otherwise it returns as soon as the run is accepted.

        Raises:
            NotFound, Disabled, AlreadyRunning: from the tracker.
        """
        execution_id = await self._tracker.start(
            task_id, self._work(dry_run=dry_run), triggered_by
        )
        if wait:
            await self._tracker.wait(task_id)
        return execution_id

    async def cancel(self, task_id: str) -> str:
        """Mark the in-flight run cancelled. See :meth:`ExecutionTracker.cancel`."""
        return await self._tracker.cancel(task_id)

    async def list_definitions(self, recent: int = 5) -> list[dict[str, Any]]:
        """Every definition with its status row and most recent executions."""
        items = []
        for definition in await self._store.list_definitions():
            status = await self._store.get_status(definition.id)
            executions = await self._store.list_executions(definition.id, limit=recent)
            item = definition.to_dict()
            item["status"] = status.to_dict() if status else None
            item["is_currently_running"] = self._tracker.is_running(definition.id)
            item["recent_executions"] = [e.to_dict() for e in executions]
            items.append(item)
        return items

    async def list_executions(self, task_id: str, limit: int = 10) -> list[TaskExecution]:
        return await self._store.list_executions(task_id, limit=limit)

    # -- Internal --------------------------------------------------------------

    def _now(self) -> datetime:
        return datetime.now(self._tz)

    def next_fire_time(self, definition: TaskDefinition, after: datetime | None = None) -> datetime:
        """Next fire time of *definition* as an aware datetime in the engine tz.

        Raises:
            InvalidCronExpression: missing, malformed or unsatisfiable cron.
        """
        if not definition.cron_expression:
            raise InvalidCronExpression("", "no cron expression")
        after = after or self._now()
        local = after.astimezone(self._tz).replace(tzinfo=None)
        return cron.next_run_from_expression(definition.cron_expression, local).replace(
            tzinfo=self._tz
        )

    async def _arm_all(self) -> int:
        armed = 0
        for definition in await self._store.list_definitions():
            if definition.is_enabled and await self._arm(definition):
                armed += 1
        return armed

    async def _arm(self, definition: TaskDefinition) -> bool:
        """Create (or replace) the job of *definition*. Returns False if skipped."""
        try:
            fire_at = self.next_fire_time(definition)
        except InvalidCronExpression as exc:
            logger.warning("Not scheduling %s: %s", definition.name, exc)
            return False

        # stop() may have run while a fire was re-arming.
        if not self._running:
            return False
        self._scheduler.add_job(
            self._fire,
            trigger=DateTrigger(run_date=fire_at, timezone=self._timezone),
            id=definition.id,
            name=definition.name,
            args=[definition.id],
            misfire_grace_time=None,
            replace_existing=True,
        )
        await self._store.upsert_status(definition.id, next_run_at=fire_at.isoformat())
        logger.debug("Armed %s for %s", definition.name, fire_at.isoformat())
        return True

    def _disarm(self, task_id: str) -> None:
        try:
            self._scheduler.remove_job(task_id)
        except JobLookupError:
            logger.debug("Job %s not found in scheduler (may already be removed)", task_id)

    async def _fire(self, task_id: str) -> None:
        """Callback invoked by APScheduler. Never raises."""
        try:
            await self._tracker.start(task_id, self._work(), TRIGGER_SYSTEM)
        except SchedulerError as exc:
            logger.warning("Scheduled run of %s not started: %s", task_id, exc)
        except Exception:
            logger.exception("Scheduled run of %s failed to start", task_id)
        finally:
            await self._rearm(task_id)

    async def _rearm(self, task_id: str) -> None:
        if not self._running:
            return
        try:
            definition = await self._store.get_definition(task_id)
            if definition is None or not definition.is_enabled:
                self._disarm(task_id)
                return
            await self._arm(definition)
        except Exception:
            logger.exception("Failed to re-arm task %s", task_id)

    def _work(self, *, dry_run: bool = False):
        """Build the unit of work the tracker runs for one execution."""

        async def work(definition: TaskDefinition, cancel_token: CancelToken) -> dict[str, Any]:
            ctx = RunContext(
                dry_run=dry_run,
                concurrency=settings.default_concurrency,
                throttle_interval=settings.default_throttle_interval,
                params=run_params(definition, self._now()),
                cancel_token=cancel_token,
                logger=logging.getLogger(f"cadence.tasks.{definition.name}"),
            )
            runner = self._registry.runner_for(self._sequences.get(definition.name))
            outcome = await runner.run_sequence(ctx)
            if outcome.failed:
                raise SubTaskFailure(
                    outcome.error or "Sub-task failed",
                    task_id=definition.id,
                    result=outcome.to_dict(),
                )
            return outcome.to_dict()

        return work
