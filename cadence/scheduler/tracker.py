"""ExecutionTracker — execution bookkeeping and single-flight enforcement."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from cadence.pipeline.context import CancelToken
from cadence.scheduler.errors import AlreadyRunning, Disabled, NotFound, NotRunning
from cadence.scheduler.models import (
    CANCELLED,
    COMPLETED,
    FAILED,
    TRIGGER_MANUAL,
    TaskExecution,
    make_id,
    utcnow,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from cadence.scheduler.models import TaskDefinition
    from cadence.scheduler.store import TaskStore

    Work = Callable[[TaskDefinition, CancelToken], Awaitable[Any]]

logger = logging.getLogger(__name__)


@dataclass
class _Run:
    """One in-flight execution held in the live registry."""

    execution_id: str
    started_at: str
    cancel_token: CancelToken = field(default_factory=CancelToken)
    task: asyncio.Task | None = None


def _duration_ms(started_at: str | None, completed_at: str) -> int | None:
    if not started_at:
        return None
    delta = datetime.fromisoformat(completed_at) - datetime.fromisoformat(started_at)
    return int(delta.total_seconds() * 1000)


class ExecutionTracker:
    """Creates and finishes TaskExecution rows around a unit of work.

    Owns the in-memory registry of running tasks.  At most one execution per
    task id is in flight at a time; this holds only within one process.

    Args:
        store: TaskStore for persistence.
    """

    def __init__(self, store: TaskStore) -> None:
        self._store = store
        self._running: dict[str, _Run] = {}

    # -- Registry --------------------------------------------------------------

    def is_running(self, task_id: str) -> bool:
        return task_id in self._running

    def running_task_ids(self) -> list[str]:
        return list(self._running)

    async def wait(self, task_id: str) -> None:
        """Wait until the in-flight run of *task_id* (if any) settles."""
        run = self._running.get(task_id)
        if run is not None and run.task is not None:
            await asyncio.gather(run.task, return_exceptions=True)

    async def drain(self) -> None:
        """Wait for every in-flight run to settle."""
        tasks = [r.task for r in self._running.values() if r.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # -- Lifecycle -------------------------------------------------------------

    async def start(
        self,
        task_id: str,
        work: Work,
        triggered_by: str = TRIGGER_MANUAL,
    ) -> str:
        """Accept a run of *task_id* and start *work* in the background.

        Returns the new execution ID as soon as the run is registered.

        Raises:
            NotFound: no definition with that id.
            Disabled: the definition is disabled.
            AlreadyRunning: an execution of this task is still in flight.
        """
        definition = await self._store.get_definition(task_id)
        if definition is None:
            raise NotFound(f"Task definition not found: {task_id}", task_id=task_id)
        if not definition.is_enabled:
            raise Disabled(f"Task is disabled: {definition.name}", task_id=task_id)

        # Check and reserve with no await in between.
        if task_id in self._running:
            raise AlreadyRunning(f"Task is already running: {definition.name}", task_id=task_id)
        run = _Run(execution_id=make_id(), started_at=utcnow())
        self._running[task_id] = run

        try:
            await self._store.add_execution(
                TaskExecution(
                    id=run.execution_id,
                    task_definition_id=task_id,
                    triggered_by=triggered_by,
                    created_at=run.started_at,
                )
            )
            await self._store.upsert_status(
                task_id,
                is_running=True,
                last_run_at=run.started_at,
                last_execution_id=run.execution_id,
            )
        except Exception:
            self._release(task_id, run)
            raise

        run.task = asyncio.create_task(
            self._execute(definition, run, work),
            name=f"task-run:{definition.name}",
        )
        logger.info(
            "Accepted run of '%s' (%s) execution=%s triggered_by=%s",
            definition.name,
            task_id,
            run.execution_id,
            triggered_by,
        )
        return run.execution_id

    async def _execute(self, definition: TaskDefinition, run: _Run, work: Work) -> None:
        try:
            await self._store.mark_running(run.execution_id, run.started_at)
            logger.info("Starting task: %s", definition.name)
            try:
                result = await work(definition, run.cancel_token)
            except Exception as exc:
                logger.exception("Task failed: %s", definition.name)
                await self.fail(
                    run.execution_id,
                    str(exc) or type(exc).__name__,
                    result=getattr(exc, "result", None),
                )
            else:
                await self.complete(run.execution_id, result)
        except Exception:
            logger.exception("Bookkeeping failed for task: %s", definition.name)
        finally:
            # A cancelled run's slot is released by cancel() itself.
            if not run.cancel_token.cancelled:
                self._release(definition.id, run)

    def _release(self, task_id: str, run: _Run) -> None:
        # A cancel may already have freed the slot for a newer run.
        if self._running.get(task_id) is run:
            del self._running[task_id]

    async def complete(self, execution_id: str, result: Any = None) -> bool:
        """Mark an execution completed. Returns False if it was already terminal."""
        return await self._finish(execution_id, COMPLETED, result=result)

    async def fail(self, execution_id: str, error: str, result: Any = None) -> bool:
        """Mark an execution failed. Returns False if it was already terminal."""
        return await self._finish(execution_id, FAILED, result=result, error=error)

    async def _finish(
        self,
        execution_id: str,
        status: str,
        *,
        result: Any = None,
        error: str | None = None,
    ) -> bool:
        execution = await self._store.get_execution(execution_id)
        if execution is None:
            logger.warning("Execution not found: %s", execution_id)
            return False

        completed_at = utcnow()
        duration = _duration_ms(execution.started_at or execution.created_at, completed_at)
        changed = await self._store.finish_execution(
            execution_id,
            status,
            completed_at=completed_at,
            duration=duration,
            result=result,
            error=error,
        )
        if not changed:
            logger.info(
                "Execution %s already %s, ignoring %s", execution_id, execution.status, status
            )
            return False

        await self._store.upsert_status(
            execution.task_definition_id,
            is_running=False,
            last_run_at=completed_at,
            last_execution_id=execution_id,
        )
        if status == COMPLETED:
            logger.info("Task completed: execution=%s (%sms)", execution_id, duration)
        else:
            logger.warning("Task %s: execution=%s error=%s", status, execution_id, error)
        return True

    async def cancel(self, task_id: str) -> str:
        """Mark the in-flight execution of *task_id* cancelled.

        State-only: the running coroutine is not interrupted, it only sees
        its cancel token set.  Returns the cancelled execution ID.

        Raises:
            NotRunning: nothing is in flight for *task_id*.
        """
        run = self._running.get(task_id)
        if run is None:
            raise NotRunning(f"Task is not running: {task_id}", task_id=task_id)

        run.cancel_token.cancel()
        # The slot stays held until the cancelled row and status are written.
        try:
            await self._finish(run.execution_id, CANCELLED)
        finally:
            self._release(task_id, run)
        logger.info("Task stopped: %s (execution=%s)", task_id, run.execution_id)
        return run.execution_id
