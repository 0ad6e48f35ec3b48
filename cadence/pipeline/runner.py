"""TaskRunner — ordered execution of sub-task units against one context."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from cadence.pipeline.context import StepResult

if TYPE_CHECKING:
    from cadence.pipeline.context import RunContext

logger = logging.getLogger(__name__)

SubTaskFn = Callable[["RunContext"], Awaitable[StepResult | None]]


@dataclass
class SubTask:
    """A named unit of work inside a pipeline."""

    name: str
    run: SubTaskFn
    description: str = ""


def subtask(name: str, description: str = "") -> Callable[[SubTaskFn], SubTask]:
    """Decorator turning an async ``fn(ctx)`` into a :class:`SubTask`."""

    def decorator(fn: SubTaskFn) -> SubTask:
        return SubTask(name=name, run=fn, description=description or (fn.__doc__ or "").strip())

    return decorator


@dataclass
class SequenceOutcome:
    """Aggregate of one pipeline invocation.

    ``steps`` lists ``{"task": name, "status": ...}`` per sub-task.  The
    status is the same for every step of an invocation: all ``completed``
    or all ``failed`` (or a single ``skipped`` placeholder when the
    sequence is empty).
    """

    steps: list[dict[str, str]] = field(default_factory=list)
    result: StepResult | None = None
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"steps": self.steps}
        if self.result is not None:
            payload["meta"] = self.result.meta
            payload["items"] = len(self.result.data)
        if self.error is not None:
            payload["error"] = self.error
        return payload


class TaskRunner:
    """Runs sub-tasks strictly in list order.

    Args:
        subtasks: The ordered units to execute.
    """

    def __init__(self, subtasks: list[SubTask]) -> None:
        self._subtasks = list(subtasks)

    @property
    def names(self) -> list[str]:
        return [t.name for t in self._subtasks]

    async def run(self, ctx: RunContext) -> StepResult:
        """Execute every sub-task; the first exception propagates."""
        aggregate = StepResult()
        for task in self._subtasks:
            if ctx.cancelled:
                ctx.logger.info("Pipeline cancelled before sub-task %s", task.name)
                aggregate.meta["cancelled"] = True
                break
            ctx.logger.info("Running sub-task: %s", task.name)
            result = await task.run(ctx)
            if result is None:
                result = StepResult()
            aggregate.data.extend(result.data)
            aggregate.meta[task.name] = result.meta
            ctx.logger.debug("Sub-task %s finished: %s", task.name, result.meta)
        return aggregate

    async def run_sequence(self, ctx: RunContext) -> SequenceOutcome:
        """Run the pipeline and report every step with one shared status."""
        if not self._subtasks:
            ctx.logger.warning("No sub-tasks configured for this sequence")
            return SequenceOutcome(steps=[{"task": "no-tasks", "status": "skipped"}])

        try:
            result = await self.run(ctx)
        except Exception as exc:
            ctx.logger.exception("Task runner failed")
            return SequenceOutcome(
                steps=[{"task": name, "status": "failed"} for name in self.names],
                error=str(exc) or type(exc).__name__,
            )

        ctx.logger.info("Task runner completed successfully")
        return SequenceOutcome(
            steps=[{"task": name, "status": "completed"} for name in self.names],
            result=result,
        )
