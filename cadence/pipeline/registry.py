"""Sub-task registry — central catalog of named pipeline units."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cadence.pipeline.runner import SubTask, SubTaskFn, TaskRunner
from cadence.scheduler.errors import UnknownSubTask

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class SubTaskRegistry:
    """Registry for named sub-task units.

    Usage::

        registry = SubTaskRegistry()

        @registry.unit("update-github-data")
        async def update_github_data(ctx: RunContext) -> StepResult:
            ...
    """

    def __init__(self) -> None:
        self._units: dict[str, SubTask] = {}

    def register(self, task: SubTask) -> SubTask:
        """Add (or replace) a unit under its own name."""
        if task.name in self._units:
            logger.warning("Replacing registered sub-task: %s", task.name)
        self._units[task.name] = task
        logger.debug("Registered sub-task: %s", task.name)
        return task

    def unit(self, name: str, description: str = "") -> Callable[[SubTaskFn], SubTask]:
        """Decorator to register an async ``fn(ctx)`` as a unit."""

        def decorator(fn: SubTaskFn) -> SubTask:
            return self.register(
                SubTask(name=name, run=fn, description=description or (fn.__doc__ or "").strip())
            )

        return decorator

    def get(self, name: str) -> SubTask | None:
        return self._units.get(name)

    def resolve(self, names: list[str]) -> list[SubTask]:
        """Map unit ids to units, in order.

        Raises:
            UnknownSubTask: if any id is not registered.
        """
        missing = [n for n in names if n not in self._units]
        if missing:
            msg = f"Unknown sub-task(s): {', '.join(missing)}"
            raise UnknownSubTask(msg)
        return [self._units[n] for n in names]

    def runner_for(self, names: list[str]) -> TaskRunner:
        return TaskRunner(self.resolve(names))

    @property
    def names(self) -> list[str]:
        return list(self._units)

