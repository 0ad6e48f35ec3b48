"""Shared run context for pipeline sub-tasks."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


class CancelToken:
    """Cooperative cancellation flag.

    Setting it does not interrupt anything; long-running steps poll
    :attr:`cancelled` between items and stop starting new work.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass
class StepResult:
    """What a sub-task (or a whole pipeline) produced."""

    data: list[Any] = field(default_factory=list)
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass
class RunContext:
    """Everything a sub-task needs to know about the current run.

    Attributes:
        dry_run: Side-effecting steps (webhooks, writes) must only report what
            they would have done.
        concurrency: Max simultaneously in-flight items in :meth:`process_items`.
        throttle_interval: Minimum seconds between successive item starts.
        skip: Items to skip at the start of an iterated collection.
        limit: Max items to process after skipping (None → all).
        params: Task-specific parameters (``year``, ``month``, ``week`` ...).
        shared: Scratch space earlier steps fill for later ones.
        cancel_token: Polled between items.
        logger: Logger the sub-tasks should write to.
    """

    dry_run: bool = False
    concurrency: int = 1
    throttle_interval: float = 0.0
    skip: int = 0
    limit: int | None = None
    params: dict[str, Any] = field(default_factory=dict)
    shared: dict[str, Any] = field(default_factory=dict)
    cancel_token: CancelToken = field(default_factory=CancelToken)
    logger: logging.Logger = logger

    @property
    def cancelled(self) -> bool:
        return self.cancel_token.cancelled

    def paginate(self, items: Iterable[Any]) -> list[Any]:
        """Apply ``skip`` / ``limit`` to *items*."""
        selected = list(items)[max(self.skip, 0):]
        if self.limit is not None:
            selected = selected[: max(self.limit, 0)]
        return selected

    async def process_items(
        self,
        items: Iterable[Any],
        handler: Callable[[Any], Awaitable[Any]],
        *,
        key: Callable[[Any], str] = repr,
    ) -> StepResult:
        """Run *handler* over a paginated collection.

        At most ``concurrency`` handlers are in flight at once and item starts
        are spaced by ``throttle_interval``.  A failing item is logged and
        recorded under ``meta["failures"]``; the remaining items still run.
        Once the cancel token is set no new item is started.
        """
        selected = self.paginate(items)
        semaphore = asyncio.Semaphore(max(self.concurrency, 1))
        results: list[Any] = [None] * len(selected)
        failures: list[dict[str, Any]] = []
        succeeded = [False] * len(selected)

        async def _one(index: int, item: Any) -> None:
            try:
                results[index] = await handler(item)
                succeeded[index] = True
            except Exception as exc:
                self.logger.exception("Item failed: %s", key(item))
                failures.append({"item": key(item), "error": str(exc)})
            finally:
                semaphore.release()

        tasks: list[asyncio.Task] = []
        last_start: float | None = None
        cancelled = False
        for index, item in enumerate(selected):
            await semaphore.acquire()
            if last_start is not None and self.throttle_interval > 0:
                delay = last_start + self.throttle_interval - time.monotonic()
                if delay > 0:
                    await asyncio.sleep(delay)
            if self.cancelled:
                semaphore.release()
                cancelled = True
                self.logger.info(
                    "Cancellation requested, stopping after %d of %d item(s)",
                    index,
                    len(selected),
                )
                break
            last_start = time.monotonic()
            tasks.append(asyncio.create_task(_one(index, item)))

        if tasks:
            await asyncio.gather(*tasks)

        started = len(tasks)
        data = [r for r, ok in zip(results[:started], succeeded[:started]) if ok]
        meta: dict[str, Any] = {
            "total": len(selected),
            "processed": started,
            "errors": len(failures),
            "skipped": len(selected) - started,
        }
        if failures:
            meta["failures"] = failures
        if cancelled:
            meta["cancelled"] = True
        return StepResult(data=data, meta=meta)
