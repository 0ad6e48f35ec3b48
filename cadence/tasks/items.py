"""Item-sync sub-tasks: process every eligible record and report it by webhook."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from cadence.config import settings
from cadence.pipeline.context import StepResult
from cadence.pipeline.runner import SubTask
from cadence.webhooks.notifier import WebhookOptions, log_delivery
from cadence.webhooks.payloads import (
    DEFAULT_PROCESSING_STEPS,
    ProcessingMeta,
    build_webhook_request,
    empty_processing_status,
)

if TYPE_CHECKING:
    from cadence.pipeline.context import RunContext
    from cadence.webhooks.notifier import WebhookNotifier

logger = logging.getLogger(__name__)

FetchItems = Callable[["RunContext"], Awaitable[Iterable[dict[str, Any]]]]
ProcessItem = Callable[
    [dict[str, Any], dict[str, bool], "RunContext"], Awaitable[dict[str, Any] | None]
]


def _item_key(item: dict[str, Any]) -> str:
    return str(item.get("full_name") or item.get("name") or item.get("id") or item)


def create_item_sync_task(
    name: str,
    fetch_items: FetchItems,
    process_item: ProcessItem,
    *,
    notifier: WebhookNotifier,
    description: str = "",
    targets: Callable[[], str] | None = None,
    steps: tuple[str, ...] = DEFAULT_PROCESSING_STEPS,
    event_type: str = "repo_updated",
) -> SubTask:
    """Build a unit that runs *process_item* over every fetched record.

    *process_item* receives the record, a mutable ``processing_status`` dict
    (one boolean per entry of *steps*) and the run context, and returns the
    updated entity (or None to report the record unchanged).  After each
    record a webhook carrying the entity, its ``processing_status`` and a
    ``meta`` block is sent to *targets* (default: the daily webhook URLs).
    A record that raises gets a ``success=False`` webhook with
    ``error_message`` and is counted under ``meta["errors"]``.

    No built-in sequence uses this unit.  The record source and the
    per-record work belong to the deployment, which registers the unit
    and lists it in ``sequences.yaml``, for example for the seeded
    ``process-repo-assets`` definition::

        registry = default_registry(notifier)
        registry.register(
            create_item_sync_task(
                "sync-repo-assets", fetch_repos, process_repo, notifier=notifier
            )
        )

    with ``process-repo-assets: [sync-repo-assets]`` in the sequence file.
    Until then that definition runs an empty sequence and records a skip.
    """
    resolve_targets = targets or (lambda: settings.daily_webhook_url)

    async def send(
        ctx: RunContext,
        entity: dict[str, Any],
        status: dict[str, bool],
        started: float,
        error: str | None = None,
    ) -> None:
        meta = ProcessingMeta(
            task_name=name,
            processed_at=datetime.now(UTC).isoformat(),
            processing_time_ms=int((time.monotonic() - started) * 1000),
            success=error is None,
            error_message=error,
        )
        payload = build_webhook_request(entity, status, meta, event_type=event_type)
        results = await notifier.deliver(
            resolve_targets(),
            payload,
            WebhookOptions(token=settings.daily_webhook_token or None),
            dry_run=ctx.dry_run,
        )
        log_delivery(results, f"{name} webhook for {_item_key(entity)}", ctx.logger)

    async def run(ctx: RunContext) -> StepResult:
        items = list(await fetch_items(ctx))
        ctx.logger.info("%s: %d eligible item(s)", name, len(items))

        async def handle(item: dict[str, Any]) -> dict[str, Any]:
            started = time.monotonic()
            status = empty_processing_status(steps)
            try:
                entity = await process_item(item, status, ctx)
            except Exception as exc:
                await send(ctx, item, status, started, error=str(exc) or type(exc).__name__)
                raise
            entity = entity if entity is not None else item
            await send(ctx, entity, status, started)
            return entity

        result = await ctx.process_items(items, handle, key=_item_key)
        ctx.shared[name] = result.data
        return result

    return SubTask(name=name, run=run, description=description)
