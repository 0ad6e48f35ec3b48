"""Built-in sub-task units."""

from __future__ import annotations

from cadence.pipeline.registry import SubTaskRegistry
from cadence.tasks.items import create_item_sync_task
from cadence.tasks.notifications import (
    make_notify_daily,
    make_trigger_monthly_finished,
    make_trigger_weekly_finished,
)
from cadence.webhooks.notifier import WebhookNotifier


def register_builtin_tasks(
    registry: SubTaskRegistry, notifier: WebhookNotifier | None = None
) -> SubTaskRegistry:
    """Add the built-in notification units to *registry*."""
    notifier = notifier or WebhookNotifier()
    registry.register(make_trigger_weekly_finished(notifier))
    registry.register(make_trigger_monthly_finished(notifier))
    registry.register(make_notify_daily(notifier))
    return registry


def default_registry(notifier: WebhookNotifier | None = None) -> SubTaskRegistry:
    """A fresh registry holding the built-ins."""
    return register_builtin_tasks(SubTaskRegistry(), notifier)


__all__ = [
    "create_item_sync_task",
    "default_registry",
    "register_builtin_tasks",
]
