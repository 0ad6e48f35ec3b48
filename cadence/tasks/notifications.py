"""Built-in notification sub-tasks that close out daily / weekly / monthly runs."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from cadence.config import settings
from cadence.pipeline.context import StepResult
from cadence.pipeline.runner import SubTask
from cadence.webhooks.notifier import WebhookOptions, has_successful_webhook, log_delivery
from cadence.webhooks.payloads import build_event

if TYPE_CHECKING:
    from cadence.pipeline.context import RunContext
    from cadence.webhooks.notifier import WebhookNotifier

logger = logging.getLogger(__name__)

# Top entries included in a daily digest.
DAILY_DIGEST_SIZE = 5


def _require_param(ctx: RunContext, name: str) -> int:
    value = ctx.params.get(name)
    if value is None:
        msg = f"Missing run parameter: {name}"
        raise ValueError(msg)
    return int(value)


def make_trigger_weekly_finished(notifier: WebhookNotifier) -> SubTask:
    async def run(ctx: RunContext) -> StepResult:
        if not settings.weekly_webhook_url:
            msg = 'No "WEEKLY_WEBHOOK_URL" configured'
            raise ValueError(msg)
        year = _require_param(ctx, "year")
        week = _require_param(ctx, "week")
        ctx.logger.info("Sending the weekly notifications for %d-W%02d", year, week)

        payload = build_event(
            "weekly_rankings_finished",
            {"year": year, "week": week, "rankings": ctx.shared.get("weekly_rankings", [])},
        )
        results = await notifier.deliver(
            settings.weekly_webhook_url,
            payload,
            WebhookOptions(token=settings.daily_webhook_token or None),
            dry_run=ctx.dry_run,
        )
        log_delivery(results, "Weekly webhook", ctx.logger)
        return StepResult(meta={"sent": has_successful_webhook(results)})

    return SubTask(
        name="trigger-weekly-finished",
        run=run,
        description="Trigger a webhook after weekly rankings are published",
    )


def make_trigger_monthly_finished(notifier: WebhookNotifier) -> SubTask:
    async def run(ctx: RunContext) -> StepResult:
        if not settings.monthly_webhook_url:
            msg = 'No "MONTHLY_WEBHOOK_URL" configured'
            raise ValueError(msg)
        year = _require_param(ctx, "year")
        month = _require_param(ctx, "month")
        ctx.logger.info("Sending the monthly notifications for %d-%02d", year, month)

        payload = build_event(
            "monthly_rankings_finished",
            {"year": year, "month": month, "rankings": ctx.shared.get("monthly_rankings", [])},
        )
        results = await notifier.deliver(
            settings.monthly_webhook_url,
            payload,
            WebhookOptions(token=settings.daily_webhook_token or None),
            dry_run=ctx.dry_run,
        )
        log_delivery(results, "Monthly webhook", ctx.logger)
        return StepResult(meta={"sent": has_successful_webhook(results)})

    return SubTask(
        name="trigger-monthly-finished",
        run=run,
        description="Trigger a webhook after monthly rankings are published",
    )


def make_notify_daily(notifier: WebhookNotifier) -> SubTask:
    async def run(ctx: RunContext) -> StepResult:
        if not settings.daily_webhook_url:
            ctx.logger.warning("DAILY_WEBHOOK_URL not configured, skipping daily notification")
            return StepResult(meta={"sent": False})

        items = list(ctx.shared.get("daily_items", []))[:DAILY_DIGEST_SIZE]
        payload = build_event(
            "daily_digest",
            {"date": datetime.now(UTC).date().isoformat(), "items": items},
        )
        results = await notifier.deliver(
            settings.daily_webhook_url,
            payload,
            WebhookOptions(token=settings.daily_webhook_token or None),
            dry_run=ctx.dry_run,
        )
        log_delivery(results, "Daily webhook", ctx.logger)
        sent = has_successful_webhook(results)
        if sent:
            ctx.logger.info("Daily notification sent")
        return StepResult(meta={"sent": sent})

    return SubTask(
        name="notify-daily",
        run=run,
        description="Send the daily digest after the daily data is built",
    )
