"""Outbound webhooks — fan-out delivery and payload envelopes."""

from cadence.webhooks.notifier import (
    DeliveryResult,
    WebhookNotifier,
    WebhookOptions,
    WebhookStats,
    has_successful_webhook,
    log_delivery,
    split_targets,
    webhook_stats,
)

__all__ = [
    "DeliveryResult",
    "WebhookNotifier",
    "WebhookOptions",
    "WebhookStats",
    "has_successful_webhook",
    "log_delivery",
    "split_targets",
    "webhook_stats",
]
