"""WebhookNotifier — fan one payload out to several endpoints.

Targets come as a single string of URLs joined by a delimiter (``;`` by
default).  Every endpoint is posted to concurrently and independently: one
failing endpoint never affects the others.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import httpx

from cadence.config import settings

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)


@dataclass
class WebhookOptions:
    """Per-delivery request options.

    Attributes:
        token: Sent as ``Authorization: Bearer <token>``.
        timestamp: Value of ``x-webhook-timestamp`` (defaults to now, UTC).
        signature: Value of ``x-webhook-signature`` (falls back to *token*).
    """

    token: str | None = None
    timestamp: str | None = None
    signature: str | None = None

    def headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "x-webhook-timestamp": self.timestamp or datetime.now(UTC).isoformat(),
            "x-webhook-signature": self.signature or self.token or "",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers


@dataclass
class DeliveryResult:
    url: str
    success: bool
    error: str | None = None


@dataclass
class WebhookStats:
    total: int
    successful: int
    failed: int


def split_targets(targets: str | None, delimiter: str | None = None) -> list[str]:
    """Split a delimiter-joined list of URLs, dropping blanks."""
    if not targets:
        return []
    sep = delimiter or settings.webhook_delimiter
    return [url.strip() for url in targets.split(sep) if url.strip()]


def webhook_stats(results: Sequence[DeliveryResult]) -> WebhookStats:
    total = len(results)
    successful = sum(1 for r in results if r.success)
    return WebhookStats(total=total, successful=successful, failed=total - successful)


def has_successful_webhook(results: Sequence[DeliveryResult]) -> bool:
    """True if at least one endpoint accepted the payload."""
    return any(r.success for r in results)


def log_delivery(
    results: Sequence[DeliveryResult],
    label: str = "Webhook",
    log: logging.Logger | None = None,
) -> None:
    """Log a delivery summary.  Failures are warnings, never errors."""
    log = log or logger
    if not results:
        return
    stats = webhook_stats(results)
    if stats.failed == 0:
        log.debug("%s delivered to %d/%d endpoint(s)", label, stats.successful, stats.total)
        return
    failures = [(r.url, r.error) for r in results if not r.success]
    if has_successful_webhook(results):
        log.warning(
            "%s delivered to %d/%d endpoint(s); failed: %s",
            label,
            stats.successful,
            stats.total,
            failures,
        )
    else:
        log.warning("%s failed on all %d endpoint(s): %s", label, stats.total, failures)


class WebhookNotifier:
    """Posts JSON payloads to one or more webhook endpoints.

    Args:
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
        timeout: Per-request timeout in seconds (default from settings).
        delimiter: Separator between URLs in a targets string.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
        delimiter: str | None = None,
    ) -> None:
        self._transport = transport
        self._timeout = timeout if timeout is not None else settings.webhook_timeout
        self._delimiter = delimiter

    async def deliver(
        self,
        targets: str | None,
        payload: dict[str, Any],
        options: WebhookOptions | None = None,
        *,
        dry_run: bool = False,
    ) -> list[DeliveryResult]:
        """Send *payload* to every URL in *targets*.

        In dry-run mode nothing is sent and every target is reported
        ``success=False`` with no error.
        """
        urls = split_targets(targets, self._delimiter)
        if not urls:
            return []

        if dry_run:
            logger.info(
                "DRY RUN: would send webhook to %s: %s",
                urls,
                json.dumps(payload, default=str)[:2000],
            )
            return [DeliveryResult(url=url, success=False) for url in urls]

        options = options or WebhookOptions()
        headers = options.headers()
        body = json.dumps(payload, default=str)

        async with httpx.AsyncClient(
            transport=self._transport, timeout=self._timeout
        ) as client:
            outcomes = await asyncio.gather(
                *(self._post(client, url, body, headers) for url in urls),
                return_exceptions=True,
            )

        results: list[DeliveryResult] = []
        for url, outcome in zip(urls, outcomes):
            if isinstance(outcome, BaseException):
                results.append(DeliveryResult(url=url, success=False, error=str(outcome)))
            else:
                results.append(outcome)
        return results

    async def _post(
        self,
        client: httpx.AsyncClient,
        url: str,
        body: str,
        headers: dict[str, str],
    ) -> DeliveryResult:
        try:
            response = await client.post(url, content=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Failed to send webhook to %s: %s", url, exc)
            return DeliveryResult(url=url, success=False, error=str(exc) or type(exc).__name__)

        if not response.is_success:
            error = (
                f"Webhook request failed with status {response.status_code}: "
                f"{response.reason_phrase}"
            )
            logger.warning("Failed to send webhook to %s: %s", url, error)
            return DeliveryResult(url=url, success=False, error=error)
        return DeliveryResult(url=url, success=True)
