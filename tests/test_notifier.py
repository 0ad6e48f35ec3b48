"""Tests for WebhookNotifier — concurrent, isolated webhook delivery."""

import json

import httpx
import pytest

from cadence.webhooks.notifier import (
    DeliveryResult,
    WebhookNotifier,
    WebhookOptions,
    has_successful_webhook,
    log_delivery,
    split_targets,
    webhook_stats,
)


def _transport(handler, calls: list[httpx.Request]) -> httpx.MockTransport:
    def record(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return handler(request)

    return httpx.MockTransport(record)


# -- split_targets -------------------------------------------------------------


class TestSplitTargets:
    def test_splits_on_default_delimiter(self):
        assert split_targets("https://a.test/h;https://b.test/h") == [
            "https://a.test/h",
            "https://b.test/h",
        ]

    def test_strips_and_drops_blanks(self):
        assert split_targets(" https://a.test ; ;https://b.test ;") == [
            "https://a.test",
            "https://b.test",
        ]

    def test_custom_delimiter(self):
        assert split_targets("https://a.test,https://b.test", ",") == [
            "https://a.test",
            "https://b.test",
        ]

    @pytest.mark.parametrize("targets", ["", None])
    def test_empty(self, targets):
        assert split_targets(targets) == []


# -- deliver -------------------------------------------------------------------


class TestDeliver:
    async def test_empty_targets_is_empty_result(self):
        calls: list[httpx.Request] = []
        notifier = WebhookNotifier(transport=_transport(lambda r: httpx.Response(200), calls))
        assert await notifier.deliver("", {"a": 1}) == []
        assert calls == []

    async def test_partial_success(self):
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "ok.test":
                return httpx.Response(200)
            if request.url.host == "down.test":
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(500)

        notifier = WebhookNotifier(transport=_transport(handler, calls))
        results = await notifier.deliver(
            "https://ok.test/h;https://down.test/h;https://broken.test/h",
            {"event_type": "test"},
        )

        assert len(calls) == 3
        assert [r.url for r in results] == [
            "https://ok.test/h",
            "https://down.test/h",
            "https://broken.test/h",
        ]
        assert results[0] == DeliveryResult(url="https://ok.test/h", success=True)
        assert results[1].success is False
        assert "connection refused" in results[1].error
        assert results[2].success is False
        assert "500" in results[2].error

        stats = webhook_stats(results)
        assert (stats.total, stats.successful, stats.failed) == (3, 1, 2)
        assert has_successful_webhook(results) is True

    async def test_headers_and_body(self):
        calls: list[httpx.Request] = []
        notifier = WebhookNotifier(transport=_transport(lambda r: httpx.Response(204), calls))

        await notifier.deliver(
            "https://ok.test/h",
            {"event_type": "weekly_rankings_finished", "data": {"week": 3}},
            WebhookOptions(token="secret", timestamp="2024-01-01T00:00:00+00:00"),
        )

        request = calls[0]
        assert request.method == "POST"
        assert request.headers["content-type"] == "application/json"
        assert request.headers["authorization"] == "Bearer secret"
        assert request.headers["x-webhook-timestamp"] == "2024-01-01T00:00:00+00:00"
        assert request.headers["x-webhook-signature"] == "secret"
        assert json.loads(request.content) == {
            "event_type": "weekly_rankings_finished",
            "data": {"week": 3},
        }

    async def test_signature_overrides_token(self):
        calls: list[httpx.Request] = []
        notifier = WebhookNotifier(transport=_transport(lambda r: httpx.Response(200), calls))
        await notifier.deliver("https://ok.test", {}, WebhookOptions(token="t", signature="sig"))
        assert calls[0].headers["x-webhook-signature"] == "sig"

    async def test_no_token_no_authorization(self):
        calls: list[httpx.Request] = []
        notifier = WebhookNotifier(transport=_transport(lambda r: httpx.Response(200), calls))
        await notifier.deliver("https://ok.test", {})
        assert "authorization" not in calls[0].headers
        assert calls[0].headers["x-webhook-signature"] == ""
        assert calls[0].headers["x-webhook-timestamp"]

    async def test_dry_run_makes_no_request(self):
        calls: list[httpx.Request] = []
        notifier = WebhookNotifier(transport=_transport(lambda r: httpx.Response(200), calls))

        results = await notifier.deliver(
            "https://a.test;https://b.test", {"event_type": "x"}, dry_run=True
        )
        assert calls == []
        assert results == [
            DeliveryResult(url="https://a.test", success=False, error=None),
            DeliveryResult(url="https://b.test", success=False, error=None),
        ]
        assert has_successful_webhook(results) is False


# -- helpers -------------------------------------------------------------------


class TestHelpers:
    def test_stats_empty(self):
        stats = webhook_stats([])
        assert (stats.total, stats.successful, stats.failed) == (0, 0, 0)
        assert has_successful_webhook([]) is False

    def test_log_delivery_warns_on_partial_failure(self, caplog):
        results = [
            DeliveryResult(url="https://a.test", success=True),
            DeliveryResult(url="https://b.test", success=False, error="500"),
        ]
        with caplog.at_level("DEBUG", logger="cadence.webhooks.notifier"):
            log_delivery(results, "Weekly webhook")
        assert [r.levelname for r in caplog.records] == ["WARNING"]
        assert "1/2" in caplog.records[0].getMessage()

    def test_log_delivery_total_failure_is_warning(self, caplog):
        results = [DeliveryResult(url="https://a.test", success=False, error="timeout")]
        with caplog.at_level("DEBUG", logger="cadence.webhooks.notifier"):
            log_delivery(results, "Daily webhook")
        assert [r.levelname for r in caplog.records] == ["WARNING"]
        assert "failed on all" in caplog.records[0].getMessage()
