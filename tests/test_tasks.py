"""Tests for the built-in sub-tasks."""

import json
from pathlib import Path

import httpx
import pytest

from cadence.pipeline.context import RunContext
from cadence.pipeline.sequences import SequenceTable
from cadence.tasks import create_item_sync_task, default_registry
from cadence.tasks.notifications import (
    make_notify_daily,
    make_trigger_monthly_finished,
    make_trigger_weekly_finished,
)
from cadence.webhooks.notifier import WebhookNotifier


@pytest.fixture
def calls() -> list[httpx.Request]:
    return []


@pytest.fixture
def notifier(calls: list[httpx.Request]) -> WebhookNotifier:
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200)

    return WebhookNotifier(transport=httpx.MockTransport(handler))


def test_default_registry_holds_builtins(notifier: WebhookNotifier):
    registry = default_registry(notifier)
    assert sorted(registry.names) == [
        "notify-daily",
        "trigger-monthly-finished",
        "trigger-weekly-finished",
    ]


# -- trigger-weekly-finished / trigger-monthly-finished ------------------------


class TestRankingsFinished:
    async def test_weekly_posts_event(
        self, notifier, calls, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            "cadence.config.settings.weekly_webhook_url", "https://a.test/w;https://b.test/w"
        )
        task = make_trigger_weekly_finished(notifier)

        result = await task.run(RunContext(params={"year": 2024, "week": 3}))
        assert result.meta == {"sent": True}
        assert len(calls) == 2
        body = json.loads(calls[0].content)
        assert body["event_type"] == "weekly_rankings_finished"
        assert body["data"]["year"] == 2024
        assert body["data"]["week"] == 3

    async def test_weekly_requires_url(self, notifier, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("cadence.config.settings.weekly_webhook_url", "")
        task = make_trigger_weekly_finished(notifier)
        with pytest.raises(ValueError, match="WEEKLY_WEBHOOK_URL"):
            await task.run(RunContext(params={"year": 2024, "week": 3}))

    async def test_weekly_requires_params(self, notifier, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("cadence.config.settings.weekly_webhook_url", "https://a.test")
        task = make_trigger_weekly_finished(notifier)
        with pytest.raises(ValueError, match="week"):
            await task.run(RunContext(params={"year": 2024}))

    async def test_monthly_dry_run_sends_nothing(
        self, notifier, calls, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr("cadence.config.settings.monthly_webhook_url", "https://a.test/m")
        task = make_trigger_monthly_finished(notifier)

        result = await task.run(RunContext(dry_run=True, params={"year": 2024, "month": 2}))
        assert calls == []
        assert result.meta == {"sent": False}

    async def test_monthly_requires_url(self, notifier, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("cadence.config.settings.monthly_webhook_url", "")
        task = make_trigger_monthly_finished(notifier)
        with pytest.raises(ValueError, match="MONTHLY_WEBHOOK_URL"):
            await task.run(RunContext(params={"year": 2024, "month": 2}))


# -- notify-daily --------------------------------------------------------------


class TestNotifyDaily:
    async def test_unconfigured_is_not_an_error(
        self, notifier, calls, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr("cadence.config.settings.daily_webhook_url", "")
        result = await make_notify_daily(notifier).run(RunContext())
        assert result.meta == {"sent": False}
        assert calls == []

    async def test_sends_top_items(self, notifier, calls, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("cadence.config.settings.daily_webhook_url", "https://a.test/d")
        monkeypatch.setattr("cadence.config.settings.daily_webhook_token", "tok")
        ctx = RunContext(shared={"daily_items": [{"name": f"p{i}"} for i in range(8)]})

        result = await make_notify_daily(notifier).run(ctx)
        assert result.meta == {"sent": True}
        body = json.loads(calls[0].content)
        assert body["event_type"] == "daily_digest"
        assert len(body["data"]["items"]) == 5
        assert calls[0].headers["authorization"] == "Bearer tok"


# -- create_item_sync_task -----------------------------------------------------


class TestItemSyncTask:
    async def test_processes_items_and_reports_each(
        self, notifier, calls, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr("cadence.config.settings.daily_webhook_url", "https://a.test/items")

        async def fetch_items(ctx):
            return [{"full_name": "a/one"}, {"full_name": "b/two"}, {"full_name": "c/three"}]

        async def process_item(item, status, ctx):
            if item["full_name"] == "b/two":
                status["icon_processed"] = True
                raise RuntimeError("icon too large")
            status["icon_processed"] = True
            status["description_translated"] = True
            return {**item, "translated": True}

        task = create_item_sync_task(
            "process-repo-assets", fetch_items, process_item, notifier=notifier
        )
        ctx = RunContext(concurrency=2)
        result = await task.run(ctx)

        assert [e["full_name"] for e in result.data] == ["a/one", "c/three"]
        assert result.meta["errors"] == 1
        assert result.meta["failures"][0]["item"] == "b/two"
        assert ctx.shared["process-repo-assets"] == result.data

        bodies = {json.loads(r.content)["data"]["full_name"]: json.loads(r.content) for r in calls}
        assert len(bodies) == 3
        ok = bodies["a/one"]["data"]
        assert ok["translated"] is True
        assert ok["processing_status"]["description_translated"] is True
        assert ok["meta"]["success"] is True
        assert "error_message" not in ok["meta"]
        failed = bodies["b/two"]["data"]
        assert failed["meta"]["success"] is False
        assert failed["meta"]["error_message"] == "icon too large"
        assert failed["processing_status"]["icon_processed"] is True

    async def test_respects_pagination_and_dry_run(self, notifier, calls) -> None:
        seen: list[str] = []

        async def fetch_items(ctx):
            return [{"id": str(i)} for i in range(5)]

        async def process_item(item, status, ctx):
            seen.append(item["id"])

        task = create_item_sync_task(
            "sync",
            fetch_items,
            process_item,
            notifier=notifier,
            targets=lambda: "https://a.test/x",
        )
        result = await task.run(RunContext(dry_run=True, skip=1, limit=2))
        assert seen == ["1", "2"]
        assert result.data == [{"id": "1"}, {"id": "2"}]
        assert calls == []

    async def test_registered_for_process_repo_assets(self, notifier, calls, tmp_path) -> None:
        async def fetch_items(ctx):
            return [{"full_name": "a/one"}]

        async def process_item(item, status, ctx):
            status["icon_processed"] = True

        registry = default_registry(notifier)
        registry.register(
            create_item_sync_task(
                "sync-repo-assets",
                fetch_items,
                process_item,
                notifier=notifier,
                targets=lambda: "https://a.test/items",
            )
        )
        path = tmp_path / "sequences.yaml"
        path.write_text("sequences:\n  process-repo-assets:\n    - sync-repo-assets\n")
        sequences = SequenceTable.from_yaml(path)

        runner = registry.runner_for(sequences.get("process-repo-assets"))
        outcome = await runner.run_sequence(RunContext())

        assert outcome.failed is False
        assert [step["task"] for step in outcome.steps] == ["sync-repo-assets"]
        assert len(calls) == 1
        assert json.loads(calls[0].content)["data"]["full_name"] == "a/one"

    def test_shipped_sequences_leave_process_repo_assets_empty(self) -> None:
        path = Path(__file__).resolve().parents[1] / "sequences.yaml"
        assert SequenceTable.from_yaml(path).get("process-repo-assets") == []
