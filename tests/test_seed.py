"""Tests for the default task definition seed."""

import pytest

from cadence.scheduler import cron
from cadence.scheduler.seed import DEFAULT_DEFINITIONS, seed_default_definitions
from cadence.scheduler.store import TaskStore

pytestmark = pytest.mark.usefixtures("_no_turso")


async def test_seeds_all_defaults(store: TaskStore) -> None:
    created = await seed_default_definitions(store)
    assert created == 4

    by_name = {d.name: d for d in await store.list_definitions()}
    assert set(by_name) == {
        "daily-update",
        "monthly-rankings",
        "weekly-rankings",
        "process-repo-assets",
    }
    assert by_name["daily-update"].cron_expression == "0 2 * * *"
    assert by_name["daily-update"].category == "daily"
    assert by_name["monthly-rankings"].cron_expression == "0 3 1 * *"
    assert by_name["monthly-rankings"].category == "monthly"
    assert by_name["weekly-rankings"].cron_expression == "0 3 * * 1"
    assert by_name["weekly-rankings"].category == "weekly"
    assert by_name["process-repo-assets"].cron_expression == "0 4 * * *"
    assert all(d.is_enabled for d in by_name.values())


async def test_seed_is_idempotent_and_keeps_edits(store: TaskStore) -> None:
    await seed_default_definitions(store)
    daily = await store.get_definition_by_name("daily-update")
    await store.set_enabled(daily.id, False)

    assert await seed_default_definitions(store) == 0
    definitions = await store.list_definitions()
    assert len(definitions) == 4
    assert (await store.get_definition(daily.id)).is_enabled is False


def test_default_crons_are_valid():
    for entry in DEFAULT_DEFINITIONS:
        assert cron.validate(entry["cron_expression"]).is_schedulable
