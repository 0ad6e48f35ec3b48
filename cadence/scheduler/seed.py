"""Bootstrap the default task definitions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cadence.scheduler.models import TaskDefinition, make_id

if TYPE_CHECKING:
    from cadence.scheduler.store import TaskStore

logger = logging.getLogger(__name__)

DEFAULT_DEFINITIONS: list[dict] = [
    {
        "name": "daily-update",
        "task_type": "daily",
        "description": "Refresh project data and send the daily digest",
        "cron_expression": "0 2 * * *",
        "is_daily": True,
    },
    {
        "name": "monthly-rankings",
        "task_type": "monthly",
        "description": "Build and publish the monthly rankings",
        "cron_expression": "0 3 1 * *",
        "is_monthly": True,
    },
    {
        "name": "weekly-rankings",
        "task_type": "weekly",
        "description": "Build and publish the weekly rankings",
        "cron_expression": "0 3 * * 1",
        "is_weekly": True,
    },
    {
        "name": "process-repo-assets",
        "task_type": "daily",
        "description": "Process icons, translations and images of new projects",
        "cron_expression": "0 4 * * *",
        "is_daily": True,
    },
]


async def seed_default_definitions(store: TaskStore) -> int:
    """Insert every default definition whose name is not taken yet.

    Existing rows are never modified.  Returns the number inserted.
    """
    created = 0
    for entry in DEFAULT_DEFINITIONS:
        definition = TaskDefinition(id=make_id(), is_enabled=True, **entry)
        if await store.add_definition_if_absent(definition):
            created += 1
            logger.info("Seeded task definition: %s", definition.name)
    if created:
        logger.info("Seeded %d default task definition(s)", created)
    return created
