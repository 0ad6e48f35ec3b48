#!/usr/bin/env python3
"""Operate on scheduled task definitions from the command line.

Usage examples:
    # List every definition with its status
    uv run python scripts/tasks.py list

    # Run a task now and wait for it (add --dry-run to skip webhooks)
    uv run python scripts/tasks.py run weekly-rankings

    # Disable / enable a task
    uv run python scripts/tasks.py toggle daily-update --off
    uv run python scripts/tasks.py toggle daily-update --on

    # Recent executions of a task
    uv run python scripts/tasks.py history monthly-rankings --limit 5
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Allow running from project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from cadence.main import create_engine
from cadence.scheduler.errors import SchedulerError
from cadence.scheduler.seed import seed_default_definitions
from cadence.scheduler.store import TaskStore


async def _resolve(store: TaskStore, name_or_id: str) -> str:
    definition = await store.get_definition_by_name(name_or_id)
    if definition is None:
        definition = await store.get_definition(name_or_id)
    if definition is None:
        print(f"ERROR: no task named {name_or_id!r}", file=sys.stderr)
        sys.exit(1)
    return definition.id


async def cmd_list(args: argparse.Namespace) -> None:
    engine = create_engine()
    await seed_default_definitions(TaskStore())
    for item in await engine.list_definitions(recent=1):
        status = item["status"] or {}
        state = "on " if item["is_enabled"] else "off"
        print(
            f"{state} {item['name']:<24} {item['cron_expression'] or '-':<12} "
            f"last={status.get('last_run_at') or '-'} next={status.get('next_run_at') or '-'}"
        )


async def cmd_run(args: argparse.Namespace) -> None:
    engine = create_engine()
    task_id = await _resolve(TaskStore(), args.task)
    execution_id = await engine.execute(task_id, dry_run=args.dry_run)
    executions = await engine.list_executions(task_id, limit=1)
    execution = next((e for e in executions if e.id == execution_id), None)
    print(json.dumps(execution.to_dict() if execution else {"id": execution_id}, indent=2))
    if execution is not None and execution.status != "completed":
        sys.exit(1)


async def cmd_toggle(args: argparse.Namespace) -> None:
    engine = create_engine()
    task_id = await _resolve(TaskStore(), args.task)
    definition = await engine.toggle(task_id, args.enabled)
    print(f"{definition.name}: {'enabled' if definition.is_enabled else 'disabled'}")


async def cmd_history(args: argparse.Namespace) -> None:
    engine = create_engine()
    task_id = await _resolve(TaskStore(), args.task)
    for execution in await engine.list_executions(task_id, limit=args.limit):
        duration = f"{execution.duration}ms" if execution.duration is not None else "-"
        line = f"{execution.created_at}  {execution.status:<10} {duration:>9}  {execution.triggered_by}"
        if execution.error:
            line += f"  {execution.error}"
        print(line)


def main() -> None:
    parser = argparse.ArgumentParser(description="Manage Cadence scheduled tasks")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List task definitions")

    run_p = sub.add_parser("run", help="Run a task now")
    run_p.add_argument("task", help="Task name or id")
    run_p.add_argument("--dry-run", action="store_true", help="Do not send webhooks")

    toggle_p = sub.add_parser("toggle", help="Enable or disable a task")
    toggle_p.add_argument("task", help="Task name or id")
    group = toggle_p.add_mutually_exclusive_group(required=True)
    group.add_argument("--on", dest="enabled", action="store_true")
    group.add_argument("--off", dest="enabled", action="store_false")

    history_p = sub.add_parser("history", help="Show recent executions")
    history_p.add_argument("task", help="Task name or id")
    history_p.add_argument("--limit", "-n", type=int, default=10, help="Max rows (default: 10)")

    args = parser.parse_args()
    commands = {
        "list": cmd_list,
        "run": cmd_run,
        "toggle": cmd_toggle,
        "history": cmd_history,
    }
    try:
        asyncio.run(commands[args.command](args))
    except SchedulerError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
