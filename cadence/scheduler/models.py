"""Task definition, execution and status data models."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# Execution states
PENDING = "pending"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"

ACTIVE_STATES = (PENDING, RUNNING)
TERMINAL_STATES = (COMPLETED, FAILED, CANCELLED)

# Who asked for a run
TRIGGER_SYSTEM = "system"
TRIGGER_MANUAL = "manual"


def utcnow() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(UTC).isoformat()


def make_id() -> str:
    """Generate a new row ID."""
    return uuid.uuid4().hex


def _loads(value: str | None) -> Any:
    return json.loads(value) if value is not None else None


@dataclass
class TaskDefinition:
    """A named, schedulable unit of work.

    Attributes:
        id: Unique identifier (UUID hex).
        name: Unique human-readable name; the stable key callers look up.
        task_type: Free-form classification (``"daily"``, ``"weekly"`` ...).
        description: Optional description.
        cron_expression: 5-field cron expression, or None for manual-only tasks.
        is_enabled: Whether the task may run and be scheduled.
        is_daily / is_weekly / is_monthly: Category flags that select the run
            parameters handed to the task's pipeline.
        created_at: ISO 8601 timestamp.
        updated_at: ISO 8601 timestamp of the last mutation.
    """

    id: str
    name: str
    task_type: str
    description: str | None = None
    cron_expression: str | None = None
    is_enabled: bool = True
    is_daily: bool = False
    is_weekly: bool = False
    is_monthly: bool = False
    created_at: str = ""
    updated_at: str | None = None

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utcnow()

    @property
    def category(self) -> str:
        """The category implied by the flags (daily wins over monthly over weekly)."""
        if self.is_daily:
            return "daily"
        if self.is_monthly:
            return "monthly"
        if self.is_weekly:
            return "weekly"
        return "single"

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``task_definitions`` column order."""
        return (
            self.id,
            self.name,
            self.description,
            self.cron_expression,
            int(self.is_enabled),
            int(self.is_daily),
            int(self.is_monthly),
            int(self.is_weekly),
            self.task_type,
            self.created_at,
            self.updated_at,
        )

    @classmethod
    def from_row(cls, row: tuple) -> TaskDefinition:
        return cls(
            id=row[0],
            name=row[1],
            description=row[2],
            cron_expression=row[3],
            is_enabled=bool(row[4]),
            is_daily=bool(row[5]),
            is_monthly=bool(row[6]),
            is_weekly=bool(row[7]),
            task_type=row[8],
            created_at=row[9],
            updated_at=row[10],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "cron_expression": self.cron_expression,
            "is_enabled": self.is_enabled,
            "is_daily": self.is_daily,
            "is_weekly": self.is_weekly,
            "is_monthly": self.is_monthly,
            "task_type": self.task_type,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class TaskExecution:
    """One run attempt of a task definition."""

    id: str
    task_definition_id: str
    status: str = PENDING
    started_at: str | None = None
    completed_at: str | None = None
    duration: int | None = None
    result: Any = None
    error: str | None = None
    logs: str | None = None
    triggered_by: str = TRIGGER_SYSTEM
    created_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utcnow()

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``task_executions`` column order."""
        return (
            self.id,
            self.task_definition_id,
            self.status,
            self.started_at,
            self.completed_at,
            self.duration,
            json.dumps(self.result) if self.result is not None else None,
            self.error,
            self.logs,
            self.triggered_by,
            self.created_at,
        )

    @classmethod
    def from_row(cls, row: tuple) -> TaskExecution:
        return cls(
            id=row[0],
            task_definition_id=row[1],
            status=row[2],
            started_at=row[3],
            completed_at=row[4],
            duration=row[5],
            result=_loads(row[6]),
            error=row[7],
            logs=row[8],
            triggered_by=row[9],
            created_at=row[10],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task_definition_id": self.task_definition_id,
            "status": self.status,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration": self.duration,
            "result": self.result,
            "error": self.error,
            "logs": self.logs,
            "triggered_by": self.triggered_by,
            "created_at": self.created_at,
        }


@dataclass
class TaskStatus:
    """Denormalized current-state projection for one task definition."""

    task_definition_id: str
    id: str = field(default_factory=make_id)
    is_running: bool = False
    last_run_at: str | None = None
    next_run_at: str | None = None
    last_execution_id: str | None = None
    updated_at: str = ""

    def __post_init__(self) -> None:
        if not self.updated_at:
            self.updated_at = utcnow()

    @classmethod
    def from_row(cls, row: tuple) -> TaskStatus:
        return cls(
            id=row[0],
            task_definition_id=row[1],
            is_running=bool(row[2]),
            last_run_at=row[3],
            next_run_at=row[4],
            last_execution_id=row[5],
            updated_at=row[6],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_definition_id": self.task_definition_id,
            "is_running": self.is_running,
            "last_run_at": self.last_run_at,
            "next_run_at": self.next_run_at,
            "last_execution_id": self.last_execution_id,
            "updated_at": self.updated_at,
        }
