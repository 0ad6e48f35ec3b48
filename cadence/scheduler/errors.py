"""Scheduler error taxonomy.

Each error carries a ``kind`` (stable machine-readable reason) and a
``status_class`` that an HTTP layer can map onto a response code.
"""

from __future__ import annotations


class SchedulerError(Exception):
    """Base class for every failure raised by the scheduling engine."""

    kind: str = "internal"
    status_class: str = "internal"

    def __init__(self, message: str, *, task_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.task_id = task_id

    def to_dict(self) -> dict[str, str | None]:
        return {
            "kind": self.kind,
            "status_class": self.status_class,
            "message": self.message,
            "task_id": self.task_id,
        }


class NotFound(SchedulerError):
    kind = "not_found"
    status_class = "not_found"


class Disabled(SchedulerError):
    kind = "disabled"
    status_class = "forbidden"


class AlreadyRunning(SchedulerError):
    kind = "already_running"
    status_class = "conflict"


class NotRunning(SchedulerError):
    kind = "not_running"
    status_class = "conflict"


class InvalidCronExpression(SchedulerError):
    kind = "invalid_cron_expression"
    status_class = "bad_request"

    def __init__(self, expression: str, reason: str) -> None:
        super().__init__(f"Invalid cron expression {expression!r}: {reason}")
        self.expression = expression
        self.reason = reason


class SubTaskFailure(SchedulerError):
    """The pipeline's underlying run raised."""

    kind = "subtask_failure"
    status_class = "internal"

    def __init__(self, message: str, *, task_id: str | None = None, result=None) -> None:
        super().__init__(message, task_id=task_id)
        self.result = result


class UnknownSubTask(SchedulerError):
    kind = "unknown_subtask"
    status_class = "internal"
