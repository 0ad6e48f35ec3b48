"""Pipelines — ordered sub-task units sharing a run context."""

from cadence.pipeline.context import CancelToken, RunContext, StepResult
from cadence.pipeline.registry import SubTaskRegistry
from cadence.pipeline.runner import SequenceOutcome, SubTask, TaskRunner, subtask
from cadence.pipeline.sequences import SequenceTable

__all__ = [
    "CancelToken",
    "RunContext",
    "StepResult",
    "SubTask",
    "SubTaskRegistry",
    "SequenceOutcome",
    "SequenceTable",
    "TaskRunner",
    "subtask",
]
