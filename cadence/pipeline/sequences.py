"""Sequence table — which sub-tasks a task definition runs, in which order.

The table is data: a mapping from task definition ``name`` to an ordered
list of sub-task ids, read from ``sequences.yaml``::

    sequences:
      weekly-rankings:
        - update-github-data
        - build-weekly-rankings
        - trigger-weekly-finished
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import yaml

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_SEQUENCES: dict[str, list[str]] = {
    "daily-update": ["notify-daily"],
    "process-repo-assets": [],
    "weekly-rankings": ["trigger-weekly-finished"],
    "monthly-rankings": ["trigger-monthly-finished"],
}


class SequenceTable:
    """Task name → ordered sub-task ids."""

    def __init__(self, sequences: dict[str, list[str]] | None = None) -> None:
        source = DEFAULT_SEQUENCES if sequences is None else sequences
        self._sequences = {name: list(ids) for name, ids in source.items()}

    @classmethod
    def from_yaml(cls, path: Path) -> SequenceTable:
        """Load the table from *path*, falling back to the defaults if absent."""
        if not path.exists():
            logger.info("%s not found, using default sequences", path)
            return cls()

        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        raw = data.get("sequences", {}) or {}
        if not isinstance(raw, dict):
            msg = f"{path}: 'sequences' must be a mapping of task name to a list"
            raise ValueError(msg)

        sequences: dict[str, list[str]] = {}
        for name, ids in raw.items():
            if ids is None:
                ids = []
            if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
                msg = f"{path}: sequence {name!r} must be a list of sub-task ids"
                raise ValueError(msg)
            sequences[str(name)] = ids
        logger.info("Loaded %d sequence(s) from %s", len(sequences), path)
        return cls(sequences)

    def get(self, name: str) -> list[str]:
        """Sub-task ids for *name*; empty for unknown names."""
        return list(self._sequences.get(name, []))

    def set(self, name: str, ids: list[str]) -> None:
        self._sequences[name] = list(ids)

    @property
    def names(self) -> list[str]:
        return list(self._sequences)
