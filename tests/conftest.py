"""Shared test fixtures."""

from pathlib import Path

import pytest

from cadence.scheduler.store import TaskStore


@pytest.fixture(autouse=False)
def _no_turso(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests use local file, not remote Turso."""
    monkeypatch.setattr("cadence.config.settings.turso_database_url", "")


@pytest.fixture
async def store(tmp_path: Path, _no_turso) -> TaskStore:
    """Create a TaskStore backed by a temp database."""
    return TaskStore(db_path=tmp_path / "test.db")
