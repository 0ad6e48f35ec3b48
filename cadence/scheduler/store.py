"""TaskStore — libsql CRUD for task definitions, executions and status."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from cadence.db import get_connection
from cadence.scheduler.models import (
    ACTIVE_STATES,
    RUNNING,
    TaskDefinition,
    TaskExecution,
    TaskStatus,
    make_id,
    utcnow,
)

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_DEFINITIONS = """
CREATE TABLE IF NOT EXISTS task_definitions (
    id              TEXT PRIMARY KEY,
    name            TEXT NOT NULL UNIQUE,
    description     TEXT,
    cron_expression TEXT,
    is_enabled      INTEGER NOT NULL DEFAULT 1,
    is_daily        INTEGER NOT NULL DEFAULT 0,
    is_monthly      INTEGER NOT NULL DEFAULT 0,
    is_weekly       INTEGER NOT NULL DEFAULT 0,
    task_type       TEXT NOT NULL,
    created_at      TEXT NOT NULL,
    updated_at      TEXT
)
"""

_CREATE_EXECUTIONS = """
CREATE TABLE IF NOT EXISTS task_executions (
    id                 TEXT PRIMARY KEY,
    task_definition_id TEXT NOT NULL
        REFERENCES task_definitions(id) ON DELETE CASCADE,
    status             TEXT NOT NULL DEFAULT 'pending',
    started_at         TEXT,
    completed_at       TEXT,
    duration           INTEGER,
    result             TEXT,
    error              TEXT,
    logs               TEXT,
    triggered_by       TEXT NOT NULL DEFAULT 'system',
    created_at         TEXT NOT NULL
)
"""

_CREATE_EXECUTIONS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_task_executions_definition
    ON task_executions (task_definition_id, created_at)
"""

_CREATE_STATUS = """
CREATE TABLE IF NOT EXISTS task_status (
    id                 TEXT PRIMARY KEY,
    task_definition_id TEXT NOT NULL UNIQUE
        REFERENCES task_definitions(id) ON DELETE CASCADE,
    is_running         INTEGER NOT NULL DEFAULT 0,
    last_run_at        TEXT,
    next_run_at        TEXT,
    last_execution_id  TEXT,
    updated_at         TEXT NOT NULL
)
"""

_STATUS_COLUMNS = ("is_running", "last_run_at", "next_run_at", "last_execution_id")

_ACTIVE_PLACEHOLDERS = ", ".join("?" for _ in ACTIVE_STATES)


class TaskStore:
    """Persists task definitions, executions and status rows in SQLite / Turso.

    Pass an explicit *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self):  # noqa: ANN202
        db = await get_connection(local_path_override=self._db_path)
        if not self._initialised:
            for ddl in (
                _CREATE_DEFINITIONS,
                _CREATE_EXECUTIONS,
                _CREATE_EXECUTIONS_INDEX,
                _CREATE_STATUS,
            ):
                await db.execute(ddl)
            await db.commit()
            self._initialised = True
        return db

    # -- Definitions -----------------------------------------------------------

    async def add_definition(self, definition: TaskDefinition) -> TaskDefinition:
        """Insert a new task definition. Returns the same object."""
        db = await self._connect()
        try:
            await db.execute(
                """
                INSERT INTO task_definitions
                    (id, name, description, cron_expression, is_enabled, is_daily,
                     is_monthly, is_weekly, task_type, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                definition.to_row(),
            )
            await db.commit()
            logger.info("Added task definition: %s (%s)", definition.name, definition.id)
            return definition
        finally:
            await db.close()

    async def add_definition_if_absent(self, definition: TaskDefinition) -> bool:
        """Insert *definition* unless one with the same name exists.

        Returns True if a row was inserted.
        """
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                INSERT INTO task_definitions
                    (id, name, description, cron_expression, is_enabled, is_daily,
                     is_monthly, is_weekly, task_type, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(name) DO NOTHING
                """,
                definition.to_row(),
            )
            await db.commit()
            return cursor.rowcount > 0
        finally:
            await db.close()

    async def get_definition(self, task_id: str) -> TaskDefinition | None:
        """Fetch a definition by ID, or None if not found."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT * FROM task_definitions WHERE id = ?", (task_id,)
            )
            row = await cursor.fetchone()
            return TaskDefinition.from_row(row) if row else None
        finally:
            await db.close()

    async def get_definition_by_name(self, name: str) -> TaskDefinition | None:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT * FROM task_definitions WHERE name = ?", (name,)
            )
            row = await cursor.fetchone()
            return TaskDefinition.from_row(row) if row else None
        finally:
            await db.close()

    async def list_definitions(self) -> list[TaskDefinition]:
        """Return every definition, newest first."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT * FROM task_definitions ORDER BY created_at DESC"
            )
            rows = await cursor.fetchall()
            return [TaskDefinition.from_row(row) for row in rows]
        finally:
            await db.close()

    async def set_enabled(self, task_id: str, enabled: bool) -> bool:
        """Flip ``is_enabled``. Returns True if a row was updated."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "UPDATE task_definitions SET is_enabled = ?, updated_at = ? WHERE id = ?",
                (int(enabled), utcnow(), task_id),
            )
            await db.commit()
            return cursor.rowcount > 0
        finally:
            await db.close()

    async def delete_definition(self, task_id: str) -> bool:
        """Remove a definition; executions and status cascade with it."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "DELETE FROM task_definitions WHERE id = ?", (task_id,)
            )
            await db.commit()
            deleted = cursor.rowcount > 0
            if deleted:
                logger.info("Deleted task definition: %s", task_id)
            return deleted
        finally:
            await db.close()

    # -- Executions ------------------------------------------------------------

    async def add_execution(self, execution: TaskExecution) -> TaskExecution:
        db = await self._connect()
        try:
            await db.execute(
                """
                INSERT INTO task_executions
                    (id, task_definition_id, status, started_at, completed_at,
                     duration, result, error, logs, triggered_by, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                execution.to_row(),
            )
            await db.commit()
            return execution
        finally:
            await db.close()

    async def get_execution(self, execution_id: str) -> TaskExecution | None:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT * FROM task_executions WHERE id = ?", (execution_id,)
            )
            row = await cursor.fetchone()
            return TaskExecution.from_row(row) if row else None
        finally:
            await db.close()

    async def list_executions(self, task_id: str, limit: int = 10) -> list[TaskExecution]:
        """Return the most recent executions of a task, newest first."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                SELECT * FROM task_executions
                WHERE task_definition_id = ?
                ORDER BY created_at DESC
                LIMIT ?
                """,
                (task_id, limit),
            )
            rows = await cursor.fetchall()
            return [TaskExecution.from_row(row) for row in rows]
        finally:
            await db.close()

    async def mark_running(self, execution_id: str, started_at: str) -> bool:
        """Move a pending execution to running."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                UPDATE task_executions SET status = ?, started_at = ?
                WHERE id = ? AND status = 'pending'
                """,
                (RUNNING, started_at, execution_id),
            )
            await db.commit()
            return cursor.rowcount > 0
        finally:
            await db.close()

    async def finish_execution(
        self,
        execution_id: str,
        status: str,
        *,
        completed_at: str,
        duration: int | None = None,
        result: Any = None,
        error: str | None = None,
    ) -> bool:
        """Write a terminal status.

        Only applies while the execution is still pending or running, so a
        terminal row is never rewritten. Returns True if the row changed.
        """
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"""
                UPDATE task_executions
                SET status = ?, completed_at = ?, duration = ?, result = ?, error = ?
                WHERE id = ? AND status IN ({_ACTIVE_PLACEHOLDERS})
                """,  # noqa: S608
                (
                    status,
                    completed_at,
                    duration,
                    json.dumps(result, default=str) if result is not None else None,
                    error,
                    execution_id,
                    *ACTIVE_STATES,
                ),
            )
            await db.commit()
            return cursor.rowcount > 0
        finally:
            await db.close()

    # -- Status ----------------------------------------------------------------

    async def get_status(self, task_id: str) -> TaskStatus | None:
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                SELECT id, task_definition_id, is_running, last_run_at, next_run_at,
                       last_execution_id, updated_at
                FROM task_status WHERE task_definition_id = ?
                """,
                (task_id,),
            )
            row = await cursor.fetchone()
            return TaskStatus.from_row(row) if row else None
        finally:
            await db.close()

    async def upsert_status(self, task_id: str, **fields: Any) -> None:
        """Insert or update the status row of *task_id*.

        Only the given columns are written on update; the rest keep their
        current values.
        """
        unknown = set(fields) - set(_STATUS_COLUMNS)
        if unknown:
            msg = f"Unknown task_status column(s): {sorted(unknown)}"
            raise ValueError(msg)
        if "is_running" in fields:
            fields["is_running"] = int(fields["is_running"])

        now = utcnow()
        columns = list(fields)
        insert_cols = ", ".join(["id", "task_definition_id", *columns, "updated_at"])
        placeholders = ", ".join("?" for _ in range(len(columns) + 3))
        updates = ", ".join([*(f"{c} = excluded.{c}" for c in columns), "updated_at = excluded.updated_at"])

        db = await self._connect()
        try:
            await db.execute(
                f"""
                INSERT INTO task_status ({insert_cols})
                VALUES ({placeholders})
                ON CONFLICT(task_definition_id) DO UPDATE SET {updates}
                """,  # noqa: S608
                (make_id(), task_id, *fields.values(), now),
            )
            await db.commit()
        finally:
            await db.close()
