"""libsql connections for the task store.

The store talks to either a remote Turso database (``TURSO_DATABASE_URL`` plus
``TURSO_AUTH_TOKEN``) or a local SQLite file at ``database_path``.  The
synchronous ``libsql`` driver runs on worker threads via ``asyncio.to_thread()``.

Every connection enforces foreign keys, since task executions and status rows
are deleted through ``ON DELETE CASCADE`` when their definition goes away.
Local files also get WAL journaling and a busy timeout so a CLI invocation can
read while the scheduler process writes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import libsql

from cadence.config import settings

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_COMMON_PRAGMAS = ("PRAGMA foreign_keys=ON",)
_LOCAL_PRAGMAS = ("PRAGMA journal_mode=WAL", "PRAGMA busy_timeout=5000")


@dataclass(frozen=True)
class DatabaseTarget:
    """Where a connection goes: a local file path or a remote Turso URL."""

    location: str
    auth_token: str | None = None
    remote: bool = False

    def describe(self) -> str:
        # Never log the auth token.
        return f"turso:{self.location}" if self.remote else f"file:{self.location}"


def resolve_target(local_path_override: Path | None = None) -> DatabaseTarget:
    """Pick the database for this process.

    An explicit *local_path_override* (test isolation) wins, then a configured
    Turso URL, then the local ``database_path`` file.  Local parent
    directories are created as needed.
    """
    if local_path_override is None and settings.turso_database_url:
        return DatabaseTarget(
            location=settings.turso_database_url,
            auth_token=settings.turso_auth_token,
            remote=True,
        )
    path = local_path_override or settings.database_path
    path.parent.mkdir(parents=True, exist_ok=True)
    return DatabaseTarget(location=str(path))


class _AsyncCursor:
    def __init__(self, cursor: Any) -> None:
        self._cursor = cursor

    async def fetchone(self) -> tuple | None:
        return await asyncio.to_thread(self._cursor.fetchone)

    async def fetchall(self) -> list[tuple]:
        return await asyncio.to_thread(self._cursor.fetchall)

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount


class _AsyncConnection:
    """Async facade over one synchronous libsql connection."""

    def __init__(self, conn: Any, target: DatabaseTarget) -> None:
        self._conn = conn
        self.target = target

    async def execute(self, sql: str, params: tuple = ()) -> _AsyncCursor:
        cursor = await asyncio.to_thread(self._conn.execute, sql, params)
        return _AsyncCursor(cursor)

    async def commit(self) -> None:
        await asyncio.to_thread(self._conn.commit)

    async def close(self) -> None:
        await asyncio.to_thread(self._conn.close)


def _open(target: DatabaseTarget) -> Any:
    if target.remote:
        conn = libsql.connect(database=target.location, auth_token=target.auth_token)
        pragmas = _COMMON_PRAGMAS
    else:
        conn = libsql.connect(target.location)
        pragmas = _LOCAL_PRAGMAS + _COMMON_PRAGMAS
    for pragma in pragmas:
        conn.execute(pragma)
    return conn


async def get_connection(local_path_override: Path | None = None) -> _AsyncConnection:
    """Open a connection to the database chosen by :func:`resolve_target`.

    The caller closes it.
    """
    target = resolve_target(local_path_override)
    conn = await asyncio.to_thread(_open, target)
    logger.debug("Opened database connection (%s)", target.describe())
    return _AsyncConnection(conn, target)
