"""Tests for async database connection abstraction."""

from pathlib import Path

import pytest

from cadence.db import DatabaseTarget, _AsyncConnection, get_connection, resolve_target

pytestmark = pytest.mark.usefixtures("_no_turso")


class TestResolveTarget:
    def test_override_wins_over_turso(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr("cadence.config.settings.turso_database_url", "libsql://x.turso.io")
        target = resolve_target(tmp_path / "test.db")
        assert target == DatabaseTarget(location=str(tmp_path / "test.db"))

    def test_turso_url_selects_remote(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr("cadence.config.settings.turso_database_url", "libsql://x.turso.io")
        monkeypatch.setattr("cadence.config.settings.turso_auth_token", "secret")
        target = resolve_target()
        assert target.remote is True
        assert target.auth_token == "secret"
        assert "secret" not in target.describe()
        assert target.describe() == "turso:libsql://x.turso.io"

    def test_local_fallback_creates_parent(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        db_path = tmp_path / "data" / "cadence.db"
        monkeypatch.setattr("cadence.config.settings.database_path", db_path)
        target = resolve_target()
        assert target.remote is False
        assert target.describe() == f"file:{db_path}"
        assert db_path.parent.exists()


class TestGetConnection:
    async def test_returns_async_connection(self, tmp_path: Path):
        conn = await get_connection(local_path_override=tmp_path / "test.db")
        assert isinstance(conn, _AsyncConnection)
        assert conn.target.remote is False
        await conn.close()

    async def test_creates_parent_dirs(self, tmp_path: Path):
        db_path = tmp_path / "nested" / "dir" / "test.db"
        conn = await get_connection(local_path_override=db_path)
        assert db_path.parent.exists()
        await conn.close()

    async def test_falls_back_to_database_path(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ):
        db_path = tmp_path / "data" / "cadence.db"
        monkeypatch.setattr("cadence.config.settings.database_path", db_path)
        conn = await get_connection()
        await conn.execute("CREATE TABLE t (id INTEGER PRIMARY KEY)")
        await conn.commit()
        await conn.close()
        assert db_path.exists()

    async def test_foreign_keys_enabled(self, tmp_path: Path):
        conn = await get_connection(local_path_override=tmp_path / "test.db")
        cursor = await conn.execute("PRAGMA foreign_keys")
        assert await cursor.fetchone() == (1,)
        await conn.close()


class TestAsyncConnection:
    async def test_execute_and_fetchall(self, tmp_path: Path):
        conn = await get_connection(local_path_override=tmp_path / "test.db")
        await conn.execute("CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT)")
        await conn.execute("INSERT INTO t (name) VALUES (?)", ("alice",))
        await conn.commit()

        cursor = await conn.execute("SELECT name FROM t")
        rows = await cursor.fetchall()
        assert rows == [("alice",)]
        await conn.close()

    async def test_fetchone_returns_none_when_empty(self, tmp_path: Path):
        conn = await get_connection(local_path_override=tmp_path / "test.db")
        await conn.execute("CREATE TABLE t (id INTEGER PRIMARY KEY)")

        cursor = await conn.execute("SELECT * FROM t WHERE id = 999")
        row = await cursor.fetchone()
        assert row is None
        await conn.close()

    async def test_cascade_delete(self, tmp_path: Path):
        conn = await get_connection(local_path_override=tmp_path / "test.db")
        await conn.execute("CREATE TABLE parent (id TEXT PRIMARY KEY)")
        await conn.execute(
            "CREATE TABLE child (id TEXT PRIMARY KEY, "
            "parent_id TEXT REFERENCES parent(id) ON DELETE CASCADE)"
        )
        await conn.execute("INSERT INTO parent (id) VALUES (?)", ("p",))
        await conn.execute("INSERT INTO child (id, parent_id) VALUES (?, ?)", ("c", "p"))
        await conn.commit()

        cursor = await conn.execute("DELETE FROM parent")
        assert cursor.rowcount == 1
        await conn.commit()
        cursor = await conn.execute("SELECT COUNT(*) FROM child")
        assert await cursor.fetchone() == (0,)
        await conn.close()
