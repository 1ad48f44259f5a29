"""Tests for neda.core.migrations.

The database is mocked; migration files are written to a temp directory.
"""

from __future__ import annotations

import textwrap
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from neda.core.migrations import MIGRATIONS_TABLE, MigrationRunner

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def migrations_dir(tmp_path: Path) -> Path:
    mdir = tmp_path / "migrations"
    mdir.mkdir()
    return mdir


def _write_migration(mdir: Path, version: str, name: str, *, up_sql: str = "SELECT 1") -> Path:
    content = textwrap.dedent(f'''\
        """Migration {version}: {name}."""

        version = "{version}"
        description = "{name}"


        def up(conn) -> None:
            with conn.cursor() as cur:
                cur.execute("""{up_sql}""")


        def down(conn) -> None:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
    ''')
    path = mdir / f"{version}_{name}.py"
    path.write_text(content)
    return path


@pytest.fixture
def sample_migrations(migrations_dir: Path) -> Path:
    _write_migration(migrations_dir, "001", "initial_schema")
    _write_migration(migrations_dir, "002", "add_indexes")
    _write_migration(migrations_dir, "003", "audit_trigger")
    return migrations_dir


@pytest.fixture
def conn() -> MagicMock:
    conn = MagicMock()
    cursor = MagicMock()
    cursor.__enter__.return_value = cursor
    cursor.fetchall.return_value = []
    conn.cursor.return_value = cursor
    return conn


@pytest.fixture
def database(conn) -> MagicMock:
    database = MagicMock()

    @contextmanager
    def _connection():
        yield conn

    database.connection.side_effect = _connection
    return database


def _applied(conn: MagicMock, runner: MigrationRunner, versions: list[str]) -> None:
    by_version = {m.version: m for m in runner.discover()}
    conn.cursor.return_value.fetchall.return_value = [
        {
            "version": v,
            "description": by_version[v].description,
            "checksum": by_version[v].checksum,
            "applied_at": datetime(2026, 1, 1, tzinfo=UTC),
        }
        for v in versions
    ]


# ============================================================================
# Discovery
# ============================================================================


class TestDiscovery:
    def test_empty_dir(self, database, migrations_dir):
        assert MigrationRunner(database, migrations_dir).discover() == []

    def test_missing_dir(self, database, tmp_path):
        assert MigrationRunner(database, tmp_path / "nope").discover() == []

    def test_sorted_by_version(self, database, migrations_dir):
        _write_migration(migrations_dir, "003", "third")
        _write_migration(migrations_dir, "001", "first")
        _write_migration(migrations_dir, "002", "second")
        assert [m.version for m in MigrationRunner(database, migrations_dir).discover()] == ["001", "002", "003"]

    def test_skips_non_migration_files(self, database, migrations_dir):
        (migrations_dir / "__init__.py").write_text("")
        (migrations_dir / "README.py").write_text("# notes")
        _write_migration(migrations_dir, "001", "real")
        assert len(MigrationRunner(database, migrations_dir).discover()) == 1

    def test_missing_attribute(self, database, migrations_dir):
        (migrations_dir / "001_broken.py").write_text('version = "001"\n')
        with pytest.raises(ValueError, match="missing required attribute"):
            MigrationRunner(database, migrations_dir).discover()

    def test_cached(self, database, sample_migrations):
        runner = MigrationRunner(database, sample_migrations)
        assert runner.discover() is runner.discover()

    def test_checksum_changes_with_content(self, database, migrations_dir):
        path = _write_migration(migrations_dir, "001", "a")
        before = MigrationRunner._compute_checksum(path)
        path.write_text(path.read_text() + "\n# edited\n")
        assert MigrationRunner._compute_checksum(path) != before

    def test_default_dir_is_repo_migrations(self, database):
        runner = MigrationRunner(database)
        assert runner.migrations_dir.name == "migrations"
        assert (runner.migrations_dir / "001_initial_schema.py").exists()


# ============================================================================
# Status / up / down
# ============================================================================


class TestStatus:
    def test_all_pending(self, database, sample_migrations):
        states = [s.state for s in MigrationRunner(database, sample_migrations).status()]
        assert states == ["pending", "pending", "pending"]

    def test_applied_and_mismatch(self, database, conn, sample_migrations):
        runner = MigrationRunner(database, sample_migrations)
        _applied(conn, runner, ["001", "002"])
        conn.cursor.return_value.fetchall.return_value[1]["checksum"] = "deadbeefdeadbeef"

        states = {s.version: s.state for s in runner.status()}
        assert states == {"001": "applied", "002": "checksum_mismatch", "003": "pending"}

    def test_ensures_tracking_table(self, database, conn, sample_migrations):
        MigrationRunner(database, sample_migrations).status()
        first_sql = conn.cursor.return_value.execute.call_args_list[0].args[0]
        assert f"CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE}" in first_sql

    def test_pending(self, database, conn, sample_migrations):
        runner = MigrationRunner(database, sample_migrations)
        _applied(conn, runner, ["001"])
        assert [m.version for m in runner.pending()] == ["002", "003"]


class TestUp:
    def test_applies_all_pending(self, database, conn, sample_migrations):
        runner = MigrationRunner(database, sample_migrations)
        _applied(conn, runner, ["001"])
        assert runner.up() == ["002", "003"]
        inserts = [
            c.args[1][0]
            for c in conn.cursor.return_value.execute.call_args_list
            if c.args[0].startswith(f"INSERT INTO {MIGRATIONS_TABLE}")
        ]
        assert inserts == ["002", "003"]

    def test_target(self, database, sample_migrations):
        assert MigrationRunner(database, sample_migrations).up(target="002") == ["001", "002"]

    def test_dry_run_executes_nothing(self, database, conn, sample_migrations):
        runner = MigrationRunner(database, sample_migrations)
        assert runner.up(dry_run=True) == ["001", "002", "003"]
        executed = [c.args[0] for c in conn.cursor.return_value.execute.call_args_list]
        assert not any(sql.startswith("INSERT") for sql in executed)

    def test_nothing_pending(self, database, conn, sample_migrations):
        runner = MigrationRunner(database, sample_migrations)
        _applied(conn, runner, ["001", "002", "003"])
        assert runner.up() == []

    def test_failure_rolls_back_and_raises(self, database, conn, migrations_dir):
        _write_migration(migrations_dir, "001", "ok")
        (migrations_dir / "002_broken.py").write_text(
            'version = "002"\ndescription = "broken"\n\n'
            "def up(conn):\n    raise RuntimeError('syntax error')\n\n"
            "def down(conn):\n    pass\n"
        )
        runner = MigrationRunner(database, migrations_dir)
        with pytest.raises(RuntimeError):
            runner.up()
        conn.rollback.assert_called_once()


class TestDown:
    def test_latest_only_by_default(self, database, conn, sample_migrations):
        runner = MigrationRunner(database, sample_migrations)
        _applied(conn, runner, ["001", "002", "003"])
        assert runner.down() == ["003"]

    def test_down_to_target(self, database, conn, sample_migrations):
        runner = MigrationRunner(database, sample_migrations)
        _applied(conn, runner, ["001", "002", "003"])
        assert runner.down(target="001") == ["003", "002"]
        deletes = [
            c.args[1][0]
            for c in conn.cursor.return_value.execute.call_args_list
            if c.args[0].startswith(f"DELETE FROM {MIGRATIONS_TABLE}")
        ]
        assert deletes == ["003", "002"]

    def test_nothing_applied(self, database, sample_migrations):
        assert MigrationRunner(database, sample_migrations).down() == []

    def test_dry_run(self, database, conn, sample_migrations):
        runner = MigrationRunner(database, sample_migrations)
        _applied(conn, runner, ["001", "002"])
        assert runner.down(dry_run=True) == ["002"]
        conn.commit.assert_called()  # tracking table creation only
        executed = [c.args[0] for c in conn.cursor.return_value.execute.call_args_list]
        assert not any(sql.startswith("DELETE") for sql in executed)
