"""Tests for the neda management CLI."""

from __future__ import annotations

import stat
from unittest.mock import MagicMock, patch

import pytest

from neda.core.exceptions import UpstreamFailure
from neda.core.migrations import MigrationStatus
from neda.server.auth import ADMIN_SCOPE, USER_SCOPE, TokenStore
from neda.server.cli import build_parser, main, save_token_securely


@pytest.fixture
def home(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    return tmp_path


@pytest.fixture
def token_file(tmp_path):
    return tmp_path / "tokens.json"


PRINCIPAL_ID = "6f1c2d8e-0b7a-4c1e-9a55-2f3d4e5a6b7c"


class TestParser:
    def test_requires_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_migrate_down_options(self):
        args = build_parser().parse_args(["migrate", "down", "--target", "001", "--dry-run"])
        assert args.target == "001"
        assert args.dry_run is True


class TestTokenCommands:
    def test_create_writes_private_file(self, home, token_file, capsys):
        assert main(["token", "--token-file", str(token_file), "create", "-p", PRINCIPAL_ID, "-s", "credentials,admin"]) == 0

        (saved,) = (home / ".neda" / "tokens").iterdir()
        raw = saved.read_text().strip()
        assert stat.S_IMODE(saved.stat().st_mode) == 0o600
        assert raw not in capsys.readouterr().out
        assert TokenStore(token_file).verify(raw).scopes == [USER_SCOPE, ADMIN_SCOPE]

    def test_create_rejects_non_uuid_principal(self, home, token_file, capsys):
        assert main(["token", "--token-file", str(token_file), "create", "-p", "user-1"]) == 1
        assert "must be a UUID" in capsys.readouterr().err
        assert TokenStore(token_file).list_tokens() == []

    def test_list(self, token_file, capsys):
        TokenStore(token_file).create("user-1")
        assert main(["token", "--token-file", str(token_file), "list"]) == 0
        out = capsys.readouterr().out
        assert "user-1" in out
        assert "Total: 1 token(s)" in out

    def test_list_empty(self, token_file, capsys):
        assert main(["token", "--token-file", str(token_file), "list"]) == 0
        assert "No tokens found." in capsys.readouterr().out

    def test_revoke_by_principal(self, token_file):
        store = TokenStore(token_file)
        store.create("user-1")
        store.create("user-1")
        assert main(["token", "--token-file", str(token_file), "revoke", "-p", "user-1"]) == 0
        assert TokenStore(token_file).list_tokens() == []

    def test_revoke_by_raw_token(self, token_file):
        raw = TokenStore(token_file).create("user-1")
        assert main(["token", "--token-file", str(token_file), "revoke", "--token", raw]) == 0
        assert main(["token", "--token-file", str(token_file), "revoke", "--token", raw]) == 1

    def test_revoke_needs_selector(self, token_file, capsys):
        assert main(["token", "--token-file", str(token_file), "revoke"]) == 1
        assert "Must provide" in capsys.readouterr().out

    def test_token_file_defaults_to_settings(self, server_settings):
        with patch("neda.server.cli.get_settings", return_value=server_settings):
            assert main(["token", "list"]) == 0


def test_save_token_securely_unique_names(home):
    first = save_token_securely("user/1", "nst_a")
    second = save_token_securely("user/1", "nst_b")
    assert first != second
    assert "/" not in first.name
    assert stat.S_IMODE(first.parent.stat().st_mode) == 0o700


class TestMigrateCommands:
    @pytest.fixture
    def runner(self):
        runner = MagicMock()
        with patch("neda.server.cli.MigrationRunner", return_value=runner), patch("neda.server.cli.Database"), patch(
            "neda.server.cli.configure_logging"
        ):
            yield runner

    def test_status(self, runner, capsys):
        runner.status.return_value = [MigrationStatus("001", "initial_schema", "pending")]
        assert main(["migrate", "status"]) == 0
        assert "initial_schema" in capsys.readouterr().out

    def test_up(self, runner, capsys):
        runner.up.return_value = ["001"]
        assert main(["migrate", "up", "--target", "001"]) == 0
        runner.up.assert_called_once_with(target="001", dry_run=False)
        assert "Applied: 001" in capsys.readouterr().out

    def test_down_nothing(self, runner, capsys):
        runner.down.return_value = []
        assert main(["migrate", "down"]) == 0
        assert "Nothing to roll back." in capsys.readouterr().out

    def test_database_unavailable(self, runner, capsys):
        runner.status.side_effect = UpstreamFailure("connection refused", operation="acquire")
        assert main(["migrate", "status"]) == 1
        assert "Database unavailable" in capsys.readouterr().err


def test_serve_runs_server():
    with patch("neda.server.app.run") as run:
        assert main(["serve"]) == 0
    run.assert_called_once()
