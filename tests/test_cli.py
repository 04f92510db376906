"""Tests for gofinances.cli: argument parsing and command handlers.

Tests use main(argv=[...]) or the cmd_* handlers directly. Handlers run
against a temporary SQLite file and config directory configured through
GOFINANCES_* environment variables; the watch command is mocked since it
runs forever.
"""

from __future__ import annotations

import argparse
import sqlite3
import subprocess
import sys
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from gofinances.cli import (
    _get_migrations_dir,
    _get_watch_dir,
    cmd_category,
    cmd_import,
    cmd_status,
    cmd_watch,
    main,
)
from gofinances.database.models import TransactionDraft
from gofinances.database.repository import Repository


# ── Helpers ──────────────────────────────────────────────


def _make_args(**kwargs):
    """Create an argparse.Namespace with given attributes."""
    return argparse.Namespace(**kwargs)


@pytest.fixture
def cli_env(tmp_path, monkeypatch, migrations_dir):
    """Point the CLI at a temp database, config dir and drop folder."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    watch_dir = tmp_path / "import"
    watch_dir.mkdir()
    db_path = tmp_path / "gofinances.db"

    monkeypatch.setenv("GOFINANCES_CONFIG_DIR", str(config_dir))
    monkeypatch.setenv("GOFINANCES_DB_PATH", str(db_path))
    monkeypatch.setenv("GOFINANCES_WATCH_DIR", str(watch_dir))
    monkeypatch.setenv("GOFINANCES_MIGRATIONS_DIR", str(migrations_dir))
    return {"config_dir": config_dir, "watch_dir": watch_dir, "db_path": db_path}


def _open_repo(cli_env, migrations_dir) -> Repository:
    repo = Repository(db_path=str(cli_env["db_path"]))
    repo.apply_migrations(migrations_dir)
    return repo


# ── Argument parsing tests (subprocess) ──────────────────


class TestCliHelp:
    def test_help_exits_zero(self):
        result = subprocess.run(
            [sys.executable, "-m", "gofinances.cli", "--help"],
            capture_output=True, text=True,
        )
        assert result.returncode == 0
        assert "gofinances transaction importer" in result.stdout

    def test_all_subcommands_listed_in_help(self):
        result = subprocess.run(
            [sys.executable, "-m", "gofinances.cli", "--help"],
            capture_output=True, text=True,
        )
        for cmd in ["import", "watch", "status", "category"]:
            assert cmd in result.stdout, f"Subcommand '{cmd}' not in help output"

    def test_import_subcommand_help(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["import", "--help"])
        assert exc.value.code == 0
        assert "--file" in capsys.readouterr().out


# ── main() dispatch tests ────────────────────────────────


class TestMainDispatch:
    def test_main_dispatches_to_handler(self):
        handler = MagicMock(return_value=0)
        with patch("gofinances.cli._COMMANDS", {"status": handler}), \
             patch("gofinances.cli._setup_logging"):
            with pytest.raises(SystemExit) as exc:
                main(["status"])
        assert exc.value.code == 0
        handler.assert_called_once()

    def test_main_propagates_handler_exit_code(self):
        with patch("gofinances.cli._COMMANDS", {"status": MagicMock(return_value=1)}), \
             patch("gofinances.cli._setup_logging"):
            with pytest.raises(SystemExit) as exc:
                main(["status"])
        assert exc.value.code == 1

    def test_main_no_command_shows_help(self, capsys):
        with patch("gofinances.cli._setup_logging"):
            with pytest.raises(SystemExit) as exc:
                main([])
        assert exc.value.code == 0
        assert "usage:" in capsys.readouterr().out.lower()


# ── cmd_import tests ─────────────────────────────────────


class TestCmdImport:
    def test_import_single_file_success(self, cli_env, migrations_dir, tmp_path, capsys):
        f = tmp_path / "export.csv"
        f.write_text(
            "title,type,value,category\n"
            "Rent,outcome,1200.00,Housing\n"
            "Salary,income,3000,Work\n"
        )

        ret = cmd_import(_make_args(file=f, command="import"))

        assert ret == 0
        out = capsys.readouterr().out
        assert "export.csv: success" in out
        assert "imported=2" in out
        assert not f.exists()

        repo = _open_repo(cli_env, migrations_dir)
        assert len(repo.list_transactions()) == 2
        assert [c.title for c in repo.list_categories()] == ["Housing", "Work"]
        repo.close()

    def test_import_uses_config(self, cli_env, tmp_path):
        (cli_env["config_dir"] / "import.yaml").write_text(
            "csv:\n  delimiter: ';'\ncleanup:\n  delete_after_import: false\n"
        )
        f = tmp_path / "semi.csv"
        f.write_text("title;type;value;category\nRent;outcome;1200.00;Housing\n")

        assert cmd_import(_make_args(file=f, command="import")) == 0
        assert f.exists()

    def test_import_file_not_found(self, cli_env, tmp_path, capsys):
        ret = cmd_import(_make_args(file=tmp_path / "missing.csv", command="import"))
        assert ret == 1
        assert "File not found" in capsys.readouterr().out

    def test_import_unsupported_extension(self, cli_env, tmp_path, capsys):
        f = tmp_path / "statement.qfx"
        f.write_text("<OFX></OFX>")
        ret = cmd_import(_make_args(file=f, command="import"))
        assert ret == 1
        assert "Unsupported file type" in capsys.readouterr().out

    def test_import_malformed_file_returns_nonzero(self, cli_env, tmp_path, capsys):
        f = tmp_path / "bad.csv"
        f.write_text('title,type,value,category\nRent,outcome,1,"Housing\n')
        ret = cmd_import(_make_args(file=f, command="import"))
        assert ret == 1
        assert "error [parse]" in capsys.readouterr().out
        assert f.exists()

    def test_import_batch_no_files(self, cli_env, capsys):
        ret = cmd_import(_make_args(file=None, command="import"))
        assert ret == 0
        assert "No pending files" in capsys.readouterr().out

    def test_import_batch_processes_files(self, cli_env, migrations_dir, capsys):
        drop = cli_env["watch_dir"]
        (drop / "a.csv").write_text("title,type,value,category\nRent,outcome,1200,Housing\n")
        (drop / "b.csv").write_text("title,type,value,category\nWater,outcome,40,Housing\n")
        (drop / "notes.txt").write_text("ignored")

        ret = cmd_import(_make_args(file=None, command="import"))

        assert ret == 0
        out = capsys.readouterr().out
        assert "Processed 2 files: 2 transactions, 0 errors" in out
        assert (drop / "notes.txt").exists()

        repo = _open_repo(cli_env, migrations_dir)
        assert [c.title for c in repo.list_categories()] == ["Housing"]
        repo.close()

    def test_import_batch_counts_errors(self, cli_env, capsys):
        drop = cli_env["watch_dir"]
        (drop / "a.csv").write_text("title,type,value,category\nRent,outcome,1200,Housing\n")
        (drop / "b.csv").write_text('title,type,value,category\nBad,"x"y,1,Housing\n')

        ret = cmd_import(_make_args(file=None, command="import"))

        assert ret == 1
        assert "1 errors" in capsys.readouterr().out

    def test_import_batch_missing_watch_dir(self, cli_env, monkeypatch, tmp_path, capsys):
        monkeypatch.setenv("GOFINANCES_WATCH_DIR", str(tmp_path / "nope"))
        ret = cmd_import(_make_args(file=None, command="import"))
        assert ret == 1
        assert "Watch directory not found" in capsys.readouterr().out

    def test_import_closes_repo_when_migrations_fail(self, cli_env, tmp_path):
        mock_repo = MagicMock()
        mock_repo.apply_migrations.side_effect = sqlite3.OperationalError("disk I/O error")
        with patch("gofinances.cli._get_repo", return_value=mock_repo):
            with pytest.raises(sqlite3.OperationalError):
                cmd_import(_make_args(file=tmp_path / "a.csv", command="import"))
        mock_repo.close.assert_called_once()


# ── cmd_watch tests ──────────────────────────────────────


class TestCmdWatch:
    def test_watch_starts_and_stops(self, cli_env):
        """Watch command starts watcher and handles KeyboardInterrupt."""
        mock_watcher = MagicMock()
        mock_watcher.watch_dir = cli_env["watch_dir"]

        with patch("gofinances.watcher.observer.FolderWatcher", return_value=mock_watcher) as MockWatcher, \
             patch("gofinances.cli.time.sleep", side_effect=KeyboardInterrupt()):
            ret = cmd_watch(_make_args(command="watch"))

        assert ret == 0
        assert MockWatcher.call_args.kwargs["settle_seconds"] == 10
        assert MockWatcher.call_args.kwargs["poll_interval"] == 30
        mock_watcher.start.assert_called_once()
        mock_watcher.run_pending.assert_called_once()
        mock_watcher.stop.assert_called_once()


# ── cmd_status tests ─────────────────────────────────────


class TestCmdStatus:
    def test_status_empty_database(self, cli_env, capsys):
        ret = cmd_status(_make_args(command="status"))
        assert ret == 0
        out = capsys.readouterr().out
        assert "gofinances Status" in out
        assert "0.00" in out

    def test_status_displays_counts_and_balance(self, cli_env, migrations_dir, capsys):
        repo = _open_repo(cli_env, migrations_dir)
        [work] = repo.create_categories(["Work"])
        repo.create_transactions([
            TransactionDraft("Salary", "income", Decimal("3000.00"), work),
            TransactionDraft("Rent", "outcome", Decimal("1200.50")),
        ])
        repo.close()

        ret = cmd_status(_make_args(command="status"))

        assert ret == 0
        out = capsys.readouterr().out
        assert "Total transactions:  2" in out
        assert "Uncategorized:       1" in out
        assert "3,000.00" in out
        assert "1,200.50" in out
        assert "1,799.50" in out

    def test_status_closes_repo_when_query_fails(self, cli_env):
        mock_repo = MagicMock()
        with patch("gofinances.cli._get_repo", return_value=mock_repo), \
             patch("gofinances.database.queries.get_status_counts", return_value={}), \
             patch(
                 "gofinances.database.queries.get_balance",
                 side_effect=sqlite3.OperationalError("database is locked"),
             ):
            with pytest.raises(sqlite3.OperationalError):
                cmd_status(_make_args(command="status"))
        mock_repo.close.assert_called_once()


# ── cmd_category tests ───────────────────────────────────


class TestCmdCategory:
    def test_list_empty(self, cli_env, capsys):
        ret = cmd_category(_make_args(command="category", category_command="list"))
        assert ret == 0
        assert "No categories." in capsys.readouterr().out

    def test_list_with_totals(self, cli_env, migrations_dir, capsys):
        repo = _open_repo(cli_env, migrations_dir)
        housing, blank = repo.create_categories(["Housing", ""])
        repo.create_transactions([
            TransactionDraft("Rent", "outcome", Decimal("1200"), housing),
            TransactionDraft("Gift", "income", Decimal("50"), blank),
        ])
        repo.close()

        ret = cmd_category(_make_args(command="category", category_command="list"))

        assert ret == 0
        out = capsys.readouterr().out
        assert "Housing" in out
        assert "1,200.00" in out
        assert "(blank)" in out

    def test_missing_subcommand(self, cli_env, capsys):
        ret = cmd_category(_make_args(command="category", category_command=None))
        assert ret == 1
        assert "Usage" in capsys.readouterr().out


# ── Helper function tests ────────────────────────────────


class TestHelpers:
    def test_get_watch_dir_default(self):
        with patch.dict("os.environ", {}, clear=True):
            assert _get_watch_dir() == Path("import")

    def test_get_watch_dir_from_env(self):
        with patch.dict("os.environ", {"GOFINANCES_WATCH_DIR": "/data/drop"}):
            assert _get_watch_dir() == Path("/data/drop")

    def test_get_migrations_dir_default(self, migrations_dir):
        with patch.dict("os.environ", {}, clear=True):
            assert _get_migrations_dir().resolve() == migrations_dir.resolve()
