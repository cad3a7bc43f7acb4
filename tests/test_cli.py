"""Tests for the command line entry points."""

import sqlite3
import sys
from pathlib import Path

import pytest

import jikji.cli as cli


def _write_config(tmp_path: Path, query: str = "SELECT count(*) FROM jobs") -> Path:
    db_path = tmp_path / "jobs.db"
    conn = sqlite3.connect(db_path)
    conn.execute("CREATE TABLE jobs (id INTEGER PRIMARY KEY)")
    conn.executemany("INSERT INTO jobs (id) VALUES (?)", [(i,) for i in range(3)])
    conn.commit()
    conn.close()

    config_path = tmp_path / "jikji.toml"
    config_path.write_text(
        f"""
title = "CLI Test"

[[databases]]
driver = "sqlite"
database = "{db_path.as_posix()}"

[[databases.metrics]]
name = "jobs.total"
type = "gauge"
frequency = "5m"
query = "{query}"
"""
    )
    return config_path


class TestHandleCheckConfig:
    """Tests for the check-config handler."""

    def test_valid_config(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        path = _write_config(tmp_path)

        assert cli.handle_check_config(path) == 0

        output = capsys.readouterr().out
        assert "'CLI Test' is valid" in output
        assert "jobs.total (gauge) every 300s" in output

    def test_run_once_prints_values(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        path = _write_config(tmp_path)

        assert cli.handle_check_config(path, run_once=True) == 0

        assert "jobs.total = 3.0" in capsys.readouterr().out

    def test_run_once_reports_failures(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        path = _write_config(tmp_path, query="SELECT count(*) FROM missing")

        assert cli.handle_check_config(path, run_once=True) == 1

        assert "jobs.total failed" in capsys.readouterr().err

    def test_invalid_config(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        path = tmp_path / "bad.toml"
        path.write_text(
            """
[[databases]]
driver = "sqlite"

[[databases.metrics]]
name = "a"
frequency = "0m"
query = "SELECT 1"
"""
        )

        assert cli.handle_check_config(path) == 1

        assert "Invalid frequency '0m'" in capsys.readouterr().err

    def test_missing_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert cli.handle_check_config(tmp_path / "missing.toml") == 1

        assert "Cannot read configuration file" in capsys.readouterr().err


class TestMain:
    """Tests for argument parsing and exit codes."""

    def test_check_config_command(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = _write_config(tmp_path)
        monkeypatch.setattr(sys, "argv", ["jikji", "check-config", str(path)])

        with pytest.raises(SystemExit) as exc_info:
            cli.main()

        assert exc_info.value.code == 0

    def test_check_config_defaults_to_config_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("CONFIG_FILE", str(_write_config(tmp_path)))
        monkeypatch.setattr(sys, "argv", ["jikji", "check-config"])

        with pytest.raises(SystemExit) as exc_info:
            cli.main()

        assert exc_info.value.code == 0

    def test_no_command_prints_help(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.setattr(sys, "argv", ["jikji"])

        with pytest.raises(SystemExit) as exc_info:
            cli.main()

        assert exc_info.value.code == 1
        assert "check-config" in capsys.readouterr().out

    def test_serve_exits_on_configuration_error(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("CONFIG_FILE", str(tmp_path / "missing.toml"))
        monkeypatch.setattr(sys, "argv", ["jikji", "serve"])

        with pytest.raises(SystemExit) as exc_info:
            cli.main()

        assert exc_info.value.code == 1
