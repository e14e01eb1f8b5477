"""Tests for docchat init."""

from __future__ import annotations

import sqlite3

from typer.testing import CliRunner

from docchat.cli.main import app
from docchat.db.schema import CURRENT_VERSION, schema_version

runner = CliRunner()


def test_init_creates_db_and_configs(cli_project) -> None:
    project = cli_project.path / "proj"
    result = runner.invoke(app, ["init", str(project)])

    assert result.exit_code == 0, result.output
    assert (project / ".docchat.db").exists()
    assert (project / "docchat.yaml").exists()
    assert (cli_project.path / "home" / "config.yaml").exists()
    assert "Next steps" in result.output


def test_init_db_has_current_schema(cli_project) -> None:
    project = cli_project.path / "proj"
    runner.invoke(app, ["init", str(project)])

    conn = sqlite3.connect(project / ".docchat.db")
    try:
        version = schema_version(conn)
    finally:
        conn.close()
    assert version == CURRENT_VERSION


def test_init_keeps_existing_project_config(cli_project) -> None:
    before = (cli_project.path / "docchat.yaml").read_text(encoding="utf-8")
    result = runner.invoke(app, ["init"])

    assert result.exit_code == 0, result.output
    assert (cli_project.path / "docchat.yaml").read_text(encoding="utf-8") == before


def test_init_twice_is_idempotent(cli_project) -> None:
    runner.invoke(app, ["init"])
    result = runner.invoke(app, ["init"])

    assert result.exit_code == 0, result.output
    assert "already exists" in result.output
