"""Shared setup for commands: config loading and service construction."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from docchat.cli.errors import err_config, err_no_api_key, err_no_db
from docchat.config import ConfigError, DocChatConfig, load_config
from docchat.services import Services, build_services, check_api_keys


def load_cli_config(console: Console) -> DocChatConfig:
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)


def resolve_db(db: Path | None, cfg: DocChatConfig) -> Path:
    """``--db`` wins over ``store.path``."""
    return db if db is not None else Path(cfg.store.path)


def open_services(
    console: Console,
    db: Path | None,
    *,
    chat: bool = True,
    need_keys: bool = True,
    must_exist: bool = True,
) -> Services:
    """Load config, check the database and provider keys, and build services.

    Exits with code 1 and an actionable message when any check fails.
    """
    cfg = load_cli_config(console)
    db_path = resolve_db(db, cfg)
    if must_exist and not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    if need_keys:
        try:
            check_api_keys(cfg, chat=chat)
        except EnvironmentError as exc:
            console.print(err_no_api_key(str(exc)))
            raise typer.Exit(1)
    return build_services(cfg, db_path)
