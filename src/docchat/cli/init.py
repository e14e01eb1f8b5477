"""docchat init: create the database and configuration templates.

Creates:
  .docchat.db              document and chunk store with schema
  docchat.yaml             per-project config template (left alone if present)
  ~/.docchat/config.yaml   global model config (created once, mode 0o600)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from docchat.config import ensure_global_config
from docchat.db.connection import Database
from docchat.db.schema import initialize

console = Console()

_DEFAULT_PROJECT_DIR = Path(".")
_DB_NAME = ".docchat.db"
_PROJECT_CONFIG = "docchat.yaml"

_PROJECT_TEMPLATE = """\
# docchat project configuration. Values here override ~/.docchat/config.yaml.
# API keys are read from environment variables only.

# embedding:
#   model: openai/text-embedding-3-small
#   dimensions: 1536
#   batch_size: 64
#
# generation:
#   model: openai/gpt-4o-mini
#   max_tokens: 1024
#   context_token_budget: 6000
#
# rephrase:
#   model: openai/gpt-4o-mini
#
# retrieval:
#   top_k: 3
#
# chunking:
#   chunk_size: 1000
#   chunk_overlap: 200
#
# ingest:
#   concurrency: 4
"""


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = _DEFAULT_PROJECT_DIR,
) -> None:
    """Create the docchat database and config templates."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    db_path = project_dir / _DB_NAME
    existed = db_path.exists()
    _create_database(db_path)
    if existed:
        console.print(f"  [yellow]↻[/] {_DB_NAME} already exists; schema is up to date")
    else:
        console.print(f"  [green]✓[/] {_DB_NAME}")

    config_path = project_dir / _PROJECT_CONFIG
    if not config_path.exists():
        config_path.write_text(_PROJECT_TEMPLATE, encoding="utf-8")
        console.print(f"  [green]✓[/] {_PROJECT_CONFIG}")

    cfg_path = ensure_global_config()
    console.print(f"  [green]✓[/] {cfg_path} (global config)")

    console.print("\nNext steps:")
    console.print("  1. docchat ingest --user <user> --source <file>")
    console.print("  2. docchat documents --user <user>")
    console.print("  3. docchat chat --user <user> --document <id>")


def _create_database(db_path: Path) -> None:
    with Database(db_path) as conn:
        initialize(conn)
