"""docchat remove: delete one of a user's documents and all its chunks.

Usage:
  docchat remove --user alice --document 3f2c...
  docchat remove --user alice --document 3f2c... --yes
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from docchat.cli.context import open_services
from docchat.cli.errors import err_document_not_found, err_store
from docchat.errors import VectorStoreError

console = Console()


def remove_cmd(
    user: Annotated[
        str,
        typer.Option("--user", "-u", help="Owner of the document."),
    ],
    document: Annotated[
        str,
        typer.Option("--document", "-d", help="Document id to remove."),
    ],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .docchat.db (default: store.path from config)."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove a document and its chunks."""
    services = open_services(console, db, need_keys=False)
    store = services.store

    try:
        existing = asyncio.run(store.get_document(document))
    except VectorStoreError as exc:
        console.print(err_store(str(exc)))
        raise typer.Exit(1)
    # Someone else's document is reported exactly like a missing one.
    if existing is None or existing.owner_user_id != user:
        console.print(err_document_not_found(document, user))
        raise typer.Exit(1)

    chunk_count = asyncio.run(store.count_chunks(document))
    console.print(f"\nRemove document: [bold]{existing.name}[/] ({document})")
    console.print(f"  Status: {existing.status.value}  |  Chunks: {chunk_count}")

    if not yes:
        if not typer.confirm("Confirm removal?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

    try:
        removed = asyncio.run(store.delete_document(user, document))
    except VectorStoreError as exc:
        console.print(err_store(str(exc)))
        raise typer.Exit(1)
    console.print(f"\n[green]✓[/] Removed: {existing.name}")
    console.print(f"  {removed} chunks deleted")
