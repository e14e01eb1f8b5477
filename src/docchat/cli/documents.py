"""docchat documents: list a user's documents with their ingestion status."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from docchat.cli.context import open_services
from docchat.cli.errors import err_store
from docchat.db.models import Document, DocumentStatus
from docchat.db.store import VectorStore
from docchat.errors import VectorStoreError

console = Console()

_STATUS_STYLE = {
    DocumentStatus.READY: "[green]ready[/]",
    DocumentStatus.PROCESSING: "[yellow]processing[/]",
    DocumentStatus.ERROR: "[red]error[/]",
}


def documents_cmd(
    user: Annotated[
        str,
        typer.Option("--user", "-u", help="Whose documents to list."),
    ],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .docchat.db (default: store.path from config)."),
    ] = None,
) -> None:
    """List a user's documents."""
    services = open_services(console, db, need_keys=False)
    try:
        rows = asyncio.run(_collect(services.store, user))
    except VectorStoreError as exc:
        console.print(err_store(str(exc)))
        raise typer.Exit(1)

    if not rows:
        console.print(f"[dim]No documents for user '{user}'.[/]")
        return

    table = Table(title=f"Documents of {user}", show_lines=False)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Chunks", justify="right")
    table.add_column("Created", style="dim")

    for document, chunk_count in rows:
        status = _STATUS_STYLE[document.status]
        if document.error:
            status += f"\n[dim]{document.error}[/]"
        table.add_row(
            document.id,
            document.name,
            status,
            str(chunk_count),
            (document.created_at or "")[:16],
        )
    console.print(table)


async def _collect(store: VectorStore, user: str) -> list[tuple[Document, int]]:
    documents = await store.list_documents(user)
    return [(d, await store.count_chunks(d.id)) for d in documents]
