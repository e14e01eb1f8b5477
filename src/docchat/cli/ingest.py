"""docchat ingest: extract, chunk, embed and store documents for one user.

Sources are files or directories; a directory expands to the supported files
it contains (``--recursive`` for subdirectories). Each document runs its own
pipeline and several run at once (``ingest.concurrency``). A failing document
is reported and marked ``error``; the others continue.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from docchat.cli.context import open_services
from docchat.cli.errors import err_no_sources
from docchat.ingest.extract import SUPPORTED_EXTS
from docchat.ingest.pipeline import OUTCOME_ERROR, OUTCOME_UNCHANGED, IngestResult

console = Console()


def ingest_cmd(
    user: Annotated[
        str,
        typer.Option("--user", "-u", help="Owner of the ingested documents."),
    ],
    source: Annotated[
        list[str] | None,
        typer.Option("--source", "-s", help="File or directory to ingest (repeatable)."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .docchat.db (default: store.path from config)."),
    ] = None,
    recursive: Annotated[
        bool,
        typer.Option("--recursive", help="Recurse into subdirectories."),
    ] = False,
) -> None:
    """Ingest one or more documents for a user."""
    sources = source or []
    if not sources:
        console.print(err_no_sources())
        raise typer.Exit(1)

    paths = _expand_sources(sources, recursive=recursive)
    if not paths:
        console.print("[yellow]No supported files found to ingest.[/]")
        raise typer.Exit(0)

    services = open_services(console, db, chat=False, must_exist=False)
    results = asyncio.run(services.ingestor.ingest_many(user, paths))

    for result in results:
        _print_result(result)

    failed = sum(1 for r in results if not r.ok)
    console.print(
        f"\n{len(results) - failed} of {len(results)} documents ready for user '{user}'."
    )
    if failed:
        raise typer.Exit(1)


def _print_result(result: IngestResult) -> None:
    name = Path(result.source_path).name
    if result.outcome == OUTCOME_ERROR:
        console.print(f"  [red]✗[/] {name}: {result.error}")
    elif result.outcome == OUTCOME_UNCHANGED:
        console.print(
            f"  [dim]↷ {name}: unchanged, {result.chunk_count} chunks already stored "
            f"({result.document_id})[/]"
        )
    else:
        console.print(
            f"  [green]✓[/] {name}: {result.chunk_count} chunks ({result.document_id})"
        )


# ------------------------------------------------------------------
# Source expansion
# ------------------------------------------------------------------


def _expand_sources(sources: list[str], recursive: bool) -> list[str]:
    """Resolve sources to absolute file paths, expanding directories.

    Missing files are passed through so the pipeline reports them per document.
    """
    expanded: list[str] = []
    for src in sources:
        path = Path(src).expanduser()
        if path.is_dir():
            pattern = "**/*" if recursive else "*"
            expanded.extend(
                str(p.resolve())
                for p in sorted(path.glob(pattern))
                if p.is_file() and p.suffix.lower() in SUPPORTED_EXTS
            )
        else:
            expanded.append(str(path.resolve()))
    return list(dict.fromkeys(expanded))
