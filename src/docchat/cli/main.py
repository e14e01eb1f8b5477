"""docchat CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from docchat.cli.ask import ask_cmd
from docchat.cli.chat import chat_cmd
from docchat.cli.documents import documents_cmd
from docchat.cli.ingest import ingest_cmd
from docchat.cli.init import init_cmd
from docchat.cli.remove import remove_cmd
from docchat.logging_setup import configure_logging, resolve_level


def _installed_version() -> str:
    try:
        return importlib.metadata.version("docchat")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"docchat {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="docchat",
    help=(
        "docchat: chat with your own documents.\n\n"
        "  docchat ingest  Extract, chunk and embed documents for a user.\n"
        "  docchat chat    Ask follow-up questions grounded in selected documents."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Debug logging to stderr."),
    ] = False,
) -> None:
    """docchat: chat with your own documents."""
    configure_logging(resolve_level(verbose))


app.command("init")(init_cmd)
app.command("ingest")(ingest_cmd)
app.command("documents")(documents_cmd)
app.command("remove")(remove_cmd)
app.command("ask")(ask_cmd)
app.command("chat")(chat_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed docchat version."""
    typer.echo(f"docchat {_installed_version()}")


if __name__ == "__main__":
    app()
