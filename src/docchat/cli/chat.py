"""docchat chat: interactive conversation over a user's selected documents.

Commands inside the loop:
  /quit              leave the chat
  /documents ID ...  switch to another selection (restarts the conversation context)
  /help              show these commands
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from docchat.chat.session import ChatSession
from docchat.cli.ask import open_session_or_exit, print_answer
from docchat.cli.context import open_services
from docchat.cli.errors import (
    err_document_not_found,
    err_document_not_ready,
    err_no_documents_selected,
    err_store,
    err_turn_failed,
)
from docchat.errors import DocumentNotReadyError, ScopeViolation, TurnFailed, VectorStoreError

console = Console()

_QUIT = {"/quit", "/exit"}
_HELP = "[dim]/quit to leave, /documents ID ... to switch documents, /help for this message[/]"


def chat_cmd(
    user: Annotated[
        str,
        typer.Option("--user", "-u", help="User chatting."),
    ],
    document: Annotated[
        list[str] | None,
        typer.Option("--document", "-d", help="Document id to chat about (repeatable)."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .docchat.db (default: store.path from config)."),
    ] = None,
) -> None:
    """Chat with your documents. Type /quit to leave."""
    document_ids = document or []
    if not document_ids:
        console.print(err_no_documents_selected())
        raise typer.Exit(1)

    services = open_services(console, db)
    session = open_session_or_exit(services, user, document_ids)

    console.print(
        f"[bold]Chatting about {len(session.selected_document_ids)} document(s).[/] {_HELP}"
    )
    asyncio.run(_loop(session))


async def _loop(session: ChatSession) -> None:
    while True:
        try:
            line = console.input("\n[bold cyan]you>[/] ").strip()
        except EOFError:
            break
        if not line:
            continue
        if line in _QUIT:
            break
        if line == "/help":
            console.print(_HELP)
            continue
        if line.startswith("/documents"):
            await _switch(session, line.split()[1:])
            continue

        try:
            answer = await session.ask(line)
        except TurnFailed as exc:
            console.print(err_turn_failed(str(exc.__cause__) if exc.__cause__ else None))
            continue
        except DocumentNotReadyError as exc:
            console.print(err_document_not_ready(exc.document_id, exc.status))
            console.print("[dim]Use /documents ID ... to pick other documents.[/]")
            continue
        except ScopeViolation:
            selected = ", ".join(sorted(session.selected_document_ids))
            console.print(err_document_not_found(selected, session.user_id))
            console.print("[dim]Use /documents ID ... to pick other documents.[/]")
            continue
        print_answer(answer)

    console.print("[dim]Bye.[/]")


async def _switch(session: ChatSession, document_ids: list[str]) -> None:
    if not document_ids:
        console.print(err_no_documents_selected())
        return
    try:
        await session.select_documents(document_ids)
    except DocumentNotReadyError as exc:
        console.print(err_document_not_ready(exc.document_id, exc.status))
        return
    except ScopeViolation:
        console.print(err_document_not_found(", ".join(document_ids), session.user_id))
        return
    except VectorStoreError as exc:
        console.print(err_store(str(exc)))
        return
    console.print(f"[green]✓[/] Now chatting about {len(document_ids)} document(s); context restarted.")
