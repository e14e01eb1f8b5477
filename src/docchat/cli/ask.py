"""docchat ask: answer one question over a user's selected documents."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from docchat.chat.messages import ChatMessage
from docchat.chat.session import ChatSession
from docchat.cli.context import open_services
from docchat.cli.errors import (
    err_document_not_found,
    err_document_not_ready,
    err_no_documents_selected,
    err_store,
    err_turn_failed,
)
from docchat.errors import DocumentNotReadyError, ScopeViolation, TurnFailed, VectorStoreError
from docchat.services import Services

console = Console()


def ask_cmd(
    question: Annotated[str, typer.Argument(help="Question to ask.")],
    user: Annotated[
        str,
        typer.Option("--user", "-u", help="User asking the question."),
    ],
    document: Annotated[
        list[str] | None,
        typer.Option("--document", "-d", help="Document id to search (repeatable)."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .docchat.db (default: store.path from config)."),
    ] = None,
) -> None:
    """Ask a single question and print the answer with its sources."""
    document_ids = document or []
    if not document_ids:
        console.print(err_no_documents_selected())
        raise typer.Exit(1)

    services = open_services(console, db)
    session = open_session_or_exit(services, user, document_ids)

    try:
        answer = asyncio.run(session.ask(question))
    except TurnFailed as exc:
        console.print(err_turn_failed(str(exc.__cause__) if exc.__cause__ else None))
        raise typer.Exit(1)
    except (DocumentNotReadyError, ScopeViolation) as exc:
        _print_selection_error(exc, services, user, document_ids)
        raise typer.Exit(1)

    print_answer(answer)


def open_session_or_exit(services: Services, user: str, document_ids: list[str]) -> ChatSession:
    """Open a session, turning selection and store errors into messages and exit code 1."""
    try:
        return asyncio.run(services.open_session(user, document_ids))
    except (DocumentNotReadyError, ScopeViolation) as exc:
        _print_selection_error(exc, services, user, document_ids)
        raise typer.Exit(1)
    except VectorStoreError as exc:
        console.print(err_store(str(exc)))
        raise typer.Exit(1)


def _print_selection_error(
    exc: DocumentNotReadyError | ScopeViolation,
    services: Services,
    user: str,
    document_ids: list[str],
) -> None:
    if isinstance(exc, DocumentNotReadyError):
        console.print(err_document_not_ready(exc.document_id, exc.status))
        return
    try:
        missing = _first_unavailable(services, user, document_ids)
    except VectorStoreError:
        missing = ", ".join(document_ids)
    console.print(err_document_not_found(missing, user))


def print_answer(answer: ChatMessage) -> None:
    console.print(f"\n{answer.content}\n")
    if answer.sources:
        console.print("[dim]Sources:[/]")
        for number, passage in enumerate(answer.sources, start=1):
            name = Path(passage.source).name or passage.document_id
            console.print(
                f"  [dim][{number}] {name}, part {passage.sequence_index + 1} "
                f"(similarity {passage.similarity_score:.2f})[/]"
            )


def _first_unavailable(services: Services, user: str, document_ids: list[str]) -> str:
    async def _find() -> str:
        for document_id in sorted(set(document_ids)):
            document = await services.store.get_document(document_id)
            if document is None or document.owner_user_id != user:
                return document_id
        return ", ".join(document_ids)

    return asyncio.run(_find())
