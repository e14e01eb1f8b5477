"""docchat rich error messages: actionable feedback.

Every error shown to the user names what went wrong and the action that
fixes it.

Usage:
    from docchat.cli.errors import err_no_db
    console.print(err_no_db(".docchat.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

TURN_FAILED_MESSAGE = "Couldn't answer, try again."


def err_no_db(db_path: str = ".docchat.db") -> str:
    """No database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  docchat init"
    )


def err_no_api_key(detail: str) -> str:
    """A provider key is missing from the environment.

    Example:
        API key not found for provider 'openai'. Set the OPENAI_API_KEY environment variable.
    """
    return (
        f"[red]Error:[/] {detail}\n"
        "  API keys are read from environment variables only, e.g.\n"
        "    export OPENAI_API_KEY=sk-..."
    )


def err_config(detail: str) -> str:
    return f"[red]Error:[/] Invalid configuration.\n  {detail}"


def err_no_sources() -> str:
    return "[red]Error:[/] No --source specified. Use --source PATH (repeatable)."


def err_no_documents_selected() -> str:
    return (
        "[red]Error:[/] No documents selected. Use --document ID (repeatable).\n"
        "  Run:  docchat documents --user <user>  to list document ids."
    )


def err_document_not_found(document_id: str, user_id: str) -> str:
    """Unknown document, or one that belongs to another user (indistinguishable on purpose)."""
    return (
        f"[red]Error:[/] Document '{document_id}' not found for user '{user_id}'.\n"
        f"  Run:  docchat documents --user {user_id}"
    )


def err_document_not_ready(document_id: str, status: str) -> str:
    if status == "error":
        action = "Re-ingest the source:  docchat ingest --user <user> --source <path>"
    else:
        action = "Wait for ingestion to finish, then try again."
    return (
        f"[red]Error:[/] Document '{document_id}' is not ready (status: {status}).\n"
        f"  {action}"
    )


def err_turn_failed(detail: str | None = None) -> str:
    message = f"[red]{TURN_FAILED_MESSAGE}[/]"
    if detail:
        message += f"\n  [dim]{detail}[/]"
    return message


def err_store(detail: str) -> str:
    return (
        f"[red]Error:[/] Database operation failed.\n  {detail}\n"
        "  Check that the database file is readable and not locked by another process."
    )
