"""Schema migrations for the docchat database: documents and their chunks."""

from __future__ import annotations

import sqlite3

# Bookkeeping table; exists before any migration runs.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    id              TEXT PRIMARY KEY,
    owner_user_id   TEXT NOT NULL,
    source_path     TEXT NOT NULL,
    status          TEXT NOT NULL DEFAULT 'processing'
                    CHECK (status IN ('processing', 'ready', 'error')),
    content_hash    TEXT NOT NULL DEFAULT '',
    error           TEXT,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    UNIQUE (owner_user_id, source_path)
);

CREATE TABLE IF NOT EXISTS chunks (
    document_id     TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    owner_user_id   TEXT NOT NULL,
    sequence_index  INTEGER NOT NULL,
    text            TEXT NOT NULL,
    source          TEXT NOT NULL DEFAULT '',
    embedding       BLOB NOT NULL,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (document_id, sequence_index)
);

CREATE INDEX IF NOT EXISTS idx_chunks_owner_document
    ON chunks (owner_user_id, document_id);

CREATE INDEX IF NOT EXISTS idx_documents_owner
    ON documents (owner_user_id);
"""

# Ordered, append-only. A released entry is never edited; add a new version.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Bring the database up to the newest version.

    Each pending migration runs in its own transaction together with its
    ``schema_version`` row, so a failure leaves the previous version intact.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()
    applied = conn.execute("SELECT COALESCE(MAX(version), 0) FROM schema_version").fetchone()[0]

    for version, sql in MIGRATIONS:
        if version <= applied:
            continue
        try:
            conn.executescript(
                f"BEGIN;\n{sql}\nINSERT INTO schema_version (version) VALUES ({int(version)});\nCOMMIT;"
            )
        except sqlite3.Error:
            if conn.in_transaction:
                conn.rollback()
            raise
