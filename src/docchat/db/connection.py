"""Opening the docchat SQLite file.

Every connection has sqlite-vec loaded (``vec_distance_cosine``), foreign
keys enforced, and WAL journaling, so searches keep reading while another
document's chunks are being written.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import sqlite_vec

_PRAGMAS = (
    "PRAGMA foreign_keys = ON",
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = NORMAL",
)


class Database:
    """Connection factory for one database file.

    ``with Database(path) as conn:`` yields a connection that is closed on
    exit; the vector store instead calls :meth:`connect` once per operation.

    Args:
        db_path: SQLite file, created on first connect.
        timeout: Seconds a connection waits on a locked file before failing.
    """

    def __init__(self, db_path: Path | str, timeout: float = 10.0) -> None:
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        try:
            conn.enable_load_extension(True)
            sqlite_vec.load(conn)
            conn.enable_load_extension(False)
            for pragma in _PRAGMAS:
                conn.execute(pragma)
        except sqlite3.Error:
            conn.close()
            raise
        conn.row_factory = sqlite3.Row
        return conn

    def __enter__(self) -> sqlite3.Connection:
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *exc_info: object) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
