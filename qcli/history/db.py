"""
SQLite storage for qcli sessions.

Owns the connection, the schema and its version stamp. Query helpers are
deliberately thin; the session store composes the SQL.
"""
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from ..constants import HISTORY_DB


logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# Version is tracked in PRAGMA user_version.
SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    backend_handle TEXT,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL,
    model TEXT NOT NULL,
    total_tokens INTEGER DEFAULT 0,
    total_cost REAL DEFAULT 0.0,
    cwd TEXT,
    title TEXT
);

CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    tokens INTEGER,
    timestamp REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_id);
CREATE INDEX IF NOT EXISTS idx_sessions_updated ON sessions(updated_at DESC);
"""


class Database:
    """
    Single shared connection to the session database.

    The file and its parent directory are created on first use. Foreign
    keys are switched on per connection so deleting a session removes its
    messages.
    """

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self._db_path = Path(db_path) if db_path else HISTORY_DB
        self._connection: Optional[sqlite3.Connection] = None
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._create_schema()

    @property
    def path(self) -> Path:
        return self._db_path

    @property
    def connection(self) -> sqlite3.Connection:
        if self._connection is None:
            conn = sqlite3.connect(self._db_path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA journal_mode = WAL")
            self._connection = conn
        return self._connection

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run several statements atomically; rolls back on any error."""
        conn = self.connection
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def _create_schema(self) -> None:
        with self.transaction() as conn:
            version = conn.execute("PRAGMA user_version").fetchone()[0]
            conn.executescript(SCHEMA)
            if version < SCHEMA_VERSION:
                if version:
                    logger.info("Upgrading session schema v%d -> v%d", version, SCHEMA_VERSION)
                conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")

    def execute(self, query: str, params: tuple = ()) -> sqlite3.Cursor:
        """
        Execute one write statement and commit it.

        Args:
            query: SQL with ``?`` placeholders
            params: Values for the placeholders

        Returns:
            The cursor, for ``rowcount`` and ``lastrowid``
        """
        with self.transaction() as conn:
            return conn.execute(query, params)

    def fetch_one(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        return self.connection.execute(query, params).fetchone()

    def fetch_all(self, query: str, params: tuple = ()) -> list[sqlite3.Row]:
        return self.connection.execute(query, params).fetchall()

    def insert(self, table: str, row: dict) -> int:
        """Insert ``row`` (column -> value) and return its rowid."""
        columns = ", ".join(row)
        marks = ", ".join("?" for _ in row)
        cursor = self.execute(f"INSERT INTO {table} ({columns}) VALUES ({marks})", tuple(row.values()))
        return cursor.lastrowid

    def update(self, table: str, values: dict, where: str, where_params: tuple = ()) -> int:
        """Set ``values`` on rows matching ``where``; returns the affected row count."""
        assignments = ", ".join(f"{column} = ?" for column in values)
        cursor = self.execute(
            f"UPDATE {table} SET {assignments} WHERE {where}",
            tuple(values.values()) + where_params,
        )
        return cursor.rowcount

    def delete(self, table: str, where: str, where_params: tuple = ()) -> int:
        return self.execute(f"DELETE FROM {table} WHERE {where}", where_params).rowcount

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None


_database: Optional[Database] = None


def get_database() -> Database:
    """Process-wide database, opened on first call."""
    global _database
    if _database is None:
        _database = Database()
    return _database


def close_database() -> None:
    global _database
    if _database is not None:
        _database.close()
        _database = None
