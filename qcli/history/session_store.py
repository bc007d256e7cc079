"""
Conversation session storage for qcli.
Manages persistent storage and retrieval of sessions and their messages.
"""
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from .db import Database, get_database
from ..errors import SessionNotFoundError
from ..utils import generate_session_id


VALID_ROLES = ("user", "assistant", "system")


@dataclass
class Message:
    """Represents a single stored message."""
    role: str
    content: str
    timestamp: float
    tokens: Optional[int] = None
    id: Optional[int] = None


@dataclass
class Session:
    """Represents a conversation session with its messages."""
    id: str
    model: str
    created_at: float
    updated_at: float
    total_tokens: int = 0
    total_cost: float = 0.0
    backend_handle: Optional[str] = None
    cwd: Optional[str] = None
    title: Optional[str] = None
    messages: list[Message] = field(default_factory=list)


@dataclass
class SessionSummary:
    """Row of the recent-sessions listing."""
    id: str
    title: Optional[str]
    model: str
    message_count: int
    updated_at: float
    total_cost: float


class SessionStore:
    """
    Manages persistent storage of sessions.

    Lookups of unknown ids return None/False instead of raising; only
    appending a message to a session that does not exist is an error.
    """

    def __init__(
        self,
        db: Optional[Database] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize session store.

        Args:
            db: Optional database instance
            clock: Time source for created/updated timestamps
        """
        self._db = db or get_database()
        self._clock = clock

    def create_session(self, model: str, cwd: Optional[str] = None) -> Session:
        """
        Create a new session.

        Args:
            model: Model identifier
            cwd: Working directory the session was started in

        Returns:
            New Session
        """
        now = self._clock()
        session = Session(
            id=self._new_id(),
            model=model,
            created_at=now,
            updated_at=now,
            cwd=cwd,
        )

        self._db.insert("sessions", {
            "id": session.id,
            "created_at": session.created_at,
            "updated_at": session.updated_at,
            "model": session.model,
            "cwd": session.cwd,
        })
        return session

    def _new_id(self) -> str:
        """Generate an id that is not already taken."""
        while True:
            session_id = generate_session_id()
            if not self.exists(session_id):
                return session_id

    def exists(self, session_id: str) -> bool:
        """Check whether a session id is present."""
        row = self._db.fetch_one("SELECT 1 FROM sessions WHERE id = ?", (session_id,))
        return row is not None

    def add_message(
        self,
        session_id: str,
        role: str,
        content: str,
        tokens: Optional[int] = None,
    ) -> Message:
        """
        Append a message to a session and touch its updated_at.

        Args:
            session_id: Session ID
            role: 'user', 'assistant' or 'system'
            content: Message content
            tokens: Optional token count

        Returns:
            The stored Message

        Raises:
            ValueError: If the role is not recognized
            SessionNotFoundError: If the session does not exist
        """
        if role not in VALID_ROLES:
            raise ValueError(f"Invalid message role: {role}")
        if not self.exists(session_id):
            raise SessionNotFoundError(session_id)

        now = self._clock()
        message = Message(role=role, content=content, timestamp=now, tokens=tokens)
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO messages (session_id, role, content, tokens, timestamp) "
                "VALUES (?, ?, ?, ?, ?)",
                (session_id, role, content, tokens, now),
            )
            conn.execute(
                "UPDATE sessions SET updated_at = ? WHERE id = ?",
                (now, session_id),
            )
        message.id = cursor.lastrowid
        return message

    def update_stats(
        self,
        session_id: str,
        tokens: int,
        cost: float,
        title: Optional[str] = None,
    ) -> bool:
        """
        Add to a session's running token and cost totals.

        The title is only written when the session has none yet.

        Args:
            session_id: Session ID
            tokens: Tokens to add
            cost: Cost in USD to add
            title: Optional title for an untitled session

        Returns:
            True if the session exists
        """
        now = self._clock()
        if title:
            cursor = self._db.execute(
                "UPDATE sessions SET total_tokens = total_tokens + ?, "
                "total_cost = total_cost + ?, updated_at = ?, "
                "title = COALESCE(title, ?) WHERE id = ?",
                (tokens, cost, now, title, session_id),
            )
        else:
            cursor = self._db.execute(
                "UPDATE sessions SET total_tokens = total_tokens + ?, "
                "total_cost = total_cost + ?, updated_at = ? WHERE id = ?",
                (tokens, cost, now, session_id),
            )
        return cursor.rowcount > 0

    def set_backend_handle(self, session_id: str, handle: str) -> bool:
        """
        Attach the backend conversation handle used for resume.

        Returns:
            True if the session exists
        """
        rows = self._db.update(
            "sessions",
            {"backend_handle": handle},
            "id = ?",
            (session_id,),
        )
        return rows > 0

    def get_session(self, session_id: str) -> Optional[Session]:
        """
        Load a session and its messages.

        Args:
            session_id: Session ID to load

        Returns:
            Session or None if not found
        """
        row = self._db.fetch_one(
            "SELECT * FROM sessions WHERE id = ?",
            (session_id,)
        )

        if not row:
            return None

        session = Session(
            id=row["id"],
            model=row["model"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            total_tokens=row["total_tokens"] or 0,
            total_cost=row["total_cost"] or 0.0,
            backend_handle=row["backend_handle"],
            cwd=row["cwd"],
            title=row["title"],
        )

        message_rows = self._db.fetch_all(
            "SELECT id, role, content, tokens, timestamp FROM messages "
            "WHERE session_id = ? ORDER BY timestamp ASC, id ASC",
            (session_id,)
        )

        for msg_row in message_rows:
            session.messages.append(Message(
                id=msg_row["id"],
                role=msg_row["role"],
                content=msg_row["content"],
                timestamp=msg_row["timestamp"],
                tokens=msg_row["tokens"],
            ))

        return session

    def get_last_session(self) -> Optional[Session]:
        """Load the most recently updated session, if any."""
        row = self._db.fetch_one(
            "SELECT id FROM sessions ORDER BY updated_at DESC, rowid DESC LIMIT 1"
        )
        if not row:
            return None
        return self.get_session(row["id"])

    def list_sessions(self, limit: int = 10) -> list[SessionSummary]:
        """
        List the most recently updated sessions.

        Args:
            limit: Maximum number of sessions

        Returns:
            Summaries ordered newest first
        """
        rows = self._db.fetch_all("""
            SELECT s.id, s.title, s.model, COUNT(m.id) AS message_count,
                   s.updated_at, s.total_cost
            FROM sessions s
            LEFT JOIN messages m ON s.id = m.session_id
            GROUP BY s.id
            ORDER BY s.updated_at DESC, s.rowid DESC
            LIMIT ?
        """, (limit,))

        return [
            SessionSummary(
                id=row["id"],
                title=row["title"],
                model=row["model"],
                message_count=row["message_count"],
                updated_at=row["updated_at"],
                total_cost=row["total_cost"] or 0.0,
            )
            for row in rows
        ]

    def delete_session(self, session_id: str) -> bool:
        """
        Delete a session; its messages go with it.

        Args:
            session_id: Session ID to delete

        Returns:
            True if a session was deleted
        """
        rows = self._db.delete("sessions", "id = ?", (session_id,))
        return rows > 0


_session_store: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    """Get the global session store instance."""
    global _session_store
    if _session_store is None:
        _session_store = SessionStore()
    return _session_store
