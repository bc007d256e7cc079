"""History and session storage for qcli."""
from .db import Database, close_database, get_database
from .session_store import Message, Session, SessionStore, SessionSummary, get_session_store

__all__ = [
    'Database', 'get_database', 'close_database',
    'Message', 'Session', 'SessionSummary', 'SessionStore', 'get_session_store',
]
