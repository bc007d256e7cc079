"""
Exception types shared across qcli.
"""
from typing import Optional


class QError(Exception):
    """Base class for all qcli errors."""


class BackendError(QError):
    """The agent backend failed while producing the message stream."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class StoreUnavailableError(QError):
    """The session database could not be opened."""


class SessionNotFoundError(QError, KeyError):
    """A session id does not exist in the store."""

    def __init__(self, session_id: str) -> None:
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f"Session not found: {self.session_id}"


class ConfigError(QError):
    """A configuration file could not be loaded."""
