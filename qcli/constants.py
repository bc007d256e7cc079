"""
Constants and configuration defaults for qcli.
"""
import os
import sys
from pathlib import Path
from typing import Final

APP_NAME: Final[str] = "q"
APP_VERSION: Final[str] = "0.1.0"
APP_DESCRIPTION: Final[str] = "The shell's quiet companion - a terminal front-end for Claude"


def _default_data_dir() -> Path:
    """Platform data directory for the session database and logs."""
    override = os.environ.get("Q_DATA_DIR")
    if override:
        return Path(override).expanduser()
    home = Path.home()
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / "q"
    xdg_data = os.environ.get("XDG_DATA_HOME")
    return (Path(xdg_data) if xdg_data else home / ".local" / "share") / "q"


CONFIG_DIR: Final[Path] = Path.home() / ".config" / "q"
CONFIG_FILE: Final[Path] = CONFIG_DIR / "config.json"
RC_FILE_NAME: Final[str] = ".qrc"
DATA_DIR: Final[Path] = _default_data_dir()
HISTORY_DB: Final[Path] = DATA_DIR / "sessions.db"
LOG_FILE: Final[Path] = DATA_DIR / "q.log"

DEFAULT_MODEL: Final[str] = "sonnet"
DEFAULT_MAX_INPUT_SIZE: Final[int] = 100_000

MODEL_MAP: Final[dict] = {
    "sonnet": "claude-sonnet-4-20250514",
    "opus": "claude-opus-4-20250514",
    "haiku": "claude-haiku-3-5-20241022",
}

# Tool groups
READ_ONLY_TOOLS: Final[tuple] = ("Read", "Glob", "Grep")
APPROVAL_REQUIRED_TOOLS: Final[tuple] = ("Bash", "Write", "Edit", "MultiEdit", "NotebookEdit")
INTERACTIVE_TOOLS: Final[tuple] = ("Read", "Glob", "Grep", "Bash")
AGENT_TOOLS: Final[tuple] = INTERACTIVE_TOOLS + ("Write", "Edit")
KNOWN_TOOLS: Final[tuple] = READ_ONLY_TOOLS + APPROVAL_REQUIRED_TOOLS + (
    "Task",
    "TodoWrite",
    "WebFetch",
    "WebSearch",
    "BashOutput",
    "KillShell",
)

# Exit codes
EXIT_OK: Final[int] = 0
EXIT_FAILURE: Final[int] = 1
EXIT_INTERRUPTED: Final[int] = 130

SEPARATOR_WIDTH: Final[int] = 50
HR_WIDTH: Final[int] = 80
TITLE_LENGTH: Final[int] = 50
RECENT_SESSIONS_LIMIT: Final[int] = 10
