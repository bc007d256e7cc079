"""
Recent sessions listing (``q --sessions`` and ``/sessions``).
"""
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..constants import RECENT_SESSIONS_LIMIT
from ..history.session_store import SessionStore, SessionSummary
from ..rich_ui.theme import to_rich_theme
from ..utils import format_cost, format_relative_time, truncate_string


def sessions_table(sessions: list[SessionSummary], now: Optional[float] = None) -> Table:
    """
    Build the table of recent sessions.

    Args:
        sessions: Sessions, most recent first
        now: Reference time for relative timestamps

    Returns:
        Rich table, one row per session
    """
    table = Table(title="Recent sessions", title_style="primary", title_justify="left",
                  header_style="muted", box=None, padding=(0, 2, 0, 0))
    table.add_column("ID", style="session.id", no_wrap=True)
    table.add_column("Title", style="session.title")
    table.add_column("Msgs", justify="right")
    table.add_column("Cost", style="cost", justify="right")
    table.add_column("Model", style="muted")
    table.add_column("Updated", style="timestamp")

    for s in sessions:
        table.add_row(
            s.id,
            escape(truncate_string(s.title, 40)) if s.title else "[muted](untitled)[/muted]",
            str(s.message_count),
            format_cost(s.total_cost),
            s.model,
            format_relative_time(s.updated_at, now),
        )
    return table


def show_sessions(
    store: SessionStore,
    console: Optional[Console] = None,
    limit: int = RECENT_SESSIONS_LIMIT,
    now: Optional[float] = None,
) -> int:
    """Print recent sessions; returns how many were listed."""
    console = console or Console(theme=to_rich_theme(), highlight=False)
    sessions = store.list_sessions(limit)

    if not sessions:
        console.print("[muted]No sessions yet[/muted]")
        return 0

    console.print()
    console.print(sessions_table(sessions, now))
    console.print()
    console.print("[muted]Resume with: q -r <id> or q -r last[/muted]")
    return len(sessions)
