"""Sessions command for qcli."""
from typing import Any

from ..base import SlashCommand, CommandResult


class SessionsCommand(SlashCommand):
    """List recent sessions."""

    name = "sessions"
    description = "List recent sessions"
    aliases = ["history"]
    usage = "[limit]"

    def run(self, args: str = "", **kwargs: Any) -> CommandResult:
        """Execute sessions command."""
        from ...constants import RECENT_SESSIONS_LIMIT
        from ...history import get_session_store
        from ...modes.sessions import show_sessions

        limit = RECENT_SESSIONS_LIMIT
        if args.strip():
            if not args.strip().isdigit() or int(args) < 1:
                return CommandResult.error(f"Invalid limit: {args.strip()}")
            limit = int(args)

        store = kwargs["store"] if "store" in kwargs else get_session_store()
        if store is None:
            return CommandResult.error("Session history is unavailable")
        repl = kwargs.get("repl")
        console = repl.console if repl is not None else None
        count = show_sessions(store, console=console, limit=limit)
        return CommandResult.success(data={"count": count})
