"""New session command for qcli."""
from typing import Any

from ..base import SlashCommand, CommandResult


class NewCommand(SlashCommand):
    """Start a fresh conversation."""

    name = "new"
    description = "Start a new session"
    aliases = ["reset"]

    def run(self, args: str = "", **kwargs: Any) -> CommandResult:
        """Execute new session command."""
        repl = kwargs.get("repl")
        if repl is None:
            return CommandResult.error("/new only works in interactive mode")
        repl.reset()
        return CommandResult.success("Started a new session")
