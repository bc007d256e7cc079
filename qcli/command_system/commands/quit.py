"""Quit command for qcli."""
from typing import Any

from ..base import SlashCommand, CommandResult


class QuitCommand(SlashCommand):
    """Exit the REPL."""

    name = "quit"
    description = "Exit interactive mode"
    aliases = ["exit", "q"]

    def run(self, args: str = "", **kwargs: Any) -> CommandResult:
        """Execute quit command."""
        return CommandResult.exit()
