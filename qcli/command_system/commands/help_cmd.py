"""/help for the qcli REPL."""
from typing import Any

from ..base import SlashCommand, CommandResult


class HelpCommand(SlashCommand):
    """List the slash commands, or describe one of them."""

    name = "help"
    description = "Show available slash commands"
    aliases = ["h", "?"]
    usage = "[command]"

    def run(self, args: str = "", **kwargs: Any) -> CommandResult:
        from ..registry import get_command_registry

        registry = kwargs.get("registry") or get_command_registry()
        topic = args.strip().lstrip("/")

        if topic:
            text = registry.get_help(topic)
            if text is None:
                return CommandResult.error(f"Unknown command: {topic}")
            return CommandResult.success(text)

        lines = ["## Commands", ""]
        lines += [f"- `/{entry['name']}` {entry['description']}" for entry in registry.list_commands()]
        lines += [
            "",
            "Anything else is sent to the agent. "
            "**Ctrl-C** interrupts the running turn, **Ctrl-D** exits.",
        ]
        return CommandResult.success("\n".join(lines))
