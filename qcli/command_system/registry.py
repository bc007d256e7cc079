"""
Lookup table for REPL slash commands.
"""
import importlib
import inspect
import logging
import pkgutil
from typing import Dict, List, Optional

from .base import CommandResult, SlashCommand


logger = logging.getLogger(__name__)


class CommandRegistry:
    """
    Maps command names and aliases to ``SlashCommand`` instances.

    Built-ins live one per module in the ``commands`` package and are
    imported on construction; a broken built-in fails loudly.
    """

    def __init__(self, discover: bool = True) -> None:
        self._commands: Dict[str, SlashCommand] = {}
        self._aliases: Dict[str, str] = {}
        if discover:
            self._load_builtins()

    def _load_builtins(self) -> None:
        from . import commands

        for info in pkgutil.iter_modules(commands.__path__):
            if info.name.startswith("_"):
                continue
            module = importlib.import_module(f"{commands.__name__}.{info.name}")
            for _, cls in inspect.getmembers(module, inspect.isclass):
                if issubclass(cls, SlashCommand) and cls.__module__ == module.__name__:
                    self.register(cls())

    def register(self, command: SlashCommand) -> None:
        """Add ``command``; a later registration under the same name wins."""
        self._commands[command.name] = command
        for alias in command.aliases:
            self._aliases[alias] = command.name
        logger.debug("Registered /%s", command.name)

    def get(self, name: str) -> Optional[SlashCommand]:
        """Find a command by name or alias, case-insensitively."""
        key = name.lower()
        key = self._aliases.get(key, key)
        return self._commands.get(key)

    def execute(self, name: str, args: str = "", **kwargs) -> CommandResult:
        """
        Run a command by name or alias.

        Args:
            name: Command name without the leading slash
            args: Raw argument text
            **kwargs: REPL state forwarded to the command

        Returns:
            The command's result, or an error result for unknown names
        """
        command = self.get(name)
        if command is None:
            return CommandResult.error(
                f"Unknown command: /{name}. Type /help for available commands."
            )
        logger.debug("Running /%s %s", command.name, args)
        return command.run(args, **kwargs)

    def list_commands(self) -> List[dict]:
        return [
            {
                "name": command.name,
                "description": command.description,
                "aliases": list(command.aliases),
                "usage": command.usage,
            }
            for _, command in sorted(self._commands.items())
        ]

    def get_help(self, name: str) -> Optional[str]:
        command = self.get(name)
        return command.get_help() if command else None


_registry: Optional[CommandRegistry] = None


def get_command_registry() -> CommandRegistry:
    """Process-wide registry with the built-in commands loaded."""
    global _registry
    if _registry is None:
        _registry = CommandRegistry()
    return _registry
