"""
Slash command contract for the qcli REPL.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, List


class CommandStatus(Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class CommandResult:
    """
    What a slash command hands back to the REPL.

    ``message`` is markdown shown to the user; ``should_exit`` ends the REPL
    after the message is shown.
    """
    status: CommandStatus = CommandStatus.SUCCESS
    message: str = ""
    data: Any = None
    should_exit: bool = False

    @property
    def is_success(self) -> bool:
        return self.status is CommandStatus.SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status is CommandStatus.ERROR

    @classmethod
    def success(cls, message: str = "", data: Any = None) -> "CommandResult":
        return cls(message=message, data=data)

    @classmethod
    def error(cls, message: str) -> "CommandResult":
        return cls(status=CommandStatus.ERROR, message=message)

    @classmethod
    def exit(cls, message: str = "") -> "CommandResult":
        return cls(message=message, should_exit=True)


class SlashCommand(ABC):
    """
    A ``/name`` command typed at the REPL prompt.

    Subclasses set ``name``, ``description`` and optionally ``aliases`` and
    ``usage``. The REPL passes its state as keyword arguments: ``repl`` (the
    running ``InteractiveSession``), ``store`` (the ``SessionStore``) and
    ``registry``.
    """

    name: str = ""
    description: str = ""
    aliases: List[str] = []
    usage: str = ""

    def __init__(self) -> None:
        if not self.name:
            self.name = type(self).__name__.lower().removesuffix("command")

    @abstractmethod
    def run(self, args: str = "", **kwargs: Any) -> CommandResult:
        """
        Execute the command.

        Args:
            args: Everything after the command name, unparsed
            **kwargs: REPL state (repl, store, registry)

        Returns:
            CommandResult for the REPL to display
        """

    def get_help(self) -> str:
        """Markdown help for ``/help <name>``."""
        lines = [f"**/{self.name}** - {self.description}"]
        if self.usage:
            lines.append(f"\n**Usage:** `/{self.name} {self.usage}`")
        if self.aliases:
            lines.append("\n**Aliases:** " + ", ".join(f"/{alias}" for alias in self.aliases))
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"<SlashCommand /{self.name}>"
