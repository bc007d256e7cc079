"""Slash commands for the qcli REPL."""
from .base import SlashCommand, CommandResult
from .parser import CommandParser, ParsedInput
from .registry import CommandRegistry, get_command_registry

__all__ = [
    'SlashCommand', 'CommandResult',
    'CommandParser', 'ParsedInput',
    'CommandRegistry', 'get_command_registry'
]
