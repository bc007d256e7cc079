"""
Input parser for the qcli REPL.
Splits a line into a slash command or a message for the agent.
"""
from dataclasses import dataclass

SLASH_PREFIX = "/"


@dataclass
class ParsedInput:
    """Result of parsing user input."""
    type: str  # 'command', 'message', 'empty'
    command: str = ""
    args: str = ""
    raw: str = ""
    message: str = ""


class CommandParser:
    """Parser for user input in the REPL."""

    def parse(self, input_text: str) -> ParsedInput:
        """
        Parse user input into a structured result.

        Args:
            input_text: Raw user input

        Returns:
            ParsedInput with parsed components
        """
        text = input_text.strip()

        if not text:
            return ParsedInput(type="empty", raw=input_text)

        # "/" alone or a path like "/etc/hosts is..." is a message
        if text.startswith(SLASH_PREFIX) and len(text) > 1 and "/" not in text.split()[0][1:]:
            return self._parse_command(text)

        return ParsedInput(type="message", raw=text, message=text)

    def _parse_command(self, text: str) -> ParsedInput:
        """Parse a slash command."""
        parts = text[len(SLASH_PREFIX):].split(maxsplit=1)
        return ParsedInput(
            type="command",
            command=parts[0].lower(),
            args=parts[1] if len(parts) > 1 else "",
            raw=text,
        )
