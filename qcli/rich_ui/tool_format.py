"""
One-line summaries of tool calls for terminal output.
"""
import json
from typing import Any, Optional

from .theme import Palette


TOOL_ICONS = {
    "Read": "◈",
    "Glob": "◇",
    "Grep": "◆",
    "Bash": "▶",
    "Write": "◁",
    "Edit": "◂",
    "MultiEdit": "◂",
    "NotebookEdit": "◂",
    "Task": "●",
    "WebFetch": "◎",
    "WebSearch": "◎",
}
DEFAULT_ICON = "▸"

COMMAND_PREVIEW = 60
TASK_PREVIEW = 50


def _clip(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def summarize_input(tool_name: str, tool_input: dict, palette: Optional[Palette] = None) -> str:
    """
    Short, type-specific description of a tool's input.

    Args:
        tool_name: Tool name as sent by the backend
        tool_input: Tool input mapping
        palette: Colors to apply (plain text when omitted)

    Returns:
        File path, pattern, command preview or compact JSON
    """
    p = palette or Palette()

    def where() -> str:
        path = tool_input.get("path")
        return f" in {p.info(str(path))}" if path else ""

    if tool_name in ("Read", "Write", "Edit", "MultiEdit"):
        return p.info(str(tool_input.get("file_path", "")))
    if tool_name == "NotebookEdit":
        return p.info(str(tool_input.get("notebook_path", "")))
    if tool_name == "Glob":
        return f"{p.warning(str(tool_input.get('pattern', '')))}{where()}"
    if tool_name == "Grep":
        return f"{p.warning(repr_pattern(tool_input.get('pattern', '')))}{where()}"
    if tool_name == "Bash":
        return p.info(_clip(str(tool_input.get("command", "")), COMMAND_PREVIEW))
    if tool_name == "Task":
        description = tool_input.get("description") or tool_input.get("prompt") or ""
        return p.paint(str(description)[:TASK_PREVIEW], "purple")
    return p.muted(compact_json(tool_input)[:COMMAND_PREVIEW])


def repr_pattern(pattern: Any) -> str:
    return f'"{pattern}"'


def compact_json(value: Any) -> str:
    """JSON without whitespace, falling back to str() for odd values."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def format_tool_call(tool_name: str, tool_input: dict, palette: Optional[Palette] = None) -> str:
    """
    Format a tool call line, e.g. ``  ◆ Grep "TODO"``.

    Args:
        tool_name: Tool name
        tool_input: Tool input mapping
        palette: Colors to apply

    Returns:
        Indented line with icon, tool name and input summary
    """
    p = palette or Palette()
    icon = TOOL_ICONS.get(tool_name, DEFAULT_ICON)
    name = p.paint(tool_name, "coral", "bold")
    return f"  {icon} {name} {summarize_input(tool_name, tool_input, p)}"


RISK_STYLES = {
    "high": ("red", "bold"),
    "medium": ("yellow",),
    "low": ("green",),
}


def format_risk(level: str, palette: Optional[Palette] = None) -> str:
    """Colored upper-case risk label, e.g. ``HIGH``."""
    p = palette or Palette()
    return p.paint(level.upper(), *RISK_STYLES.get(level, ()))
