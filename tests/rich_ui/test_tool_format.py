"""
Tests for tool call lines.
"""
import allure
import pytest

from qcli.rich_ui.theme import Palette, RenderConfig
from qcli.rich_ui.tool_format import format_risk, format_tool_call, summarize_input


@allure.feature("Tool Lines")
@pytest.mark.parametrize("name,tool_input,expected", [
    ("Grep", {"pattern": "TODO"}, '  ◆ Grep "TODO"'),
    ("Grep", {"pattern": "def \\w+", "path": "src"}, '  ◆ Grep "def \\w+" in src'),
    ("Glob", {"pattern": "**/*.py"}, "  ◇ Glob **/*.py"),
    ("Read", {"file_path": "README.md"}, "  ◈ Read README.md"),
    ("Write", {"file_path": "out.txt", "content": "x"}, "  ◁ Write out.txt"),
    ("Edit", {"file_path": "a.py", "old_string": "a", "new_string": "b"}, "  ◂ Edit a.py"),
    ("Bash", {"command": "ls -la"}, "  ▶ Bash ls -la"),
    ("Task", {"description": "Investigate the failing build"}, "  ● Task Investigate the failing build"),
    ("Mystery", {"a": 1}, '  ▸ Mystery {"a":1}'),
])
def test_format_tool_call_plain(name, tool_input, expected):
    assert format_tool_call(name, tool_input) == expected


def test_long_bash_command_is_clipped():
    line = format_tool_call("Bash", {"command": "x" * 100})
    assert line == f"  ▶ Bash {'x' * 60}..."


def test_missing_input_fields():
    assert summarize_input("Read", {}) == ""
    assert summarize_input("Grep", {}) == '""'


def test_colored_line_keeps_text():
    palette = Palette(RenderConfig(color=True))
    line = format_tool_call("Grep", {"pattern": "TODO"}, palette)
    assert "\x1b[" in line
    assert "Grep" in line and '"TODO"' in line


def test_format_risk():
    assert format_risk("high") == "HIGH"
    assert format_risk("medium", Palette(RenderConfig(color=True))).startswith("\x1b[")
