"""Terminal rendering for qcli."""
from .approval_prompt import TerminalPrompter
from .markdown import render, render_sync
from .terminal import Terminal
from .theme import Palette, RenderConfig, make_render_config
from .tool_format import format_tool_call

__all__ = [
    'TerminalPrompter',
    'render', 'render_sync',
    'Terminal',
    'Palette', 'RenderConfig', 'make_render_config',
    'format_tool_call',
]
