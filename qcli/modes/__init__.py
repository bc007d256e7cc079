"""Invocation modes for qcli."""
from .agent import run_agent
from .interactive import InteractiveSession, run_interactive
from .pipe import build_pipe_prompt, run_pipe
from .query import run_query
from .sessions import show_sessions
from .shared import ModeContext, normalize_args

__all__ = [
    'run_agent',
    'InteractiveSession', 'run_interactive',
    'build_pipe_prompt', 'run_pipe',
    'run_query',
    'show_sessions',
    'ModeContext', 'normalize_args',
]
