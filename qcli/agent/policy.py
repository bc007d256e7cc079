"""
Per-mode tool and rendering policies.

Every invocation mode consumes the same message stream; what differs is
captured here: which tools the backend may use, how tool requests are
authorized, whether text is streamed live, and whether the turn is
persisted.
"""
from dataclasses import dataclass
from enum import Enum

from ..constants import AGENT_TOOLS, INTERACTIVE_TOOLS, READ_ONLY_TOOLS


class PermissionMode(str, Enum):
    """How approval-required tools are handled."""
    PROMPT = "prompt"
    DENY_WRITES = "deny-writes"
    NONE = "none"


class Mode(str, Enum):
    QUERY = "query"
    PIPE = "pipe"
    INTERACTIVE = "interactive"
    AGENT = "agent"


@dataclass(frozen=True)
class ModePolicy:
    """
    Tool access and streaming behaviour for one invocation mode.

    Attributes:
        mode: Invocation mode this policy belongs to
        tools: Tools the backend may use at all
        allowed_tools: Tools approved without asking
        permission_mode: Strategy for approval-required tools
        include_live_text: Stream assistant text as it grows
        persist: Record the turn in the session store
        clean_output: Strip fences and markdown for pipeline consumers
    """
    mode: Mode
    tools: tuple = ()
    allowed_tools: tuple = READ_ONLY_TOOLS
    permission_mode: PermissionMode = PermissionMode.NONE
    include_live_text: bool = False
    persist: bool = False
    clean_output: bool = False


@dataclass(frozen=True)
class RenderPolicy:
    """
    Output switches from the command line.

    Attributes:
        quiet: Suppress decorations (indicator, header, tool lines, summary)
        raw: Print text as-is instead of rendering markdown
        json: Print a single JSON object and nothing else on stdout
        verbose: Print the token/cost summary
    """
    quiet: bool = False
    raw: bool = False
    json: bool = False
    verbose: bool = False

    @property
    def decorations(self) -> bool:
        return not (self.quiet or self.json)


MODE_POLICIES = {
    Mode.QUERY: ModePolicy(
        mode=Mode.QUERY,
        tools=(),
        permission_mode=PermissionMode.NONE,
    ),
    Mode.PIPE: ModePolicy(
        mode=Mode.PIPE,
        tools=INTERACTIVE_TOOLS,
        permission_mode=PermissionMode.DENY_WRITES,
        clean_output=True,
    ),
    Mode.INTERACTIVE: ModePolicy(
        mode=Mode.INTERACTIVE,
        tools=AGENT_TOOLS,
        permission_mode=PermissionMode.PROMPT,
        include_live_text=True,
        persist=True,
    ),
    Mode.AGENT: ModePolicy(
        mode=Mode.AGENT,
        tools=AGENT_TOOLS,
        permission_mode=PermissionMode.PROMPT,
        include_live_text=True,
        persist=True,
    ),
}


def policy_for(mode: Mode) -> ModePolicy:
    return MODE_POLICIES[Mode(mode)]
