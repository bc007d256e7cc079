"""
Interactive tool approval.

Shows what the agent wants to run and reads a one-line answer with
prompt_toolkit. The whole exchange happens on stderr so the response
stream stays clean.
"""
import sys
from typing import Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import ANSI
from prompt_toolkit.output import create_output
from rich.markup import escape

from ..agent.permissions import ApprovalRequest, RiskLevel
from .terminal import Terminal
from .tool_format import compact_json, format_risk


HIGH_RISK_QUESTION = "Careful! Allow? [y]es / [n]o: "
QUESTION = "Allow? [y]es / [n]o / [a]lways: "


def describe_request(request: ApprovalRequest) -> list[str]:
    """Rich markup lines describing a pending tool call."""
    tool_input = request.tool_input
    lines = [
        f"[warning]⚠[/warning]  [bold]{escape(request.tool_name)}[/bold] "
        f"wants to run [{_risk_style(request.risk.level)}]"
        f"{escape('[' + request.risk.level.value.upper() + ']')}[/]",
    ]
    if request.risk.reason:
        lines.append(f"   [muted]{escape(request.risk.reason)}[/muted]")

    if request.tool_name == "Bash" and "command" in tool_input:
        lines.append(f"   [accent]$ {escape(str(tool_input['command']))}[/accent]")
    elif "file_path" in tool_input:
        lines.append(f"   file: [info]{escape(str(tool_input['file_path']))}[/info]")
    elif "notebook_path" in tool_input:
        lines.append(f"   file: [info]{escape(str(tool_input['notebook_path']))}[/info]")
    else:
        lines.append(f"   [muted]{escape(compact_json(tool_input))}[/muted]")
    return lines


def _risk_style(level: RiskLevel) -> str:
    return {
        RiskLevel.HIGH: "error",
        RiskLevel.MEDIUM: "warning",
        RiskLevel.LOW: "success",
    }[level]


class TerminalPrompter:
    """Approval prompter that asks on the controlling terminal."""

    def __init__(self, terminal: Terminal, session: Optional[PromptSession] = None) -> None:
        self.terminal = terminal
        self._session = session

    @property
    def session(self) -> PromptSession:
        if self._session is None:
            self._session = PromptSession(output=create_output(stdout=sys.stderr))
        return self._session

    async def ask(self, request: ApprovalRequest) -> str:
        """
        Show the request and read the answer.

        Args:
            request: Tool call awaiting approval

        Returns:
            The raw answer; "n" when input ends or the prompt is interrupted
        """
        terminal = self.terminal
        terminal.stop_thinking()
        terminal.ensure_newline()
        terminal.err.print()
        for line in describe_request(request):
            terminal.err.print(line)
        terminal.err.print()

        question = QUESTION if request.offers_always else HIGH_RISK_QUESTION
        if request.risk.level == RiskLevel.HIGH:
            question = f"{format_risk('high', terminal.palette)} {question}"
        try:
            # Ctrl-C arrives as a key here; the running turn keeps its SIGINT handler
            return await self.session.prompt_async(ANSI(question), handle_sigint=False)
        except (EOFError, KeyboardInterrupt):
            return "n"
