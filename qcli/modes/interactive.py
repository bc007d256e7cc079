"""
Interactive mode: a REPL where every line is a turn on one session.

Slash commands are handled locally. The backend conversation handle
captured on the first turn is resumed on every later turn, so the agent
keeps its context. Ctrl-C during a turn interrupts only that turn.
"""
import logging
from typing import Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import ANSI
from prompt_toolkit.history import InMemoryHistory
from rich.console import Console

from ..agent.policy import Mode
from ..agent.turn import TurnOutcome
from ..command_system import CommandParser, CommandRegistry, get_command_registry
from ..command_system.base import CommandResult
from ..config import expand_alias
from ..constants import APP_VERSION, EXIT_OK, SEPARATOR_WIDTH
from ..history.session_store import Session
from ..rich_ui import markdown
from ..rich_ui.theme import to_rich_theme
from .shared import ModeContext, run_turn


logger = logging.getLogger(__name__)


class InteractiveSession:
    """
    The REPL.

    Attributes:
        session_id: Stored session the turns are appended to
        backend_handle: Conversation handle resumed on the next turn
    """

    def __init__(
        self,
        ctx: ModeContext,
        session: Optional[Session] = None,
        prompt_session: Optional[PromptSession] = None,
        registry: Optional[CommandRegistry] = None,
    ) -> None:
        """
        Initialize the REPL.

        Args:
            ctx: Mode context
            session: Stored session to continue
            prompt_session: Line editor (created on first prompt when None)
            registry: Slash commands
        """
        self.ctx = ctx
        self.terminal = ctx.terminal
        self.console = Console(
            theme=to_rich_theme(self.terminal.config.colors),
            highlight=False,
            no_color=not self.terminal.config.color,
        )
        self.session_id = session.id if session else None
        self.backend_handle = session.backend_handle if session else None
        self._prompt_session = prompt_session
        self._registry = registry or get_command_registry()
        self._parser = CommandParser()
        self._processor = ctx.processor(Mode.INTERACTIVE)
        self._running = False

    @property
    def prompt_session(self) -> PromptSession:
        if self._prompt_session is None:
            self._prompt_session = PromptSession(history=InMemoryHistory())
        return self._prompt_session

    def reset(self) -> None:
        """Forget the current session; the next turn starts a new one."""
        logger.debug("Leaving session %s", self.session_id)
        self.session_id = None
        self.backend_handle = None

    async def run(self) -> int:
        """Read and handle lines until /quit or end of input."""
        if not self.ctx.args.quiet:
            self._print_banner()

        self._running = True
        while self._running:
            try:
                line = await self.prompt_session.prompt_async(ANSI(self._prompt_text()))
            except KeyboardInterrupt:
                self.terminal.info("Use /quit or Ctrl-D to exit")
                continue
            except EOFError:
                break
            self._running = await self.handle_line(line)
        return EXIT_OK

    async def handle_line(self, line: str) -> bool:
        """
        Handle one line of input.

        Args:
            line: What the user typed

        Returns:
            False when the REPL should stop
        """
        parsed = self._parser.parse(line)

        if parsed.type == "empty":
            return True

        if parsed.type == "command":
            result = self._registry.execute(
                parsed.command,
                parsed.args,
                repl=self,
                store=self.ctx.session_store(),
                registry=self._registry,
            )
            self._show_command_result(result)
            return not result.should_exit

        await self.send(parsed.message)
        return True

    async def send(self, text: str) -> TurnOutcome:
        """Run one turn on the current session."""
        prompt = expand_alias(self.ctx.config.prompts, text)
        outcome = await run_turn(
            self._processor,
            prompt,
            session_id=self.session_id,
            resume=self.backend_handle,
            system_prompt=await self.ctx.system_prompt(Mode.INTERACTIVE),
        )
        if outcome.session_id:
            self.session_id = outcome.session_id
        if outcome.backend_handle:
            self.backend_handle = outcome.backend_handle
        self.terminal.ensure_newline()
        self.terminal.line()
        return outcome

    def _show_command_result(self, result: CommandResult) -> None:
        if result.is_error:
            self.terminal.error(result.message)
        elif result.message:
            self.terminal.line(markdown.render_sync(result.message, self.terminal.config))

    def _prompt_text(self) -> str:
        return self.terminal.palette.paint("q ›", "purple", "bold") + " "

    def _print_banner(self) -> None:
        p = self.terminal.palette
        self.terminal.line(p.paint(f"● q {APP_VERSION}", "purple", "bold") + p.muted(f"  {self.ctx.model}"))
        if self.session_id:
            self.terminal.line(p.muted(f"resuming {self.session_id}"))
        self.terminal.line(p.muted("/help for commands, Ctrl-D to exit"))
        self.terminal.rule(SEPARATOR_WIDTH)


async def run_interactive(
    ctx: ModeContext,
    resume: Optional[str] = None,
    first_prompt: Optional[str] = None,
) -> int:
    """
    Start the REPL.

    Args:
        ctx: Mode context
        resume: Session id (or ``last``) to continue
        first_prompt: Line to send before reading input

    Returns:
        Process exit code
    """
    session = ctx.resolve_session(resume) if resume else None
    repl = InteractiveSession(ctx, session=session)
    if first_prompt:
        await repl.send(first_prompt)
    return await repl.run()
