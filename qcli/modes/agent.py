"""
Agent mode (``q -x``): one task with tools, persisted as a session.
"""
import logging
from typing import Optional

from ..agent.policy import Mode
from ..constants import EXIT_FAILURE, SEPARATOR_WIDTH
from ..errors import SessionNotFoundError
from ..rich_ui.terminal import Terminal
from .shared import ModeContext, run_turn


logger = logging.getLogger(__name__)


def print_agent_header(terminal: Terminal, dry_run: bool = False, session_id: Optional[str] = None) -> None:
    p = terminal.palette
    title = "● Agent mode"
    if dry_run:
        title += " (dry run)"
    terminal.line(p.paint(title, "purple", "bold"))
    if session_id:
        terminal.line(p.muted(f"resuming {session_id}"))
    terminal.rule(SEPARATOR_WIDTH)


async def run_agent(ctx: ModeContext, task: str, resume: Optional[str] = None) -> int:
    """
    Run one agent task.

    Args:
        ctx: Mode context
        task: What the agent should do
        resume: Session id (or ``last``) to continue

    Returns:
        Process exit code
    """
    if not task.strip():
        ctx.terminal.error("No task provided for agent mode")
        return EXIT_FAILURE

    session_id = handle = None
    if resume:
        try:
            session = ctx.resolve_session(resume)
        except SessionNotFoundError as e:
            ctx.terminal.error(str(e))
            return EXIT_FAILURE
        session_id, handle = session.id, session.backend_handle
        if handle is None:
            logger.warning("Session %s has no backend handle; starting a fresh conversation", session_id)

    if ctx.render.decorations:
        print_agent_header(ctx.terminal, dry_run=bool(ctx.args.dry_run), session_id=session_id)

    processor = ctx.processor(Mode.AGENT)
    outcome = await run_turn(
        processor,
        task,
        session_id=session_id,
        resume=handle,
        system_prompt=await ctx.system_prompt(Mode.AGENT),
    )
    return outcome.exit_code
