"""
Pipe mode: stdin is context, stdout receives only the cleaned answer.

Read-only tools run without asking; anything that would need approval is
denied because there is nobody to ask.
"""
import logging
from typing import Optional

from ..agent.policy import Mode
from ..constants import EXIT_FAILURE
from .shared import ModeContext, run_turn


logger = logging.getLogger(__name__)

DEFAULT_PIPE_QUERY = "Explain this:"


def build_pipe_prompt(stdin_text: str, query: Optional[str] = None) -> str:
    """Wrap piped input in ``<context>`` tags followed by the query."""
    return f"<context>\n{stdin_text.strip()}\n</context>\n\n{query or DEFAULT_PIPE_QUERY}"


async def run_pipe(ctx: ModeContext, stdin_text: str, query: Optional[str] = None) -> int:
    """
    Run one turn over piped input.

    Args:
        ctx: Mode context
        stdin_text: Everything read from stdin
        query: Instruction for the input (defaults to "Explain this:")

    Returns:
        Process exit code
    """
    limit = ctx.config.safety.max_input_size
    if len(stdin_text) > limit:
        ctx.terminal.error(f"Input too large (max {limit:,} characters)")
        return EXIT_FAILURE

    if not stdin_text.strip() and not query:
        ctx.terminal.error("No input provided")
        return EXIT_FAILURE

    logger.debug("Pipe input: %d characters", len(stdin_text))
    processor = ctx.processor(Mode.PIPE)
    outcome = await run_turn(
        processor,
        build_pipe_prompt(stdin_text, query),
        system_prompt=await ctx.system_prompt(Mode.PIPE),
    )
    return outcome.exit_code
