"""
Quick query mode: one question, no tools, a rendered answer.
"""
from ..agent.policy import Mode
from ..constants import EXIT_FAILURE
from .shared import ModeContext, run_turn


async def run_query(ctx: ModeContext, query: str) -> int:
    """
    Answer a single question.

    Args:
        ctx: Mode context
        query: The question

    Returns:
        Process exit code
    """
    if not query.strip():
        ctx.terminal.error("No query provided")
        return EXIT_FAILURE

    processor = ctx.processor(Mode.QUERY)
    outcome = await run_turn(processor, query, system_prompt=await ctx.system_prompt(Mode.QUERY))
    return outcome.exit_code
