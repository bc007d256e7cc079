"""
Main entry point for qcli.
"""
import argparse
import asyncio
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional, TextIO

from .agent.policy import Mode
from .config import AppConfig, COLOR_MODES, expand_alias, get_config
from .constants import (
    APP_DESCRIPTION,
    APP_NAME,
    APP_VERSION,
    EXIT_FAILURE,
    EXIT_INTERRUPTED,
    EXIT_OK,
    LOG_FILE,
    MODEL_MAP,
)
from .errors import QError
from .history import close_database


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description=APP_DESCRIPTION,
        epilog=(
            'examples:\n'
            '  q "what does this error mean"      quick query\n'
            '  cat error.log | q "explain this"   pipe mode\n'
            '  q -x "find all TODO comments"      agent mode\n'
            '  q -r last "and now the tests"      continue the last session\n'
            '  q -i                               interactive mode'
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "query",
        nargs="*",
        help="The question, task or instruction"
    )

    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"{APP_NAME} {APP_VERSION}"
    )

    parser.add_argument(
        "-i", "--interactive",
        action="store_true",
        help="Interactive mode"
    )

    parser.add_argument(
        "-x", "--execute",
        action="store_true",
        help="Agent mode with tools (Read, Glob, Grep auto-approved; Bash, Write, Edit ask first)"
    )

    parser.add_argument(
        "-r", "--resume",
        metavar="ID",
        help='Resume a session ("last" for the most recent)'
    )

    parser.add_argument(
        "-m", "--model",
        choices=sorted(MODEL_MAP),
        help="Model to use"
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Response only, no decorations"
    )

    parser.add_argument(
        "--raw",
        action="store_true",
        help="Print the response without markdown rendering"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the result as one JSON object"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show tokens, cost and session after the response"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show tool calls without running them"
    )

    parser.add_argument(
        "--no-stream",
        action="store_true",
        help="Wait for the full response instead of streaming it"
    )

    parser.add_argument(
        "--sessions",
        action="store_true",
        help="List recent sessions"
    )

    parser.add_argument(
        "--color",
        choices=COLOR_MODES,
        help="Color output (default: from config, else auto)"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help=f"Debug logging to {LOG_FILE}"
    )

    args = parser.parse_args(argv)
    args.query = " ".join(args.query) or None
    return args


def detect_mode(args: argparse.Namespace, stdin_is_tty: bool) -> Mode:
    """
    Pick the invocation mode.

    ``-i`` wins, then ``-x``; a resumed session runs as an agent turn when
    there is a query and as the REPL otherwise; piped stdin means pipe
    mode; a bare query is a quick query; nothing at all opens the REPL.
    """
    if args.interactive:
        return Mode.INTERACTIVE
    if args.execute:
        return Mode.AGENT
    if args.resume:
        return Mode.AGENT if args.query else Mode.INTERACTIVE
    if not stdin_is_tty:
        return Mode.PIPE
    if args.query:
        return Mode.QUERY
    return Mode.INTERACTIVE


def configure_logging(debug: bool = False) -> None:
    """Send qcli logs to a rotating file; stdout is never used."""
    root = logging.getLogger("qcli")
    root.setLevel(logging.DEBUG if debug else logging.WARNING)
    root.propagate = False
    try:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = RotatingFileHandler(
            LOG_FILE, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
        )
    except OSError:
        handler = logging.NullHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.handlers = [handler]


async def dispatch(
    args: argparse.Namespace,
    config: AppConfig,
    ctx=None,
    stdin: Optional[TextIO] = None,
) -> int:
    """
    Run the mode the arguments ask for.

    Args:
        args: Parsed arguments
        config: Loaded configuration
        ctx: Mode context (built from args and config when None)
        stdin: Input stream (stdin by default)

    Returns:
        Process exit code
    """
    from .modes import (
        ModeContext,
        run_agent,
        run_interactive,
        run_pipe,
        run_query,
        show_sessions,
    )
    from .modes.shared import read_stdin

    ctx = ctx or ModeContext.create(args, config)
    stdin = stdin or sys.stdin

    try:
        if ctx.args.sessions:
            show_sessions(ctx.require_store())
            return EXIT_OK

        mode = detect_mode(ctx.args, stdin.isatty())
        logger.debug("mode=%s args=%s", mode.value, vars(ctx.args))
        query = ctx.args.query

        if mode == Mode.QUERY:
            return await run_query(ctx, query)
        if mode == Mode.PIPE:
            text = await asyncio.to_thread(read_stdin, stdin, config.safety.max_input_size)
            return await run_pipe(ctx, text, query)
        if mode == Mode.AGENT:
            return await run_agent(ctx, query or "", resume=ctx.args.resume)
        return await run_interactive(ctx, resume=ctx.args.resume, first_prompt=query)
    except QError as e:
        ctx.terminal.error(str(e))
        return EXIT_FAILURE


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    configure_logging(args.debug or os.environ.get("Q_DEBUG") == "1")

    try:
        config = get_config().config
    except QError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    if args.query:
        args.query = expand_alias(config.prompts, args.query)

    try:
        return asyncio.run(dispatch(args, config))
    except KeyboardInterrupt:
        # Ctrl-C outside a running turn
        return EXIT_INTERRUPTED
    finally:
        close_database()


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
