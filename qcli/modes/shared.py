"""
Wiring shared by every invocation mode.

``ModeContext`` holds the parsed arguments, the configuration and the
collaborators a turn needs (terminal, backend, session store, approval
prompter) and builds a ``TurnProcessor`` for a given mode.
"""
import argparse
import asyncio
import logging
import signal
import sqlite3
import sys
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Iterator, Optional, TextIO

from ..agent.backend import AgentBackend, ClaudeAgentBackend
from ..agent.permissions import PermissionEngine, Prompter
from ..agent.policy import Mode, PermissionMode, RenderPolicy, policy_for
from ..agent.prompt import EnvironmentContext, build_system_prompt, get_environment_context
from ..agent.turn import TurnOutcome, TurnProcessor
from ..config import AppConfig
from ..constants import MODEL_MAP
from ..errors import SessionNotFoundError, StoreUnavailableError
from ..history.session_store import Session, SessionStore, get_session_store
from ..rich_ui.approval_prompt import TerminalPrompter
from ..rich_ui.terminal import Terminal
from ..rich_ui.theme import make_render_config


logger = logging.getLogger(__name__)

_ARG_DEFAULTS = {
    "query": None,
    "model": None,
    "quiet": False,
    "raw": False,
    "json": False,
    "verbose": False,
    "dry_run": False,
    "resume": None,
    "color": None,
    "no_stream": False,
    "interactive": False,
    "execute": False,
    "sessions": False,
    "debug": False,
}


def normalize_args(args: Optional[argparse.Namespace] = None, **overrides) -> argparse.Namespace:
    """Fill in every option the modes read, so partial namespaces work."""
    values = dict(_ARG_DEFAULTS)
    if args is not None:
        values.update(vars(args))
    values.update(overrides)
    return argparse.Namespace(**values)


@dataclass
class ModeContext:
    """
    Everything a mode needs to run turns.

    Attributes:
        args: Parsed command-line arguments
        config: Loaded configuration
        terminal: Output streams
        backend: Agent backend
        store: Session store (opened on first use when None; stays None when it cannot be opened)
        prompter: Approval prompter (a terminal prompt when None)
        environment: Environment for the system prompt (collected when None)
    """
    args: argparse.Namespace
    config: AppConfig
    terminal: Terminal
    backend: AgentBackend
    store: Optional[SessionStore] = None
    prompter: Optional[Prompter] = None
    environment: Optional[EnvironmentContext] = None
    _store_error: Optional[Exception] = field(default=None, init=False, repr=False)

    @classmethod
    def create(cls, args: argparse.Namespace, config: AppConfig) -> "ModeContext":
        args = normalize_args(args)
        color = args.color or config.ui.color
        terminal = Terminal(config=make_render_config(color, sys.stdout))
        return cls(args=args, config=config, terminal=terminal, backend=ClaudeAgentBackend())

    @property
    def model(self) -> str:
        return self.args.model or self.config.model

    @property
    def model_id(self) -> str:
        return MODEL_MAP.get(self.model, self.model)

    @property
    def render(self) -> RenderPolicy:
        return RenderPolicy(
            quiet=bool(self.args.quiet),
            raw=bool(self.args.raw),
            json=bool(self.args.json),
            verbose=bool(self.args.verbose),
        )

    def session_store(self) -> Optional[SessionStore]:
        """
        The session store, opened on first use.

        Returns:
            The store, or None when the database cannot be opened; the
            failure is logged once and turns run without persistence
        """
        if self.store is None and self._store_error is None:
            try:
                self.store = get_session_store()
            except (OSError, sqlite3.Error) as e:
                logger.exception("Cannot open the session store")
                self._store_error = e
        return self.store

    def require_store(self) -> SessionStore:
        """
        The session store for operations that cannot run without it.

        Raises:
            StoreUnavailableError: The database cannot be opened
        """
        store = self.session_store()
        if store is None:
            raise StoreUnavailableError(f"Session store unavailable: {self._store_error}")
        return store

    def processor(self, mode: Mode) -> TurnProcessor:
        """
        Build a turn processor for a mode.

        Args:
            mode: Invocation mode

        Returns:
            TurnProcessor wired to this context
        """
        policy = policy_for(mode)
        if self.args.no_stream and policy.include_live_text:
            policy = replace(policy, include_live_text=False)

        prompter = None
        if policy.permission_mode == PermissionMode.PROMPT:
            prompter = self.prompter or TerminalPrompter(self.terminal)

        permissions = PermissionEngine(
            policy=policy,
            prompter=prompter,
            dry_run=bool(self.args.dry_run),
            blocked_commands=self.config.safety.blocked_commands,
        )
        return TurnProcessor(
            backend=self.backend,
            terminal=self.terminal,
            policy=policy,
            render=self.render,
            permissions=permissions,
            store=self.session_store() if policy.persist else None,
            model=self.model,
            model_id=self.model_id,
        )

    async def system_prompt(self, mode: Mode) -> str:
        if self.environment is None:
            self.environment = await get_environment_context(
                include_git=self.config.context.git,
                include_cwd=self.config.context.cwd,
            )
        return build_system_prompt(self.environment, mode, self.config.system_prompt)

    def resolve_session(self, ref: str) -> Session:
        """
        Look up a session by id, or the most recent one for ``last``.

        Raises:
            SessionNotFoundError: No such session
            StoreUnavailableError: The database cannot be opened
        """
        store = self.require_store()
        session = store.get_last_session() if ref == "last" else store.get_session(ref)
        if session is None:
            raise SessionNotFoundError(ref)
        return session


@contextmanager
def interrupt_sets(abort: asyncio.Event) -> Iterator[None]:
    """Route SIGINT to ``abort`` while the block runs."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, abort.set)
    except (NotImplementedError, RuntimeError):
        # No loop signal handlers on this platform; Ctrl-C raises KeyboardInterrupt
        yield
        return
    try:
        yield
    finally:
        loop.remove_signal_handler(signal.SIGINT)


async def run_turn(
    processor: TurnProcessor,
    prompt: str,
    session_id: Optional[str] = None,
    resume: Optional[str] = None,
    system_prompt: Optional[str] = None,
) -> TurnOutcome:
    """Run one turn with Ctrl-C wired to its abort event."""
    abort = asyncio.Event()
    with interrupt_sets(abort):
        return await processor.run(
            prompt,
            session_id=session_id,
            resume=resume,
            system_prompt=system_prompt,
            abort=abort,
        )


def read_stdin(stream: Optional[TextIO] = None, limit: Optional[int] = None) -> str:
    """
    Read stdin as text.

    Args:
        stream: Input stream (stdin by default)
        limit: Stop after one character more than this, enough to tell it was exceeded
    """
    stream = stream or sys.stdin
    return stream.read() if limit is None else stream.read(limit + 1)
