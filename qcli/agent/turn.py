"""
Streaming turn processing.

A turn is one prompt and the message stream it produces. ``fold_message``
is the pure step function: given the per-turn state and one message it
returns the next state plus the effects to perform (write live text,
show a tool line, record the backend handle, finish the turn).
``TurnProcessor`` runs the stream, applies those effects to the
terminal and the session store, and handles abort and failure.
"""
import asyncio
import json
import logging
import os
import re
import sqlite3
from contextlib import aclosing
from dataclasses import dataclass, field, replace
from typing import Optional, Union

from ..constants import (
    EXIT_FAILURE,
    EXIT_INTERRUPTED,
    EXIT_OK,
    SEPARATOR_WIDTH,
    TITLE_LENGTH,
)
from ..history.session_store import SessionStore
from ..rich_ui import markdown
from ..rich_ui.terminal import Terminal
from ..rich_ui.tool_format import format_tool_call
from ..utils import format_cost, format_error, format_tokens
from .backend import AgentBackend, QueryOptions
from ..errors import BackendError, QError
from .messages import (
    AgentMessage,
    AssistantMessage,
    InitMessage,
    ResultMessage,
    ToolUseBlock,
    UnknownMessage,
    parse_message,
)
from .permissions import PermissionEngine
from .policy import ModePolicy, RenderPolicy


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TurnState:
    """
    Everything the fold remembers within one turn.

    Attributes:
        last_shown_text: Longest text snapshot already written live
        full_text: Latest text snapshot, source of the final render
        seen_tool_keys: (name, input) keys of tool calls already shown
        tool_count: Number of distinct tool calls
        has_shown_tools: Once True, text is batched until the result
        backend_handle: Conversation handle from the init message
        result: The result message, once received
    """
    last_shown_text: str = ""
    full_text: str = ""
    seen_tool_keys: frozenset = frozenset()
    tool_count: int = 0
    has_shown_tools: bool = False
    backend_handle: Optional[str] = None
    result: Optional[ResultMessage] = None


@dataclass(frozen=True)
class LiveText:
    """Characters to append to the terminal right away."""
    text: str


@dataclass(frozen=True)
class ToolLine:
    tool: ToolUseBlock
    separator: bool = False


@dataclass(frozen=True)
class BackendHandle:
    handle: str


@dataclass(frozen=True)
class TurnResult:
    """The turn finished; ``pending_text`` has not been shown yet."""
    result: ResultMessage
    pending_text: str


Effect = Union[LiveText, ToolLine, BackendHandle, TurnResult]


def unshown_text(state: TurnState) -> str:
    """Part of the latest text snapshot that has not been written live."""
    if not state.full_text:
        return ""
    if state.full_text.startswith(state.last_shown_text):
        return state.full_text[len(state.last_shown_text):]
    return state.full_text


def fold_message(
    state: TurnState,
    message: AgentMessage,
    live: bool,
) -> tuple[TurnState, list[Effect]]:
    """
    Advance the turn by one message.

    Args:
        state: Current turn state
        message: Parsed message
        live: Whether assistant text is streamed as it grows

    Returns:
        The new state and the effects to perform, in order
    """
    if isinstance(message, InitMessage):
        return replace(state, backend_handle=message.session_id), [BackendHandle(message.session_id)]

    if isinstance(message, AssistantMessage):
        effects: list[Effect] = []
        last_shown = state.last_shown_text
        full_text = state.full_text

        for block in message.text_blocks:
            full_text = block.text
            if live and not state.has_shown_tools and full_text != last_shown:
                if full_text.startswith(last_shown):
                    delta = full_text[len(last_shown):]
                else:
                    # a new reply rather than a longer snapshot of the same one
                    delta = f"\n\n{full_text}" if last_shown else full_text
                if delta:
                    effects.append(LiveText(delta))
                last_shown = full_text

        seen = state.seen_tool_keys
        tool_count = state.tool_count
        has_shown_tools = state.has_shown_tools
        for tool in message.tool_uses:
            if tool.key in seen:
                continue
            seen = seen | {tool.key}
            effects.append(ToolLine(tool, separator=not has_shown_tools and bool(last_shown)))
            has_shown_tools = True
            tool_count += 1

        new_state = replace(
            state,
            last_shown_text=last_shown,
            full_text=full_text,
            seen_tool_keys=seen,
            tool_count=tool_count,
            has_shown_tools=has_shown_tools,
        )
        return new_state, effects

    if isinstance(message, ResultMessage):
        if not live and message.is_success and message.result:
            pending = message.result
        else:
            pending = unshown_text(state)
        return replace(state, result=message), [TurnResult(message, pending)]

    return state, []


_FUNCTION_CALLS = re.compile(r"<function_calls>[\s\S]*?</function_calls>")
_FENCE_LINE = re.compile(r"^```[\w+-]*\n?", re.MULTILINE)
_FENCE_END = re.compile(r"\n?```$", re.MULTILINE)
_BLANK_RUN = re.compile(r"\n{3,}")


def clean_response(text: str, strip_fences: bool = False) -> str:
    """
    Remove leaked tool-call markup and extra blank lines.

    Args:
        text: Response text
        strip_fences: Also drop code fence lines (pipeline output)

    Returns:
        Cleaned, trimmed text
    """
    text = _FUNCTION_CALLS.sub("", text)
    if strip_fences:
        text = _FENCE_LINE.sub("", text)
        text = _FENCE_END.sub("", text)
    return _BLANK_RUN.sub("\n\n", text).strip()


@dataclass
class TurnOutcome:
    """What happened in a turn, for the caller and for ``--json``."""
    exit_code: int
    response: str = ""
    session_id: Optional[str] = None
    backend_handle: Optional[str] = None
    result: Optional[ResultMessage] = None
    tool_count: int = 0
    error: Optional[str] = None
    interrupted: bool = False

    @property
    def success(self) -> bool:
        return self.exit_code == EXIT_OK

    def to_json(self) -> dict:
        usage = self.result.usage if self.result else None
        return {
            "response": self.response,
            "session_id": self.session_id,
            "success": self.success,
            "input_tokens": usage.input_tokens if usage else 0,
            "output_tokens": usage.output_tokens if usage else 0,
            "cost_usd": self.result.total_cost_usd if self.result else 0.0,
            "num_turns": self.result.num_turns if self.result else 0,
            "tool_count": self.tool_count,
            **({"error": self.error} if self.error else {}),
        }


@dataclass
class _TurnContext:
    prompt: str
    session_id: Optional[str]
    is_new_session: bool
    state: TurnState = field(default_factory=TurnState)


class TurnProcessor:
    """
    Drives one turn at a time against a backend.

    Output goes to the Terminal, authorization to the PermissionEngine,
    and (when the policy persists turns) records to the SessionStore.
    """

    def __init__(
        self,
        backend: AgentBackend,
        terminal: Terminal,
        policy: ModePolicy,
        render: Optional[RenderPolicy] = None,
        permissions: Optional[PermissionEngine] = None,
        store: Optional[SessionStore] = None,
        model: str = "sonnet",
        model_id: Optional[str] = None,
    ) -> None:
        """
        Initialize the processor.

        Args:
            backend: Source of message streams
            terminal: Output streams
            policy: Mode policy (tools, permissions, live text, persistence)
            render: Output switches
            permissions: Tool authorization; without one no tool is allowed
            store: Session store, used when the policy persists turns
            model: Model alias shown in summaries
            model_id: Backend model id (defaults to the alias)
        """
        self.backend = backend
        self.terminal = terminal
        self.policy = policy
        self.render = render or RenderPolicy()
        self.permissions = permissions
        self.store = store if policy.persist else None
        self.model = model
        self.model_id = model_id or model

    @property
    def live(self) -> bool:
        return self.policy.include_live_text and not self.render.json

    async def run(
        self,
        prompt: str,
        session_id: Optional[str] = None,
        resume: Optional[str] = None,
        system_prompt: Optional[str] = None,
        abort: Optional[asyncio.Event] = None,
    ) -> TurnOutcome:
        """
        Run one turn to completion, interruption or failure.

        Args:
            prompt: User prompt
            session_id: Existing session to append to (a new one is created otherwise)
            resume: Backend conversation handle to continue
            system_prompt: System prompt for the backend
            abort: Event that interrupts the turn when set

        Returns:
            TurnOutcome with the exit code to use
        """
        abort = abort or asyncio.Event()
        if self.permissions is not None:
            self.permissions.abort = abort

        ctx = _TurnContext(
            prompt=prompt,
            session_id=session_id,
            is_new_session=session_id is None,
        )
        self._begin_session(ctx)

        options = QueryOptions(
            model=self.model_id,
            system_prompt=system_prompt,
            tools=tuple(self.policy.tools),
            allowed_tools=self._auto_allowed(),
            include_partial_messages=self.live,
            can_use_tool=self.permissions.decide if self.permissions else None,
            resume=resume,
            cwd=os.getcwd(),
            abort=abort,
        )

        if self.render.decorations and not self.policy.clean_output:
            self.terminal.thinking()

        consume = asyncio.ensure_future(self._consume(ctx, options))
        aborted = asyncio.ensure_future(abort.wait())
        try:
            await asyncio.wait({consume, aborted}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            pending = [t for t in (consume, aborted) if not t.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            self.terminal.stop_thinking()

        if consume.done() and not consume.cancelled() and consume.exception() is None:
            outcome = consume.result()
        elif abort.is_set():
            outcome = self._interrupted(ctx)
        else:
            outcome = self._failed(ctx, consume.exception())

        if self.render.json and not outcome.interrupted:
            self.terminal.line(json.dumps(outcome.to_json()))
        return outcome

    def _auto_allowed(self) -> tuple:
        """Tools the backend may run without calling back; none in dry-run."""
        if self.permissions is None or self.permissions.dry_run:
            return ()
        return tuple(t for t in self.policy.allowed_tools if t in self.policy.tools)

    async def _consume(self, ctx: _TurnContext, options: QueryOptions) -> TurnOutcome:
        async with aclosing(self.backend.stream(ctx.prompt, options)) as stream:
            async for raw in stream:
                message = parse_message(raw)
                if isinstance(message, UnknownMessage):
                    logger.debug("Ignoring message: %r", raw)
                    continue
                ctx.state, effects = fold_message(ctx.state, message, self.live)
                for effect in effects:
                    await self._apply(ctx, effect)
                if isinstance(message, ResultMessage):
                    return self._finished(ctx, message)
        raise BackendError("No result message received")

    async def _apply(self, ctx: _TurnContext, effect: Effect) -> None:
        terminal = self.terminal

        if isinstance(effect, LiveText):
            terminal.write(effect.text)

        elif isinstance(effect, ToolLine):
            if not self.render.decorations or self.policy.clean_output:
                return
            terminal.stop_thinking()
            if effect.separator:
                terminal.ensure_newline()
            terminal.line(format_tool_call(effect.tool.name, effect.tool.input, terminal.palette))

        elif isinstance(effect, BackendHandle):
            if ctx.is_new_session and ctx.session_id and self.store is not None:
                self._persist(self.store.set_backend_handle, ctx.session_id, effect.handle)

        elif isinstance(effect, TurnResult):
            await self._show_result(ctx, effect)
            self._record_result(ctx, effect.result)

    async def _show_result(self, ctx: _TurnContext, effect: TurnResult) -> None:
        terminal = self.terminal
        result = effect.result
        terminal.stop_thinking()

        if not self.render.json:
            text = clean_response(effect.pending_text, strip_fences=self.policy.clean_output)
            if text:
                terminal.ensure_newline()
                if ctx.state.has_shown_tools and self.render.decorations and not self.policy.clean_output:
                    terminal.line()
                if self.policy.clean_output or self.render.raw:
                    terminal.line(text)
                else:
                    terminal.line(await markdown.render(text, terminal.config))
            terminal.ensure_newline()

        if not result.is_success:
            terminal.error(result.subtype)
            for detail in result.errors:
                terminal.error_detail(detail)

        if self.render.verbose and self.render.decorations:
            self._print_summary(ctx, result)

    def _print_summary(self, ctx: _TurnContext, result: ResultMessage) -> None:
        usage = result.usage
        parts = [
            f"✓ {format_tokens(usage.input_tokens, usage.output_tokens)} tokens",
            format_cost(result.total_cost_usd),
            self.model,
            f"{result.num_turns} turns",
        ]
        if self.policy.tools:
            parts.append(f"{ctx.state.tool_count} tools")
        self.terminal.info("─" * SEPARATOR_WIDTH)
        self.terminal.info(" │ ".join(parts))
        if ctx.session_id:
            self.terminal.info(f"session: {ctx.session_id}")

    def _begin_session(self, ctx: _TurnContext) -> None:
        if self.store is None:
            return
        if ctx.session_id is None:
            session = self._persist(self.store.create_session, self.model_id, os.getcwd())
            ctx.session_id = session.id if session else None
        if ctx.session_id:
            self._persist(self.store.add_message, ctx.session_id, "user", ctx.prompt)

    def _record_result(self, ctx: _TurnContext, result: ResultMessage) -> None:
        if self.store is None or not ctx.session_id:
            return
        content = ctx.state.full_text or result.result or ""
        tokens = result.usage.total
        self._persist(self.store.add_message, ctx.session_id, "assistant", content, tokens)
        self._persist(
            self.store.update_stats,
            ctx.session_id,
            tokens,
            result.total_cost_usd,
            ctx.prompt[:TITLE_LENGTH],
        )

    @staticmethod
    def _persist(operation, *args):
        """Run a store operation; failures are logged, never raised."""
        try:
            return operation(*args)
        except (sqlite3.Error, OSError, QError):
            logger.exception("Session store operation %s failed", operation.__name__)
            return None

    def _response(self, ctx: _TurnContext) -> str:
        result = ctx.state.result
        if result is not None and result.is_success and result.result:
            return clean_response(result.result, strip_fences=self.policy.clean_output)
        return clean_response(ctx.state.full_text, strip_fences=self.policy.clean_output)

    def _outcome(self, ctx: _TurnContext, exit_code: int, **kwargs) -> TurnOutcome:
        return TurnOutcome(
            exit_code=exit_code,
            response=self._response(ctx),
            session_id=ctx.session_id,
            backend_handle=ctx.state.backend_handle,
            result=ctx.state.result,
            tool_count=ctx.state.tool_count,
            **kwargs,
        )

    def _finished(self, ctx: _TurnContext, result: ResultMessage) -> TurnOutcome:
        if result.is_success:
            return self._outcome(ctx, EXIT_OK)
        return self._outcome(ctx, EXIT_FAILURE, error=result.subtype)

    def _interrupted(self, ctx: _TurnContext) -> TurnOutcome:
        self.terminal.ensure_newline()
        self.terminal.warning("Interrupted")
        return self._outcome(ctx, EXIT_INTERRUPTED, interrupted=True)

    def _failed(self, ctx: _TurnContext, error: BaseException) -> TurnOutcome:
        logger.error("Turn failed", exc_info=error)
        self.terminal.ensure_newline()
        message = format_error(error)
        self.terminal.error(message)
        return self._outcome(ctx, EXIT_FAILURE, error=message)
