"""
Agent backends.

A backend turns a prompt into an async stream of wire messages (plain
dicts, see ``qcli.agent.messages``) and asks ``can_use_tool`` before it
runs any tool. ``ClaudeAgentBackend`` drives the Claude Agent SDK.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Iterator, Optional

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ClaudeSDKClient,
    ClaudeSDKError,
    PermissionResultAllow,
    PermissionResultDeny,
    ResultMessage,
    SystemMessage,
    TextBlock,
    ToolPermissionContext,
    ToolUseBlock,
)
from claude_agent_sdk.types import StreamEvent

from ..constants import KNOWN_TOOLS
from ..utils import format_error
from ..errors import BackendError
from .permissions import CANCELLED_MESSAGE, PermissionDecision


logger = logging.getLogger(__name__)

CanUseTool = Callable[[str, dict], Awaitable[PermissionDecision]]


@dataclass
class QueryOptions:
    """
    Options for one turn.

    Attributes:
        model: Backend model id
        system_prompt: System prompt text
        tools: Tools the backend may use; every other known tool is disabled
        allowed_tools: Tools the backend may run without asking
        include_partial_messages: Stream growing text snapshots
        can_use_tool: Permission callback
        resume: Backend conversation handle to continue
        cwd: Working directory for tools
        max_turns: Cap on agentic turns
        abort: Event set when the turn is interrupted
    """
    model: Optional[str] = None
    system_prompt: Optional[str] = None
    tools: tuple = ()
    allowed_tools: tuple = ()
    include_partial_messages: bool = False
    can_use_tool: Optional[CanUseTool] = None
    resume: Optional[str] = None
    cwd: Optional[str] = None
    max_turns: Optional[int] = None
    abort: Optional[asyncio.Event] = None

    @property
    def disallowed_tools(self) -> list[str]:
        return [tool for tool in KNOWN_TOOLS if tool not in self.tools]


class AgentBackend(ABC):
    """Source of agent message streams."""

    @abstractmethod
    def stream(self, prompt: str, options: QueryOptions) -> AsyncIterator[dict]:
        """
        Run one turn.

        Args:
            prompt: User prompt
            options: Turn options

        Returns:
            Async iterator of wire messages, ending with a result message
        """


class SnapshotBuilder:
    """
    Converts SDK message objects to wire dicts.

    Partial text deltas are accumulated so every emitted assistant text
    block is a cumulative snapshot of the reply so far.
    """

    def __init__(self) -> None:
        self._text = ""

    def convert(self, message: Any) -> Iterator[dict]:
        if isinstance(message, StreamEvent):
            yield from self._stream_event(message.event)
        elif isinstance(message, SystemMessage):
            wire = {"type": "system", "subtype": message.subtype}
            if message.subtype == "init":
                wire["session_id"] = message.data.get("session_id")
            yield wire
        elif isinstance(message, AssistantMessage):
            self._text = ""
            yield assistant_to_wire(message)
        elif isinstance(message, ResultMessage):
            yield result_to_wire(message)
        else:
            logger.debug("Skipping %s from backend", type(message).__name__)

    def _stream_event(self, event: dict) -> Iterator[dict]:
        kind = event.get("type")
        if kind == "message_start":
            self._text = ""
        elif kind == "content_block_delta":
            delta = event.get("delta") or {}
            if delta.get("type") == "text_delta" and delta.get("text"):
                self._text += delta["text"]
                yield {
                    "type": "assistant",
                    "message": {"content": [{"type": "text", "text": self._text}]},
                }


def assistant_to_wire(message: AssistantMessage) -> dict:
    """
    Wire form of a complete assistant message.

    Text blocks are joined into one leading block so the text matches the
    accumulated partial snapshots.
    """
    texts = [b.text for b in message.content if isinstance(b, TextBlock)]
    content: list[dict] = []
    if texts:
        content.append({"type": "text", "text": "".join(texts)})
    for block in message.content:
        if isinstance(block, ToolUseBlock):
            content.append({
                "type": "tool_use",
                "id": block.id,
                "name": block.name,
                "input": block.input,
            })
    return {"type": "assistant", "message": {"content": content}}


def result_to_wire(message: ResultMessage) -> dict:
    wire = {
        "type": "result",
        "subtype": message.subtype,
        "usage": message.usage or {},
        "total_cost_usd": message.total_cost_usd or 0.0,
        "num_turns": message.num_turns,
        "session_id": message.session_id,
    }
    if message.result is not None:
        wire["result"] = message.result
    if message.is_error and message.result:
        wire["errors"] = [message.result]
    return wire


class ClaudeAgentBackend(AgentBackend):
    """Backend built on ``claude_agent_sdk.ClaudeSDKClient``."""

    def _build_options(self, options: QueryOptions) -> ClaudeAgentOptions:
        kwargs: dict[str, Any] = {
            "disallowed_tools": options.disallowed_tools,
            "include_partial_messages": options.include_partial_messages,
        }
        if options.allowed_tools:
            kwargs["allowed_tools"] = list(options.allowed_tools)
        if options.model:
            kwargs["model"] = options.model
        if options.system_prompt:
            kwargs["system_prompt"] = options.system_prompt
        if options.resume:
            kwargs["resume"] = options.resume
        if options.cwd:
            kwargs["cwd"] = options.cwd
        if options.max_turns is not None:
            kwargs["max_turns"] = options.max_turns
        if options.can_use_tool is not None:
            kwargs["can_use_tool"] = self._permission_callback(options)
        return ClaudeAgentOptions(**kwargs)

    @staticmethod
    def _permission_callback(options: QueryOptions):
        decide = options.can_use_tool
        abort = options.abort

        async def can_use_tool(
            tool_name: str,
            input_data: dict,
            context: ToolPermissionContext,
        ) -> PermissionResultAllow | PermissionResultDeny:
            del context
            if abort is not None and abort.is_set():
                return PermissionResultDeny(message=CANCELLED_MESSAGE)
            decision = await decide(tool_name, input_data)
            if decision.allowed:
                return PermissionResultAllow(updated_input=decision.updated_input)
            return PermissionResultDeny(message=decision.message)

        return can_use_tool

    async def stream(self, prompt: str, options: QueryOptions) -> AsyncIterator[dict]:
        client = ClaudeSDKClient(options=self._build_options(options))
        builder = SnapshotBuilder()
        finished = False
        try:
            await client.connect()
            await client.query(prompt)
            async for message in client.receive_response():
                for wire in builder.convert(message):
                    yield wire
                if isinstance(message, ResultMessage):
                    finished = True
        except ClaudeSDKError as e:
            raise BackendError(format_error(e), e) from e
        finally:
            await self._disconnect(client, interrupted=not finished)

    @staticmethod
    async def _disconnect(client: ClaudeSDKClient, interrupted: bool) -> None:
        # Also runs while the consuming task is being cancelled
        if interrupted:
            with suppress(Exception):
                await client.interrupt()
        with suppress(Exception):
            await client.disconnect()
