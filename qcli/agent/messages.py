"""
Typed view of the agent message stream.

The backend speaks in loosely shaped dictionaries; ``parse_message``
turns each one into exactly one of a closed set of variants. Anything
that does not validate becomes ``UnknownMessage`` and is ignored
downstream.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TextBlock:
    """Cumulative snapshot of the assistant's reply so far."""
    text: str


@dataclass(frozen=True)
class ToolUseBlock:
    """A fully formed request to run a tool."""
    name: str
    input: dict
    id: Optional[str] = None

    @property
    def key(self) -> tuple[str, str]:
        """Identity of the call: name plus canonical JSON of its input."""
        return (self.name, json.dumps(self.input, sort_keys=True, default=str))


ContentBlock = Union[TextBlock, ToolUseBlock]


@dataclass(frozen=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class InitMessage:
    """Start of a backend conversation."""
    session_id: str


@dataclass(frozen=True)
class AssistantMessage:
    content: tuple = ()

    @property
    def text_blocks(self) -> list[TextBlock]:
        return [b for b in self.content if isinstance(b, TextBlock)]

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]


@dataclass(frozen=True)
class ResultMessage:
    """Terminal message of a turn."""
    subtype: str
    usage: Usage = field(default_factory=Usage)
    total_cost_usd: float = 0.0
    num_turns: int = 0
    result: Optional[str] = None
    errors: tuple = ()

    @property
    def is_success(self) -> bool:
        return self.subtype == "success"


@dataclass(frozen=True)
class UnknownMessage:
    """Anything unrecognised or malformed."""
    raw: Any = None


AgentMessage = Union[InitMessage, AssistantMessage, ResultMessage, UnknownMessage]


def _int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def _float(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def _parse_block(raw: Any) -> Optional[ContentBlock]:
    if not isinstance(raw, dict):
        return None
    kind = raw.get("type")
    if kind == "text":
        text = raw.get("text")
        return TextBlock(text) if isinstance(text, str) else None
    if kind == "tool_use":
        name = raw.get("name")
        tool_input = raw.get("input", {})
        if not isinstance(name, str) or not name or not isinstance(tool_input, dict):
            return None
        block_id = raw.get("id")
        return ToolUseBlock(name=name, input=tool_input, id=block_id if isinstance(block_id, str) else None)
    # thinking, tool_result and future block types carry nothing to show
    return None


def parse_message(raw: Any) -> AgentMessage:
    """
    Validate one wire message.

    Args:
        raw: Dictionary as produced by the backend

    Returns:
        The matching variant, or UnknownMessage when it does not validate
    """
    if not isinstance(raw, dict):
        return UnknownMessage(raw)

    kind = raw.get("type")

    if kind == "system":
        session_id = raw.get("session_id")
        if raw.get("subtype") == "init" and isinstance(session_id, str) and session_id:
            return InitMessage(session_id=session_id)
        return UnknownMessage(raw)

    if kind == "assistant":
        message = raw.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, list):
            return UnknownMessage(raw)
        blocks = tuple(b for b in map(_parse_block, content) if b is not None)
        return AssistantMessage(content=blocks)

    if kind == "result":
        subtype = raw.get("subtype")
        if not isinstance(subtype, str):
            return UnknownMessage(raw)
        usage = raw.get("usage") if isinstance(raw.get("usage"), dict) else {}
        result = raw.get("result")
        errors = raw.get("errors")
        return ResultMessage(
            subtype=subtype,
            usage=Usage(
                input_tokens=_int(usage.get("input_tokens")),
                output_tokens=_int(usage.get("output_tokens")),
            ),
            total_cost_usd=_float(raw.get("total_cost_usd")),
            num_turns=_int(raw.get("num_turns")),
            result=result if isinstance(result, str) else None,
            errors=tuple(str(e) for e in errors) if isinstance(errors, list) else (),
        )

    return UnknownMessage(raw)
