"""
Shared fixtures: a scripted backend, a scripted approval prompter,
captured terminal streams and a throwaway session store.
"""
import asyncio
import io
from types import SimpleNamespace
from typing import Optional

import pytest
from rich.console import Console

from qcli.agent.backend import AgentBackend, QueryOptions
from qcli.agent.permissions import ApprovalRequest
from qcli.history.db import Database
from qcli.history.session_store import SessionStore
from qcli.rich_ui.terminal import Terminal
from qcli.rich_ui.theme import RenderConfig, to_rich_theme


class ScriptedBackend(AgentBackend):
    """
    Replays wire messages.

    After yielding an assistant message it asks ``can_use_tool`` once for
    every tool_use block it has not asked about yet, the way the real
    backend asks before running a tool.
    """

    def __init__(self, messages, fail_with: Optional[BaseException] = None, hang: bool = False):
        self.messages = list(messages)
        self.fail_with = fail_with
        self.hang = hang
        self.calls: list[tuple[str, QueryOptions]] = []
        self.decisions: list = []
        self.closed = False

    async def stream(self, prompt, options):
        self.calls.append((prompt, options))
        asked = set()
        try:
            for raw in self.messages:
                yield raw
                if options.can_use_tool is None or not isinstance(raw, dict) or raw.get("type") != "assistant":
                    continue
                content = raw.get("message", {}).get("content")
                for block in content if isinstance(content, list) else ():
                    if block.get("type") != "tool_use" or block.get("id") in asked:
                        continue
                    asked.add(block.get("id"))
                    decision = await options.can_use_tool(block["name"], block.get("input", {}))
                    self.decisions.append((block["name"], decision))
            if self.fail_with is not None:
                raise self.fail_with
            if self.hang:
                await asyncio.Event().wait()
        finally:
            self.closed = True


class ScriptedPrompter:
    """Approval prompter answering from a list; blocks forever when asked to."""

    def __init__(self, answers=(), block: bool = False):
        self.answers = list(answers)
        self.block = block
        self.requests: list[ApprovalRequest] = []

    async def ask(self, request: ApprovalRequest) -> str:
        self.requests.append(request)
        if self.block:
            await asyncio.Event().wait()
        return self.answers.pop(0) if self.answers else "n"


class CapturedTerminal:
    """A Terminal writing to in-memory buffers, without color."""

    def __init__(self, color: bool = False):
        self.out = io.StringIO()
        self.err_buffer = io.StringIO()
        console = Console(file=self.err_buffer, theme=to_rich_theme(), width=200, no_color=True)
        self.terminal = Terminal(out=self.out, err=console, config=RenderConfig(color=color))

    @property
    def stdout(self) -> str:
        return self.out.getvalue()

    @property
    def stderr(self) -> str:
        return self.err_buffer.getvalue()


class FakeClock:
    """Strictly increasing time source."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        self.now += 1.0
        return self.now


def _init(session_id="s1"):
    return {"type": "system", "subtype": "init", "session_id": session_id}


def _text(text):
    return {"type": "text", "text": text}


def _tool(name, tool_input, tool_id=None):
    return {"type": "tool_use", "id": tool_id or f"tu_{name}", "name": name, "input": tool_input}


def _assistant(*blocks):
    return {"type": "assistant", "message": {"content": list(blocks)}}


def _result(subtype="success", input_tokens=50, output_tokens=20, cost=0.002, num_turns=1, result=None, errors=None):
    raw = {
        "type": "result",
        "subtype": subtype,
        "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
        "total_cost_usd": cost,
        "num_turns": num_turns,
    }
    if result is not None:
        raw["result"] = result
    if errors is not None:
        raw["errors"] = errors
    return raw


@pytest.fixture
def wire():
    """Builders for wire messages."""
    return SimpleNamespace(init=_init, text=_text, tool=_tool, assistant=_assistant, result=_result)


@pytest.fixture
def make_backend():
    return ScriptedBackend


@pytest.fixture
def make_prompter():
    return ScriptedPrompter


@pytest.fixture
def captured():
    return CapturedTerminal()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path, clock):
    db = Database(tmp_path / "sessions.db")
    yield SessionStore(db=db, clock=clock)
    db.close()
