"""
Tests for the Claude Agent SDK adapter.
"""
import asyncio

import allure
from claude_agent_sdk import (
    AssistantMessage,
    PermissionResultAllow,
    PermissionResultDeny,
    ResultMessage,
    SystemMessage,
    TextBlock,
    ToolPermissionContext,
    ToolUseBlock,
)
from claude_agent_sdk.types import StreamEvent

from qcli.agent.backend import (
    ClaudeAgentBackend,
    QueryOptions,
    SnapshotBuilder,
    assistant_to_wire,
    result_to_wire,
)
from qcli.agent.messages import parse_message
from qcli.agent.permissions import CANCELLED_MESSAGE, PermissionDecision


def delta(text):
    return StreamEvent(
        uuid="u",
        session_id="s",
        event={"type": "content_block_delta", "delta": {"type": "text_delta", "text": text}},
    )


def sdk_result(**kwargs):
    values = dict(
        subtype="success",
        duration_ms=10,
        duration_api_ms=8,
        is_error=False,
        num_turns=2,
        session_id="s1",
        total_cost_usd=0.01,
        usage={"input_tokens": 100, "output_tokens": 40},
        result="All done",
    )
    values.update(kwargs)
    return ResultMessage(**values)


@allure.feature("Backend")
@allure.story("Snapshot building")
def test_partial_deltas_become_cumulative_snapshots():
    builder = SnapshotBuilder()
    wires = []
    for event in (
        StreamEvent(uuid="u", session_id="s", event={"type": "message_start"}),
        delta("Hel"),
        delta("lo"),
        StreamEvent(uuid="u", session_id="s", event={"type": "content_block_stop"}),
        delta(" there"),
    ):
        wires.extend(builder.convert(event))

    texts = [w["message"]["content"][0]["text"] for w in wires]
    assert texts == ["Hel", "Hello", "Hello there"]


def test_complete_message_resets_the_snapshot():
    builder = SnapshotBuilder()
    list(builder.convert(delta("first")))
    complete = AssistantMessage(content=[TextBlock(text="first")], model="claude")
    list(builder.convert(complete))

    wires = list(builder.convert(delta("second")))
    assert wires[0]["message"]["content"][0]["text"] == "second"


def test_init_system_message():
    builder = SnapshotBuilder()
    wires = list(builder.convert(SystemMessage(subtype="init", data={"session_id": "abc"})))
    assert wires == [{"type": "system", "subtype": "init", "session_id": "abc"}]


def test_assistant_to_wire_joins_text_and_keeps_tools():
    message = AssistantMessage(
        content=[
            TextBlock(text="Checking "),
            ToolUseBlock(id="tu_1", name="Grep", input={"pattern": "TODO"}),
            TextBlock(text="files..."),
        ],
        model="claude",
    )
    wire = assistant_to_wire(message)
    assert wire["message"]["content"] == [
        {"type": "text", "text": "Checking files..."},
        {"type": "tool_use", "id": "tu_1", "name": "Grep", "input": {"pattern": "TODO"}},
    ]


def test_result_to_wire_parses_back():
    parsed = parse_message(result_to_wire(sdk_result()))
    assert parsed.is_success
    assert parsed.usage.total == 140
    assert parsed.total_cost_usd == 0.01
    assert parsed.num_turns == 2
    assert parsed.result == "All done"


def test_error_result_carries_its_message():
    wire = result_to_wire(sdk_result(subtype="error_during_execution", is_error=True, result="API down"))
    assert wire["errors"] == ["API down"]
    assert not parse_message(wire).is_success


@allure.feature("Backend")
@allure.story("SDK options")
def test_build_options():
    async def decide(name, tool_input):
        return PermissionDecision.allow(tool_input)

    options = QueryOptions(
        model="claude-sonnet-4-20250514",
        system_prompt="be brief",
        tools=("Read", "Glob", "Grep"),
        allowed_tools=("Read", "Glob", "Grep"),
        include_partial_messages=True,
        can_use_tool=decide,
        resume="handle",
        cwd="/tmp",
    )
    sdk = ClaudeAgentBackend()._build_options(options)

    assert sdk.model == "claude-sonnet-4-20250514"
    assert sdk.system_prompt == "be brief"
    assert sdk.resume == "handle"
    assert sdk.include_partial_messages is True
    assert sdk.allowed_tools == ["Read", "Glob", "Grep"]
    assert "Bash" in sdk.disallowed_tools
    assert "Read" not in sdk.disallowed_tools
    assert sdk.can_use_tool is not None


def test_no_tools_disables_every_known_tool():
    sdk = ClaudeAgentBackend()._build_options(QueryOptions())
    assert {"Read", "Bash", "Write", "WebFetch"} <= set(sdk.disallowed_tools)
    assert sdk.can_use_tool is None


@allure.feature("Backend")
@allure.story("Permission callback")
def test_permission_callback_maps_decisions():
    async def decide(name, tool_input):
        if name == "Read":
            return PermissionDecision.allow(tool_input)
        return PermissionDecision.deny("nope")

    callback = ClaudeAgentBackend._permission_callback(QueryOptions(can_use_tool=decide))
    context = ToolPermissionContext()

    allowed = asyncio.run(callback("Read", {"file_path": "a"}, context))
    denied = asyncio.run(callback("Bash", {"command": "ls"}, context))

    assert isinstance(allowed, PermissionResultAllow)
    assert allowed.updated_input == {"file_path": "a"}
    assert isinstance(denied, PermissionResultDeny)
    assert denied.message == "nope"


def test_permission_callback_denies_after_abort():
    calls = []

    async def decide(name, tool_input):
        calls.append(name)
        return PermissionDecision.allow(tool_input)

    abort = asyncio.Event()
    abort.set()
    callback = ClaudeAgentBackend._permission_callback(QueryOptions(can_use_tool=decide, abort=abort))

    result = asyncio.run(callback("Read", {}, ToolPermissionContext()))

    assert isinstance(result, PermissionResultDeny)
    assert result.message == CANCELLED_MESSAGE
    assert calls == []
