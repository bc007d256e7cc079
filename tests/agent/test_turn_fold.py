"""
Tests for the pure per-turn fold.
"""
import allure
import pytest
from hypothesis import given, settings, strategies as st

from qcli.agent.messages import (
    AssistantMessage,
    InitMessage,
    ResultMessage,
    TextBlock,
    ToolUseBlock,
    UnknownMessage,
    Usage,
)
from qcli.agent.turn import (
    BackendHandle,
    LiveText,
    ToolLine,
    TurnResult,
    TurnState,
    clean_response,
    fold_message,
    unshown_text,
)


def fold_all(messages, live=True):
    state = TurnState()
    effects = []
    for message in messages:
        state, new = fold_message(state, message, live)
        effects.extend(new)
    return state, effects


def text(t):
    return AssistantMessage(content=(TextBlock(t),))


@st.composite
def growing_snapshots(draw):
    """Successive cumulative snapshots of one reply."""
    chunks = draw(st.lists(st.text(min_size=1, max_size=12), min_size=1, max_size=15))
    snapshots = []
    acc = ""
    for chunk in chunks:
        acc += chunk
        snapshots.append(acc)
        # the backend sometimes re-sends the same snapshot
        if draw(st.booleans()):
            snapshots.append(acc)
    return snapshots


@allure.feature("Turn Processor")
@allure.story("Prefix-monotonic rendering")
@allure.severity(allure.severity_level.CRITICAL)
@settings(max_examples=200)
@given(snapshots=growing_snapshots())
def test_live_text_concatenates_to_final_snapshot(snapshots):
    """Concatenated live writes equal the last snapshot; nothing is written twice."""
    state, effects = fold_all([text(s) for s in snapshots])

    written = "".join(e.text for e in effects if isinstance(e, LiveText))
    assert written == snapshots[-1]
    assert state.last_shown_text == snapshots[-1]
    assert state.full_text == snapshots[-1]
    assert all(e.text for e in effects if isinstance(e, LiveText))


@allure.feature("Turn Processor")
@allure.story("Tool-call deduplication")
@allure.severity(allure.severity_level.CRITICAL)
@settings(max_examples=100)
@given(
    repeats=st.integers(min_value=1, max_value=8),
    pattern=st.text(min_size=1, max_size=20),
)
def test_repeated_tool_snapshot_shown_once(repeats, pattern):
    tool = ToolUseBlock(name="Grep", input={"pattern": pattern})
    messages = [AssistantMessage(content=(TextBlock("Looking"), tool))] * repeats

    state, effects = fold_all(messages)

    assert [e.tool for e in effects if isinstance(e, ToolLine)] == [tool]
    assert state.tool_count == 1


@allure.feature("Turn Processor")
@allure.story("Tool-call deduplication")
def test_same_tool_with_different_input_is_distinct():
    messages = [
        AssistantMessage(content=(ToolUseBlock("Read", {"file_path": "a.py"}),)),
        AssistantMessage(content=(ToolUseBlock("Read", {"file_path": "b.py"}),)),
        AssistantMessage(content=(ToolUseBlock("Read", {"file_path": "a.py"}),)),
    ]
    state, effects = fold_all(messages)
    assert state.tool_count == 2
    assert len([e for e in effects if isinstance(e, ToolLine)]) == 2


def test_tool_key_ignores_input_key_order():
    a = ToolUseBlock("Grep", {"pattern": "x", "path": "src"})
    b = ToolUseBlock("Grep", {"path": "src", "pattern": "x"})
    assert a.key == b.key


@allure.feature("Turn Processor")
@allure.story("Announcement then tools")
def test_separator_only_before_first_tool_after_text():
    messages = [
        text("Checking files..."),
        AssistantMessage(content=(
            TextBlock("Checking files..."),
            ToolUseBlock("Grep", {"pattern": "TODO"}),
            ToolUseBlock("Glob", {"pattern": "*.py"}),
        )),
    ]
    _, effects = fold_all(messages)
    lines = [e for e in effects if isinstance(e, ToolLine)]
    assert [line.separator for line in lines] == [True, False]


def test_no_separator_without_announcement():
    _, effects = fold_all([AssistantMessage(content=(ToolUseBlock("Read", {"file_path": "x"}),))])
    assert effects == [ToolLine(ToolUseBlock("Read", {"file_path": "x"}), separator=False)]


@allure.feature("Turn Processor")
@allure.story("Text after tools is batched")
def test_text_after_tools_is_not_streamed():
    messages = [
        text("Looking."),
        AssistantMessage(content=(TextBlock("Looking."), ToolUseBlock("Read", {"file_path": "a"}))),
        text("Looking. Found it: the answer"),
        ResultMessage(subtype="success", result="Found it: the answer"),
    ]
    state, effects = fold_all(messages)

    live = "".join(e.text for e in effects if isinstance(e, LiveText))
    assert live == "Looking."
    final = effects[-1]
    assert isinstance(final, TurnResult)
    assert final.pending_text == " Found it: the answer"
    assert state.full_text == "Looking. Found it: the answer"


def test_new_reply_that_is_not_an_extension():
    _, effects = fold_all([text("First part"), text("Second reply")])
    assert [e.text for e in effects] == ["First part", "\n\nSecond reply"]


def test_fully_streamed_text_leaves_nothing_pending():
    _, effects = fold_all([text("Hello"), text("Hello world"), ResultMessage(subtype="success", result="Hello world")])
    assert effects[-1] == TurnResult(ResultMessage(subtype="success", result="Hello world"), "")


def test_batch_mode_renders_result_text():
    result = ResultMessage(subtype="success", result="Final answer")
    state, effects = fold_all([text("Final ans"), result], live=False)
    assert not any(isinstance(e, LiveText) for e in effects)
    assert effects[-1].pending_text == "Final answer"
    assert state.last_shown_text == ""


def test_batch_mode_falls_back_to_full_text_on_failure():
    result = ResultMessage(subtype="error_max_turns")
    _, effects = fold_all([text("partial"), result], live=False)
    assert effects[-1].pending_text == "partial"


def test_init_records_handle():
    state, effects = fold_message(TurnState(), InitMessage("abc"), live=True)
    assert state.backend_handle == "abc"
    assert effects == [BackendHandle("abc")]


def test_unknown_message_changes_nothing():
    state = TurnState(full_text="x")
    assert fold_message(state, UnknownMessage({"type": "stream_event"}), live=True) == (state, [])


def test_fold_does_not_mutate_input_state():
    before = TurnState()
    fold_message(before, AssistantMessage(content=(ToolUseBlock("Read", {}),)), live=True)
    assert before == TurnState()


@pytest.mark.parametrize("last_shown,full,expected", [
    ("", "", ""),
    ("abc", "abcdef", "def"),
    ("abc", "abc", ""),
    ("abc", "xyz", "xyz"),
])
def test_unshown_text(last_shown, full, expected):
    assert unshown_text(TurnState(last_shown_text=last_shown, full_text=full)) == expected


def test_result_usage_total():
    assert Usage(input_tokens=50, output_tokens=20).total == 70


class TestCleanResponse:
    def test_strips_leaked_function_calls(self):
        assert clean_response("a<function_calls>\n<invoke/>\n</function_calls>b") == "ab"

    def test_collapses_blank_runs(self):
        assert clean_response("a\n\n\n\nb\n") == "a\n\nb"

    def test_keeps_fences_unless_asked(self):
        assert clean_response("```py\nx = 1\n```") == "```py\nx = 1\n```"
        assert clean_response("```py\nx = 1\n```", strip_fences=True) == "x = 1"
