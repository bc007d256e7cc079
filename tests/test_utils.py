"""
Tests for formatting helpers.
"""
import string

import pytest
from hypothesis import given, strategies as st

from qcli.utils import (
    format_cost,
    format_error,
    format_relative_time,
    format_tokens,
    generate_session_id,
    truncate_string,
)


@pytest.mark.parametrize("tokens,expected", [
    ((50, 20), "70"),
    ((999, 0), "999"),
    ((1000, 500), "1.5k"),
    ((9000, 940), "9.9k"),
    ((12000, 400), "12k"),
])
def test_format_tokens(tokens, expected):
    assert format_tokens(*tokens) == expected


@pytest.mark.parametrize("cost,expected", [
    (0.002, "$0.0020"),
    (0.0123, "$0.012"),
    (1.234, "$1.23"),
])
def test_format_cost(cost, expected):
    assert format_cost(cost) == expected


@pytest.mark.parametrize("age,expected", [
    (10, "just now"),
    (5 * 60, "5m ago"),
    (3 * 3600, "3h ago"),
    (2 * 86400, "2d ago"),
])
def test_format_relative_time(age, expected):
    now = 1_700_000_000.0
    assert format_relative_time(now - age, now) == expected


def test_old_timestamps_show_a_date():
    now = 1_700_000_000.0
    assert format_relative_time(now - 30 * 86400, now).count("-") == 2


@given(st.text(), st.integers(min_value=4, max_value=80))
def test_truncate_never_exceeds_limit(text, limit):
    result = truncate_string(text, limit)
    assert len(result) <= limit
    if len(text) <= limit:
        assert result == text


def test_session_ids():
    ids = {generate_session_id() for _ in range(50)}
    assert all(len(i) == 8 and set(i) <= set(string.ascii_lowercase + string.digits) for i in ids)


def test_format_error_falls_back_to_type():
    assert format_error(ValueError("  bad value ")) == "bad value"
    assert format_error(TimeoutError()) == "TimeoutError"
