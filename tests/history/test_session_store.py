"""
Tests for the SQLite session store.
"""
import allure
import pytest

from qcli.errors import SessionNotFoundError
from qcli.history.db import Database
from qcli.history.session_store import SessionStore


@allure.feature("Session Store")
@allure.story("Round trip")
@allure.severity(allure.severity_level.CRITICAL)
def test_turn_round_trip(store):
    session = store.create_session("claude-sonnet", "/work")
    store.add_message(session.id, "user", "hello")
    store.add_message(session.id, "assistant", "hi there", 120)
    assert store.update_stats(session.id, 120, 0.0042, "hello")

    loaded = store.get_session(session.id)
    assert [(m.role, m.content, m.tokens) for m in loaded.messages] == [
        ("user", "hello", None),
        ("assistant", "hi there", 120),
    ]
    assert loaded.total_tokens == 120
    assert loaded.total_cost == pytest.approx(0.0042)
    assert loaded.model == "claude-sonnet"
    assert loaded.cwd == "/work"
    assert loaded.title == "hello"


def test_stats_accumulate(store):
    session = store.create_session("m")
    store.update_stats(session.id, 10, 0.5)
    store.update_stats(session.id, 5, 0.25)
    loaded = store.get_session(session.id)
    assert (loaded.total_tokens, loaded.total_cost) == (15, pytest.approx(0.75))


def test_title_is_written_once(store):
    session = store.create_session("m")
    store.update_stats(session.id, 1, 0.0, "first prompt")
    store.update_stats(session.id, 1, 0.0, "second prompt")
    assert store.get_session(session.id).title == "first prompt"


def test_ids_are_short_and_unique(store):
    ids = {store.create_session("m").id for _ in range(20)}
    assert len(ids) == 20
    assert all(len(i) == 8 and i.isalnum() for i in ids)


@allure.feature("Session Store")
@allure.story("Unknown ids")
def test_unknown_ids(store):
    assert store.get_session("nope") is None
    assert store.update_stats("nope", 1, 0.1) is False
    assert store.set_backend_handle("nope", "h") is False
    assert store.delete_session("nope") is False
    with pytest.raises(SessionNotFoundError) as excinfo:
        store.add_message("nope", "user", "x")
    assert str(excinfo.value) == "Session not found: nope"


def test_invalid_role(store):
    session = store.create_session("m")
    with pytest.raises(ValueError):
        store.add_message(session.id, "robot", "beep")


def test_backend_handle(store):
    session = store.create_session("m")
    assert store.set_backend_handle(session.id, "conv-1")
    assert store.get_session(session.id).backend_handle == "conv-1"


@allure.feature("Session Store")
@allure.story("Deletion")
def test_delete_cascades_to_messages(store):
    session = store.create_session("m")
    store.add_message(session.id, "user", "x")

    assert store.delete_session(session.id)
    assert store.get_session(session.id) is None
    db = store._db
    assert db.fetch_all("SELECT * FROM messages WHERE session_id = ?", (session.id,)) == []


@allure.feature("Session Store")
@allure.story("Listing")
def test_last_session_and_listing(store):
    assert store.get_last_session() is None
    assert store.list_sessions() == []

    older = store.create_session("m")
    newer = store.create_session("m")
    store.add_message(newer.id, "user", "a")
    store.add_message(newer.id, "assistant", "b")
    # touching the older session makes it the most recent
    store.add_message(older.id, "user", "c")

    assert store.get_last_session().id == older.id
    summaries = store.list_sessions()
    assert [s.id for s in summaries] == [older.id, newer.id]
    assert [s.message_count for s in summaries] == [1, 2]
    assert [s.id for s in store.list_sessions(limit=1)] == [older.id]


def test_data_survives_reopen(tmp_path, clock):
    path = tmp_path / "sessions.db"
    db = Database(path)
    session = SessionStore(db, clock).create_session("m")
    SessionStore(db, clock).add_message(session.id, "user", "persisted")
    db.close()

    reopened = Database(path)
    try:
        loaded = SessionStore(reopened, clock).get_session(session.id)
        assert loaded.messages[0].content == "persisted"
    finally:
        reopened.close()
