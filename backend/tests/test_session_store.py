"""Tests for the in-memory session store."""

import threading

from services.session_store import SessionStore


def test_create_and_get():
    store = SessionStore()
    session = store.create("/tmp/work", repo_context="widgets")

    fetched = store.get(session.id)
    assert fetched == session
    assert fetched.workingDirectory == "/tmp/work"
    assert fetched.repoContext == "widgets"
    assert fetched.messages == []
    assert fetched.metadata.totalPrompts == 0
    assert fetched.createdAt == fetched.updatedAt


def test_ids_are_unique():
    store = SessionStore()
    ids = {store.create("/tmp").id for _ in range(50)}
    assert len(ids) == 50
    assert store.count() == 50


def test_returned_sessions_are_snapshots():
    store = SessionStore()
    session = store.create("/tmp")
    session.messages.append({"type": "tampered"})
    session.workingDirectory = "/elsewhere"

    fetched = store.get(session.id)
    assert fetched.messages == []
    assert fetched.workingDirectory == "/tmp"


def test_append_and_touch_updates_history():
    store = SessionStore()
    session = store.create("/tmp")

    assert store.append_and_touch(session.id, [{"type": "a"}, {"type": "b"}], "first")
    assert store.append_and_touch(session.id, [{"type": "c"}], "second")

    fetched = store.get(session.id)
    assert [m["type"] for m in fetched.messages] == ["a", "b", "c"]
    assert fetched.metadata.totalPrompts == 2
    assert fetched.metadata.lastPrompt == "second"
    assert fetched.updatedAt >= fetched.createdAt


def test_append_to_deleted_session_is_a_noop():
    store = SessionStore()
    session = store.create("/tmp")
    assert store.delete(session.id)

    assert store.append_and_touch(session.id, [{"type": "late"}], "prompt") is False
    assert store.get(session.id) is None
    assert store.delete(session.id) is False


def test_list_all_and_count():
    store = SessionStore()
    first = store.create("/a")
    second = store.create("/b")

    assert {s.id for s in store.list_all()} == {first.id, second.id}
    assert store.count() == 2


def test_concurrent_appends_are_not_lost():
    store = SessionStore()
    session = store.create("/tmp")

    def _append(n):
        for i in range(100):
            store.append_and_touch(session.id, [{"type": "m", "n": n, "i": i}], "p")

    threads = [threading.Thread(target=_append, args=(n,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    fetched = store.get(session.id)
    assert len(fetched.messages) == 400
    assert fetched.metadata.totalPrompts == 400
