# tests/test_pipeline.py

from __future__ import annotations

import asyncio

import pytest

from taskwise.completion.approval import CompletionPreferences
from taskwise.store.document_store import CHAT_SESSIONS, MEETINGS, TASKS, USERS, DocumentStore
from taskwise.sync.pipeline import (
    IngestionStatus,
    SessionContext,
    ingest_session,
    ingest_sessions,
    load_open_tasks,
    load_preferences,
)
from taskwise.sync.session_views import ensure_session
from taskwise.tasks.task_models import Person, SessionType

from .fakes import FailingExtractor, FakeExtractor, InMemoryPersonDirectory

USER = "u1"


def _seed_open_task(store: DocumentStore) -> None:
    store.insert(
        TASKS,
        {
            "_id": "c0",
            "user_id": USER,
            "source_session_type": "meeting",
            "source_session_id": "m0",
            "source_task_id": "t0",
            "title": "Send contract to Sam",
            "status": "todo",
            "task_state": "active",
        },
    )
    ensure_session(store, user_id=USER, session_type=SessionType.MEETING, session_id="m0", title="Kickoff")
    store.update(MEETINGS, "m0", {"extracted_tasks": [{"id": "t0", "title": "Send contract to Sam"}]})


def _context(**fields) -> SessionContext:
    base = dict(
        user_id=USER,
        session_type=SessionType.CHAT,
        session_id="chat7",
        session_name="Friday sync",
        text="I already sent the contract to Sam",
    )
    base.update(fields)
    return SessionContext(**base)


@pytest.mark.asyncio
async def test_completion_is_suggested_not_applied(store: DocumentStore) -> None:
    _seed_open_task(store)
    extractor = FakeExtractor([{"id": "n1", "title": "Draft agenda"}])

    outcome = await ingest_session(store, extractor, _context())

    assert outcome.ok
    assert [m.task_id for m in outcome.matches] == ["c0"]
    assert {t.key for t in outcome.matches[0].targets} == {"task:c0:c0", "meeting:m0:t0"}
    assert extractor.calls[0].session_id == "chat7"

    # the suggestion shows up in the chat view but never becomes a canonical task of the chat
    chat = store.get(CHAT_SESSIONS, "chat7")
    assert [t["title"] for t in chat["suggested_tasks"]] == ["Draft agenda", "Send contract to Sam"]
    assert chat["suggested_tasks"][1]["completion_suggested"] is True
    assert store.count(TASKS, {"source_session_id": "chat7"}) == 1
    assert store.get(TASKS, "c0")["status"] == "todo"


@pytest.mark.asyncio
async def test_reingest_keeps_suggestion_ids(store: DocumentStore) -> None:
    _seed_open_task(store)
    extractor = FakeExtractor([{"id": "n1", "title": "Draft agenda"}])

    first = await ingest_session(store, extractor, _context())
    second = await ingest_session(store, extractor, _context())

    assert [n.id for n in first.tree] == [n.id for n in second.tree]
    assert second.result.session_view_written is False
    assert second.result.changed is False
    assert store.count(TASKS, {"source_session_id": "chat7"}) == 1


@pytest.mark.asyncio
async def test_auto_approval_completes_everywhere(store: DocumentStore) -> None:
    _seed_open_task(store)
    prefs = CompletionPreferences(auto_approve=True)

    outcome = await ingest_session(store, FakeExtractor([]), _context(), prefs)

    assert outcome.ok and outcome.failures == []
    assert store.get(TASKS, "c0")["status"] == "done"
    assert store.get(MEETINGS, "m0")["extracted_tasks"][0]["status"] == "done"

    again = await ingest_session(store, FakeExtractor([]), _context(), prefs)
    assert again.matches == []
    assert again.result.completion is None
    assert again.result.inserted_ids == []
    assert store.get(TASKS, "c0")["status"] == "done"


@pytest.mark.asyncio
async def test_extractor_failure_writes_nothing(store: DocumentStore) -> None:
    before = store.count_all()
    outcome = await ingest_session(store, FailingExtractor(), _context())

    assert outcome.status == IngestionStatus.EXTRACTION_FAILED
    assert outcome.error is not None and outcome.error.session_id == "chat7"
    assert outcome.result is None
    assert store.count_all() == before


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"title": "Not a list"}, "just text", 42])
async def test_unusable_extractor_output(store: DocumentStore, payload) -> None:
    outcome = await ingest_session(store, FakeExtractor(payload), _context())
    assert outcome.status == IngestionStatus.EXTRACTION_FAILED
    assert store.count_all() == 0


@pytest.mark.asyncio
async def test_assignees_resolve_against_directory(store: DocumentStore) -> None:
    directory = InMemoryPersonDirectory([Person(id="p1", name="Ann Lee", email="ann@example.com")])
    extractor = FakeExtractor([{"id": "a", "title": "Pay rent", "assignee": "ann lee"}])

    await ingest_session(store, extractor, _context(text=""), directory=directory)

    doc = store.find_one(TASKS, {"source_task_id": "a"})
    assert doc["assignee"] == {"uid": "p1", "name": "Ann Lee", "email": "ann@example.com"}


@pytest.mark.asyncio
async def test_independent_sessions_ingest_concurrently(store: DocumentStore) -> None:
    extractor = FakeExtractor([{"id": "a", "title": "Pay rent"}])
    outcomes = await ingest_sessions(
        store,
        extractor,
        [_context(session_id="s1", text=""), _context(session_id="s2", text="")],
    )
    assert [o.session_id for o in outcomes] == ["s1", "s2"]
    assert all(o.ok for o in outcomes)
    assert store.count(TASKS) == 2


class _SlowExtractor:
    def __init__(self) -> None:
        self.in_flight = 0
        self.peak = 0

    async def extract(self, context):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        await asyncio.sleep(0.01)
        self.in_flight -= 1
        return [{"id": "a", "title": f"Pay rent {context.session_id}"}]


@pytest.mark.asyncio
async def test_extractions_overlap_while_store_work_stays_serial(store: DocumentStore) -> None:
    extractor = _SlowExtractor()
    contexts = [_context(session_id=f"s{i}", text="") for i in range(3)]

    outcomes = await ingest_sessions(store, extractor, contexts)

    assert extractor.peak == 3
    assert [len(o.result.inserted_ids) for o in outcomes] == [1, 1, 1]


def test_preferences_from_user_document(store: DocumentStore) -> None:
    store.insert(USERS, {"_id": USER, "auto_approve_completed_tasks": True, "completion_match_threshold": 0.7})
    prefs = load_preferences(store, USER)
    assert prefs.auto_approve is True
    assert prefs.effective_match_threshold == 0.7
    assert load_preferences(store, "nobody") == CompletionPreferences()


def test_open_tasks_include_tasks_without_workspace(store: DocumentStore) -> None:
    _seed_open_task(store)
    store.insert(
        TASKS,
        {
            "_id": "c9",
            "user_id": USER,
            "workspace_id": "w2",
            "source_session_type": "meeting",
            "source_session_id": "m9",
            "source_task_id": "t9",
            "title": "Other workspace",
            "status": "todo",
            "task_state": "active",
        },
    )

    tasks = load_open_tasks(store, USER, workspace_id="w1")

    assert {n.canonical_id for n in tasks if n.canonical_id} == {"c0"}
    assert {n.source_session_id for n in tasks} == {"m0"}
