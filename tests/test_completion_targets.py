# tests/test_completion_targets.py

from __future__ import annotations

from taskwise.store.document_store import BOARD_ITEMS, CHAT_SESSIONS, MEETINGS, TASKS, DocumentStore
from taskwise.sync.completion_targets import apply_completion_targets, dedupe_targets
from taskwise.sync.session_views import ensure_session
from taskwise.tasks.task_models import CompletionSourceType, CompletionTarget, SessionType

from .fakes import FlakyStore

USER = "u1"


def _seed(store: DocumentStore) -> list[CompletionTarget]:
    store.insert(
        TASKS,
        {
            "_id": "c0",
            "user_id": USER,
            "source_session_type": "meeting",
            "source_session_id": "m0",
            "source_task_id": "t0",
            "title": "Send contract",
            "status": "todo",
            "completion_suggested": True,
            "completion_confidence": 0.7,
        },
    )
    subtask = {"id": "t0a", "title": "Print it", "status": "todo"}
    view = [{"id": "t0", "title": "Send contract", "status": "todo", "subtasks": [subtask]}]
    ensure_session(store, user_id=USER, session_type=SessionType.MEETING, session_id="m0")
    store.update(MEETINGS, "m0", {"extracted_tasks": view, "chat_session_id": "chat1"})
    ensure_session(store, user_id=USER, session_type=SessionType.CHAT, session_id="chat1")
    store.update(CHAT_SESSIONS, "chat1", {"suggested_tasks": view})
    ensure_session(
        store,
        user_id=USER,
        session_type=SessionType.CHAT,
        session_id="chat2",
        extra={"source_meeting_id": "m0", "suggested_tasks": view},
    )
    store.insert(BOARD_ITEMS, {"_id": "bi1", "user_id": USER, "task_canonical_id": "c0", "task_status": "todo"})
    return [
        CompletionTarget(CompletionSourceType.TASK, "c0", "c0"),
        CompletionTarget(CompletionSourceType.MEETING, "m0", "t0"),
    ]


def test_dedupe_targets_keeps_first() -> None:
    a = CompletionTarget(CompletionSourceType.TASK, "c0", "c0", "first")
    b = CompletionTarget(CompletionSourceType.TASK, "c0", "c0", "second")
    assert dedupe_targets([a, b]) == [a]


def test_every_copy_is_completed(store: DocumentStore) -> None:
    report = apply_completion_targets(store, USER, _seed(store))

    task = store.get(TASKS, "c0")
    assert task["status"] == "done"
    assert task["completion_suggested"] is False and task["completion_confidence"] is None
    assert report.tasks_updated == 1

    for collection, sid, field in (
        (MEETINGS, "m0", "extracted_tasks"),
        (CHAT_SESSIONS, "chat1", "suggested_tasks"),
        (CHAT_SESSIONS, "chat2", "suggested_tasks"),
    ):
        node = store.get(collection, sid)[field][0]
        assert node["status"] == "done"
        assert node["subtasks"][0] == {"id": "t0a", "title": "Print it", "status": "todo"}
    assert report.views_updated == 3

    assert store.get(BOARD_ITEMS, "bi1")["task_status"] == "done"
    assert report.board_items_updated == 1


def test_second_application_changes_nothing(store: DocumentStore) -> None:
    targets = _seed(store)
    apply_completion_targets(store, USER, targets)
    report = apply_completion_targets(store, USER, targets)
    assert (report.tasks_updated, report.views_updated, report.board_items_updated) == (0, 0, 0)


def test_other_users_are_untouched(store: DocumentStore) -> None:
    targets = _seed(store)
    report = apply_completion_targets(store, "someone-else", targets)
    assert store.get(TASKS, "c0")["status"] == "todo"
    assert report.tasks_updated == 0 and report.views_updated == 0


def test_failed_write_is_recorded_and_rest_continues(store: DocumentStore) -> None:
    targets = _seed(store)
    flaky = FlakyStore(store, fail_on={(TASKS, "update_many")})

    report = apply_completion_targets(flaky, USER, targets)

    assert [f.collection for f in report.failures] == [TASKS, TASKS]
    assert store.get(TASKS, "c0")["status"] == "todo"
    assert store.get(MEETINGS, "m0")["extracted_tasks"][0]["status"] == "done"

    healed = apply_completion_targets(store, USER, targets)
    assert healed.tasks_updated == 1
