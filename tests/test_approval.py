# tests/test_approval.py

from __future__ import annotations

from itertools import count

from taskwise.completion.approval import (
    CompletionPreferences,
    apply_auto_approval,
    belongs_to_session,
    dismiss_completion,
    filter_tasks_for_session_sync,
    merge_completion_suggestions,
    suggestion_node_id,
)
from taskwise.completion.matcher import CompletionMatch
from taskwise.tasks.task_models import Assignee, CompletionSourceType, CompletionTarget, SessionType, TaskStatus
from taskwise.tasks.task_tree import find_node

from .fakes import task

FOREIGN = CompletionTarget(CompletionSourceType.MEETING, "m0", "t1")


def _match(title: str, confidence: float, **fields) -> CompletionMatch:
    return CompletionMatch(task_id="c1", title=title, confidence=confidence, targets=[FOREIGN], **fields)


def test_merge_flags_existing_node_and_keeps_own_target() -> None:
    tree = [task("a", "Send contract to Sam")]
    merged = merge_completion_suggestions(
        tree, [_match("send contract to Sam", 0.8)], session_type=SessionType.CHAT, session_id="c7"
    )
    node = merged[0]
    assert node.completion_suggested and node.completion_confidence == 0.8
    assert {t.key for t in node.completion_targets} == {FOREIGN.key, "chat:c7:a"}
    assert belongs_to_session(node, SessionType.CHAT, "c7")
    assert tree[0].completion_suggested is False


def test_merge_appends_unmatched_suggestion() -> None:
    seq = count(1)
    merged = merge_completion_suggestions(
        [task("a", "Book venue")],
        [_match("Send contract", 0.7, assignee=Assignee(name="Ann"))],
        session_type=SessionType.CHAT,
        session_id="c7",
        id_factory=lambda: f"n{next(seq)}",
    )
    assert [n.id for n in merged] == ["a", "n1"]
    added = merged[1]
    assert added.completion_suggested and added.completion_targets == [FOREIGN]
    assert not belongs_to_session(added, SessionType.CHAT, "c7")


def test_merge_never_flags_done_nodes() -> None:
    merged = merge_completion_suggestions(
        [task("a", "Send contract", status=TaskStatus.DONE)], [_match("Send contract", 0.9)], id_factory=lambda: "n1"
    )
    assert not merged[0].completion_suggested
    assert merged[1].id == "n1"


def test_auto_approval_threshold() -> None:
    tree = [
        task("hi", "Pay rent", completion_suggested=True, completion_confidence=0.9, completion_targets=[FOREIGN]),
        task("lo", "Book venue", completion_suggested=True, completion_confidence=0.5),
    ]
    out = apply_auto_approval(tree, 0.8)
    hi, lo = find_node(out, "hi"), find_node(out, "lo")
    assert hi.status == TaskStatus.DONE and not hi.completion_suggested
    assert hi.completion_targets == [FOREIGN]
    assert lo.status == TaskStatus.TODO and lo.completion_suggested


def test_auto_approval_threshold_is_clamped() -> None:
    tree = [task("a", "Pay rent", completion_suggested=True, completion_confidence=0.3)]
    assert apply_auto_approval(tree, 0.0)[0].status == TaskStatus.TODO


def test_dismiss_keeps_own_node_but_clears_flag() -> None:
    own = CompletionTarget(CompletionSourceType.CHAT, "c7", "a")
    tree = [task("a", "Pay rent", completion_suggested=True, completion_confidence=0.9, completion_targets=[FOREIGN, own])]
    out = dismiss_completion(tree, "a", session_type=SessionType.CHAT, session_id="c7")
    assert out[0].id == "a"
    assert not out[0].completion_suggested and out[0].completion_targets == []


def test_filter_for_session_sync_drops_foreign_suggestions() -> None:
    own = CompletionTarget(CompletionSourceType.CHAT, "c7", "b")
    tree = [
        task("a", "Plain task"),
        task("b", "Own suggestion", completion_suggested=True, completion_confidence=0.7, completion_targets=[own]),
        task("c", "Foreign suggestion", completion_suggested=True, completion_confidence=0.7, completion_targets=[FOREIGN]),
    ]
    kept = filter_tasks_for_session_sync(tree, SessionType.CHAT, "c7")
    assert [n.id for n in kept] == ["a", "b"]


def test_preferences() -> None:
    prefs = CompletionPreferences(auto_approve=True, match_threshold=0.1)
    assert prefs.effective_match_threshold == 0.4
    assert prefs.effective_auto_approve_threshold == 0.4

    from_doc = CompletionPreferences.from_document(
        {"auto_approve_completed_tasks": True, "completion_match_threshold": 0.99, "auto_approve_threshold": 0.8}
    )
    assert from_doc.auto_approve is True
    assert from_doc.effective_match_threshold == 0.95
    assert from_doc.effective_auto_approve_threshold == 0.8
    assert CompletionPreferences.from_document(None) == CompletionPreferences()


def test_appended_suggestion_ids_are_stable() -> None:
    def merge():
        return merge_completion_suggestions(
            [task("a", "Book venue")],
            [_match("Send contract", 0.7)],
            session_type=SessionType.CHAT,
            session_id="c7",
        )

    first, second = merge(), merge()
    assert first[1].id == second[1].id
    assert first[1].id == suggestion_node_id(SessionType.CHAT, "c7", "c1")
    assert suggestion_node_id(SessionType.CHAT, "c8", "c1") != first[1].id
