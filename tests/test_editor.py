# tests/test_editor.py

from __future__ import annotations

from taskwise.tasks.editor import TaskTreeEditor
from taskwise.tasks.selection import CheckState
from taskwise.tasks.task_models import CompletionSourceType, CompletionTarget, SessionType, TaskStatus
from taskwise.tasks.task_tree import all_ids, find_node

from .fakes import task


def _editor() -> TaskTreeEditor:
    tree = [
        task("p", "Plan offsite", task("c1", "Book venue"), task("c2", "Order food")),
        task("solo", "Pay rent"),
    ]
    return TaskTreeEditor.open(tree, session_type=SessionType.MEETING, session_id="m1")


def test_delete_parent_removes_subtree_in_one_step() -> None:
    ed = _editor()
    ed.toggle("p", True)
    assert ed.selected_ids == {"p", "c1", "c2"}

    ed.delete_selected()
    assert all_ids(ed.tree) == {"solo"}
    assert ed.selected_ids == frozenset()
    assert len(ed.history.undo_stack) == 1

    ed.undo()
    assert all_ids(ed.tree) == {"p", "c1", "c2", "solo"}
    # selection is view state: it does not come back with undo
    assert ed.selected_ids == frozenset()


def test_undo_prunes_selection_of_restored_away_nodes() -> None:
    ed = _editor()
    ed.replace_tree([*ed.tree, task("extra", "Call Bob")])
    ed.toggle("extra", True)
    ed.undo()
    assert "extra" not in ed.selected_ids


def test_selection_changes_are_not_history() -> None:
    ed = _editor()
    ed.select_all()
    ed.toggle("c1", False)
    assert not ed.history.can_undo
    assert ed.checkbox_state("p") == CheckState.INDETERMINATE
    assert ed.checkbox_state("nope") == CheckState.UNCHECKED


def test_status_and_field_edits() -> None:
    ed = _editor()
    ed.update_task("solo", title="Pay April rent")
    ed.set_status(["c1"], TaskStatus.DONE)
    assert find_node(ed.tree, "solo").title == "Pay April rent"
    assert find_node(ed.tree, "c1").status == TaskStatus.DONE
    assert len(ed.history.undo_stack) == 2


def test_approve_and_dismiss_completion() -> None:
    own = CompletionTarget(CompletionSourceType.MEETING, "m1", "solo")
    foreign = CompletionTarget(CompletionSourceType.CHAT, "c9", "t1")
    ed = TaskTreeEditor.open(
        [
            task("solo", "Pay rent", completion_suggested=True, completion_confidence=0.9, completion_targets=[own]),
            task("s2", "Send deck", completion_suggested=True, completion_confidence=0.7, completion_targets=[foreign]),
        ],
        session_type=SessionType.MEETING,
        session_id="m1",
    )

    ed.approve_completion("solo")
    node = find_node(ed.tree, "solo")
    assert node.status == TaskStatus.DONE and not node.completion_suggested
    assert node.completion_targets == [own]

    ed.dismiss_completion("s2")
    assert find_node(ed.tree, "s2") is None


def test_people_discovery_flag_is_per_editor() -> None:
    a, b = _editor(), _editor()
    a.people_discovery_shown = True
    assert b.people_discovery_shown is False
