# tests/test_selection.py

from __future__ import annotations

from taskwise.tasks.selection import (
    CheckState,
    checkbox_state,
    group_checkbox_state,
    prune_orphans,
    select_all,
    selected_root_ids,
    toggle_selection,
)
from taskwise.tasks.task_tree import find_node, iter_nodes

from .fakes import task


def _tree():
    return [
        task(
            "p",
            "Plan offsite",
            task("c1", "Book venue"),
            task("c2", "Order food", task("g1", "Pick caterer"), task("g2", "Collect diets")),
        ),
        task("solo", "Pay rent"),
    ]


def _assert_tri_state(tree, selected) -> None:
    """Every internal node is checked iff all children are checked, unchecked iff none is touched."""
    for node in iter_nodes(tree):
        state = checkbox_state(node, selected)
        if not node.subtasks:
            assert state != CheckState.INDETERMINATE
            continue
        child_states = {checkbox_state(c, selected) for c in node.subtasks}
        if child_states == {CheckState.CHECKED}:
            assert state == CheckState.CHECKED
        elif child_states == {CheckState.UNCHECKED}:
            assert state == CheckState.UNCHECKED
        else:
            assert state == CheckState.INDETERMINATE


def test_selecting_parent_selects_subtree() -> None:
    tree = _tree()
    selected = toggle_selection(tree, frozenset(), "p", True)
    assert selected == {"p", "c1", "c2", "g1", "g2"}
    assert checkbox_state(tree[0], selected) == CheckState.CHECKED


def test_last_child_selects_ancestors() -> None:
    tree = _tree()
    selected = toggle_selection(tree, frozenset(), "c1", True)
    selected = toggle_selection(tree, selected, "g1", True)
    assert checkbox_state(tree[0], selected) == CheckState.INDETERMINATE
    assert "p" not in selected

    selected = toggle_selection(tree, selected, "g2", True)
    assert {"c2", "p"} <= selected
    assert checkbox_state(tree[0], selected) == CheckState.CHECKED


def test_deselecting_grandchild_clears_ancestors() -> None:
    tree = _tree()
    selected = toggle_selection(tree, frozenset(), "p", True)
    selected = toggle_selection(tree, selected, "g2", False)
    assert "c2" not in selected
    assert "p" not in selected
    assert checkbox_state(find_node(tree, "c2"), selected) == CheckState.INDETERMINATE
    assert checkbox_state(tree[0], selected) == CheckState.INDETERMINATE


def test_tri_state_holds_after_any_toggle_sequence() -> None:
    tree = _tree()
    selected: frozenset[str] = frozenset()
    steps = [("g1", True), ("c1", True), ("p", False), ("g2", True), ("g1", True), ("c2", False), ("solo", True)]
    for task_id, on in steps:
        selected = toggle_selection(tree, selected, task_id, on)
        _assert_tri_state(tree, selected)


def test_orphans_are_pruned_and_unknown_toggle_is_ignored() -> None:
    tree = _tree()
    assert prune_orphans(tree, {"c1", "gone"}) == {"c1"}
    assert toggle_selection(tree, {"gone", "solo"}, "missing", True) == {"solo"}


def test_select_all_and_root_ids() -> None:
    tree = _tree()
    everything = select_all(tree)
    assert len(everything) == 6
    assert select_all(tree, False) == frozenset()
    assert selected_root_ids(tree, everything) == ["p", "solo"]
    assert selected_root_ids(tree, {"c2", "g1", "solo"}) == ["c2", "solo"]


def test_group_checkbox_state() -> None:
    tree = _tree()
    assert group_checkbox_state(tree, set()) == CheckState.UNCHECKED
    assert group_checkbox_state(tree, select_all(tree)) == CheckState.CHECKED
    assert group_checkbox_state(tree, {"solo"}) == CheckState.INDETERMINATE
