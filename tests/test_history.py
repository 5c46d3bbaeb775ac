# tests/test_history.py

from __future__ import annotations

from taskwise.tasks import history as hist
from taskwise.tasks.task_tree import remove_tasks, update_task

from .fakes import task


def test_undo_redo_round_trip() -> None:
    original = [task("a", "Pay rent"), task("b", "Book venue")]
    h = hist.reset(original)

    h = hist.apply(h, lambda tree: update_task(tree, "a", title="Pay March rent"))
    edited = h.tree

    tree, h = hist.undo(h)
    assert tree == original
    assert h.can_redo

    tree, h = hist.redo(h)
    assert tree == edited
    assert not h.can_redo


def test_new_edit_clears_redo() -> None:
    h = hist.reset([task("a", "Pay rent")])
    h = hist.apply(h, lambda tree: update_task(tree, "a", title="One"))
    _, h = hist.undo(h)
    h = hist.apply(h, lambda tree: update_task(tree, "a", title="Two"))
    assert not h.can_redo
    assert h.tree[0].title == "Two"


def test_noop_edit_is_not_recorded() -> None:
    h = hist.reset([task("a", "Pay rent")])
    same = hist.apply(h, lambda tree: remove_tasks(tree, ["missing"]))
    assert same is h
    assert not same.can_undo


def test_empty_stacks_return_unchanged() -> None:
    h = hist.reset([task("a", "Pay rent")])
    tree, h2 = hist.undo(h)
    assert h2 is h and tree[0].title == "Pay rent"
    tree, h3 = hist.redo(h)
    assert h3 is h


def test_snapshots_are_isolated_from_callers() -> None:
    original = [task("a", "Pay rent")]
    h = hist.reset(original)
    original[0].title = "mutated"
    h.tree[0].title = "also mutated"
    assert h.present[0].title == "Pay rent"


def test_limit_drops_oldest_steps() -> None:
    h = hist.reset([task("a", "v0")], limit=2)
    for i in range(1, 5):
        h = hist.apply(h, lambda tree, i=i: update_task(tree, "a", title=f"v{i}"))
    assert len(h.undo_stack) == 2
    _, h = hist.undo(h)
    tree, h = hist.undo(h)
    assert tree[0].title == "v2"
    assert not h.can_undo
