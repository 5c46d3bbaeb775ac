# src/taskwise/tasks/selection.py

"""
Tri-state selection over a task forest.

Selection is a plain set of node ids held outside the tree. Checkbox state is
derived from it on demand:
- checked: the node and every descendant are selected
- unchecked: nothing in the node's subtree is selected
- indeterminate: anything in between (never for a leaf)

Toggling runs in two phases. Downward, the node and its whole subtree are
added or removed. Upward, each ancestor (nearest first) is selected iff all of
its direct children are now checked, and deselected otherwise.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import StrEnum

from .task_models import TaskNode
from .task_tree import all_ids, ancestors, descendant_ids, find_node, iter_nodes

logger = logging.getLogger(__name__)


class CheckState(StrEnum):
    CHECKED = "checked"
    UNCHECKED = "unchecked"
    INDETERMINATE = "indeterminate"


def checkbox_state(node: TaskNode, selected_ids: Iterable[str]) -> CheckState:
    selected = selected_ids if isinstance(selected_ids, (set, frozenset)) else set(selected_ids)
    subtree = descendant_ids(node)
    hits = sum(1 for i in subtree if i in selected)
    if hits == len(subtree):
        return CheckState.CHECKED
    if hits == 0:
        return CheckState.UNCHECKED
    return CheckState.INDETERMINATE


def group_checkbox_state(nodes: Iterable[TaskNode], selected_ids: Iterable[str]) -> CheckState:
    """State of a group header (e.g. an assignee section) over several roots."""
    selected = set(selected_ids)
    states = {checkbox_state(n, selected) for n in nodes}
    if not states or states == {CheckState.UNCHECKED}:
        return CheckState.UNCHECKED
    if states == {CheckState.CHECKED}:
        return CheckState.CHECKED
    return CheckState.INDETERMINATE


def prune_orphans(tree: Iterable[TaskNode], selected_ids: Iterable[str]) -> frozenset[str]:
    """Drop ids that no longer exist in the tree (e.g. after a delete or undo)."""
    selected = set(selected_ids)
    live = all_ids(tree)
    orphans = selected - live
    if orphans:
        logger.debug("Pruned %d orphan selection id(s)", len(orphans))
    return frozenset(selected & live)


def toggle_selection(
    tree: list[TaskNode],
    selected_ids: Iterable[str],
    task_id: str,
    selected: bool,
) -> frozenset[str]:
    """
    Select or deselect `task_id` with its subtree, then repair ancestors.

    Unknown ids leave the (orphan-pruned) selection unchanged.
    """
    current = set(prune_orphans(tree, selected_ids))
    node = find_node(tree, task_id)
    if node is None:
        logger.debug("Toggle for unknown task %s ignored", task_id)
        return frozenset(current)

    subtree = descendant_ids(node)
    if selected:
        current |= subtree
    else:
        current -= subtree

    for parent in ancestors(tree, task_id):
        if all(checkbox_state(child, current) == CheckState.CHECKED for child in parent.subtasks):
            current.add(parent.id)
        else:
            current.discard(parent.id)

    return frozenset(current)


def select_all(tree: Iterable[TaskNode], selected: bool = True) -> frozenset[str]:
    return frozenset(all_ids(tree)) if selected else frozenset()


def selected_root_ids(tree: Iterable[TaskNode], selected_ids: Iterable[str]) -> list[str]:
    """
    Top-most selected nodes, in tree order.

    Bulk actions (delete, share, push) act on these; descendants come along.
    """
    selected = set(selected_ids)
    out: list[str] = []

    def walk(nodes: Iterable[TaskNode]) -> None:
        for node in nodes:
            if node.id in selected:
                out.append(node.id)
                continue
            walk(node.subtasks)

    walk(tree)
    return out


def selected_nodes(tree: Iterable[TaskNode], selected_ids: Iterable[str]) -> list[TaskNode]:
    selected = set(selected_ids)
    return [n for n in iter_nodes(tree) if n.id in selected]
