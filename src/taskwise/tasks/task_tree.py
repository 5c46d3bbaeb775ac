# src/taskwise/tasks/task_tree.py

"""
Pure helpers over task forests (list of root TaskNodes).

Read helpers never mutate. Edit helpers return a NEW forest built from deep
copies so snapshots held by the history stay untouched.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from .task_models import TaskNode, TaskStatus, TaskTree


@dataclass(frozen=True, slots=True)
class FlatNode:
    node: TaskNode
    parent_id: str | None
    order: int
    depth: int


def iter_nodes(tree: Iterable[TaskNode]) -> Iterator[TaskNode]:
    """Pre-order walk."""
    stack = list(reversed(list(tree)))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.subtasks))


def flatten(tree: Iterable[TaskNode]) -> list[FlatNode]:
    """Pre-order list with parent id, sibling order and depth."""
    out: list[FlatNode] = []

    def walk(nodes: Iterable[TaskNode], parent_id: str | None, depth: int) -> None:
        for idx, node in enumerate(nodes):
            out.append(FlatNode(node=node, parent_id=parent_id, order=idx, depth=depth))
            walk(node.subtasks, node.id, depth + 1)

    walk(tree, None, 0)
    return out


def all_ids(tree: Iterable[TaskNode]) -> set[str]:
    return {n.id for n in iter_nodes(tree)}


def find_node(tree: Iterable[TaskNode], task_id: str) -> TaskNode | None:
    for node in iter_nodes(tree):
        if node.id == task_id:
            return node
    return None


def find_path(tree: Iterable[TaskNode], task_id: str) -> list[TaskNode] | None:
    """Root-to-node path (inclusive), or None if `task_id` is not in the tree."""

    def walk(nodes: Iterable[TaskNode], trail: list[TaskNode]) -> list[TaskNode] | None:
        for node in nodes:
            here = [*trail, node]
            if node.id == task_id:
                return here
            found = walk(node.subtasks, here)
            if found is not None:
                return found
        return None

    return walk(tree, [])


def ancestors(tree: Iterable[TaskNode], task_id: str) -> list[TaskNode]:
    """Ancestors of `task_id`, nearest first."""
    path = find_path(tree, task_id)
    if not path:
        return []
    return list(reversed(path[:-1]))


def descendant_ids(node: TaskNode, *, include_self: bool = True) -> set[str]:
    ids = {n.id for n in iter_nodes(node.subtasks)}
    if include_self:
        ids.add(node.id)
    return ids


def copy_tree(tree: Iterable[TaskNode]) -> TaskTree:
    return copy.deepcopy(list(tree))


def validate_tree(tree: Iterable[TaskNode]) -> None:
    """Raise ValueError on duplicate ids or a node reachable twice (shared/cyclic subtasks)."""
    seen_ids: set[str] = set()
    seen_objs: set[int] = set()

    def walk(nodes: Iterable[TaskNode]) -> None:
        for node in nodes:
            if id(node) in seen_objs:
                raise ValueError(f"task {node.id} appears more than once in the tree")
            seen_objs.add(id(node))
            if node.id in seen_ids:
                raise ValueError(f"duplicate task id {node.id}")
            seen_ids.add(node.id)
            walk(node.subtasks)

    walk(tree)


# ---- edits (copy-on-write) ----


def remove_tasks(tree: Iterable[TaskNode], task_ids: Iterable[str]) -> TaskTree:
    """Drop the given nodes together with all their descendants."""
    doomed = set(task_ids)

    def prune(nodes: Iterable[TaskNode]) -> TaskTree:
        kept: TaskTree = []
        for node in nodes:
            if node.id in doomed:
                continue
            clone = copy.deepcopy(node)
            clone.subtasks = prune(node.subtasks)
            kept.append(clone)
        return kept

    return prune(tree)


def map_nodes(tree: Iterable[TaskNode], fn: Callable[[TaskNode], None]) -> TaskTree:
    """Deep-copy the forest, then call `fn` on every copied node (pre-order)."""
    out = copy_tree(tree)
    for node in iter_nodes(out):
        fn(node)
    return out


_EDITABLE_FIELDS = frozenset({"title", "description", "priority", "status", "due_at", "assignee"})


def update_task(tree: Iterable[TaskNode], task_id: str, **fields: Any) -> TaskTree:
    unknown = set(fields) - _EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"fields not editable: {sorted(unknown)}")

    def apply(node: TaskNode) -> None:
        if node.id != task_id:
            return
        for name, value in fields.items():
            setattr(node, name, value)

    return map_nodes(tree, apply)


def set_status(tree: Iterable[TaskNode], task_ids: Iterable[str], status: TaskStatus) -> TaskTree:
    targets = set(task_ids)

    def apply(node: TaskNode) -> None:
        if node.id in targets:
            node.status = status
            if status == TaskStatus.DONE and node.completion_suggested:
                node.clear_completion_suggestion(keep_targets=True)

    return map_nodes(tree, apply)
