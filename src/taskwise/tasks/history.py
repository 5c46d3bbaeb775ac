# src/taskwise/tasks/history.py

"""
Undo/redo over whole-tree snapshots.

- every content edit goes through apply(): the previous tree is pushed onto
  the undo stack and the redo stack is cleared
- undo/redo move the present tree between the stacks
- snapshots are deep copies, never shared with the caller
- selection changes are not history events and never come through here
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace

from .task_models import TaskNode, TaskTree
from .task_tree import copy_tree

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50

TreeOp = Callable[[TaskTree], TaskTree]


@dataclass(frozen=True, slots=True)
class TaskHistory:
    present: tuple[TaskNode, ...] = ()
    undo_stack: tuple[tuple[TaskNode, ...], ...] = ()
    redo_stack: tuple[tuple[TaskNode, ...], ...] = ()
    limit: int = DEFAULT_HISTORY_LIMIT

    @property
    def tree(self) -> TaskTree:
        """Fresh copy of the present tree, safe to mutate."""
        return copy_tree(self.present)

    @property
    def can_undo(self) -> bool:
        return bool(self.undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self.redo_stack)


def _freeze(tree: Iterable[TaskNode]) -> tuple[TaskNode, ...]:
    return tuple(copy_tree(tree))


def reset(tree: Iterable[TaskNode], *, limit: int = DEFAULT_HISTORY_LIMIT) -> TaskHistory:
    """Start a fresh history (new session loaded, or a reconciled tree replaced the view)."""
    return TaskHistory(present=_freeze(tree), limit=max(1, limit))


def apply(history: TaskHistory, op: TreeOp) -> TaskHistory:
    """
    Run `op` on a copy of the present tree and record the result.

    A result equal to the present tree is not recorded.
    """
    new_tree = op(copy_tree(history.present))
    new_present = _freeze(new_tree)
    if new_present == history.present:
        return history

    undo_stack = (*history.undo_stack, history.present)
    if len(undo_stack) > history.limit:
        undo_stack = undo_stack[-history.limit:]

    return replace(history, present=new_present, undo_stack=undo_stack, redo_stack=())


def undo(history: TaskHistory) -> tuple[TaskTree, TaskHistory]:
    if not history.undo_stack:
        return history.tree, history
    previous = history.undo_stack[-1]
    new_history = replace(
        history,
        present=previous,
        undo_stack=history.undo_stack[:-1],
        redo_stack=(*history.redo_stack, history.present),
    )
    return new_history.tree, new_history


def redo(history: TaskHistory) -> tuple[TaskTree, TaskHistory]:
    if not history.redo_stack:
        return history.tree, history
    following = history.redo_stack[-1]
    new_history = replace(
        history,
        present=following,
        undo_stack=(*history.undo_stack, history.present),
        redo_stack=history.redo_stack[:-1],
    )
    return new_history.tree, new_history
