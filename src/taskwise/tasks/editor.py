# src/taskwise/tasks/editor.py

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from ..completion.approval import approve_completion, dismiss_completion
from . import history as hist
from .selection import CheckState, checkbox_state, prune_orphans, select_all, selected_root_ids, toggle_selection
from .task_models import SessionType, TaskNode, TaskStatus, TaskTree
from .task_tree import find_node, remove_tasks, set_status, update_task

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TaskTreeEditor:
    """
    One session's task tree as the user edits it.

    Holds the history (content) and the selection (view state) side by side:
    - content edits go through the history and prune the selection afterwards
    - selection changes never touch the history
    - undo/redo restore content and prune whatever selection no longer exists
    """

    history: hist.TaskHistory
    session_type: SessionType | None = None
    session_id: str | None = None
    selected_ids: frozenset[str] = frozenset()
    # Per-session UI flags live here, not in module globals.
    people_discovery_shown: bool = False

    @classmethod
    def open(
        cls,
        tree: Iterable[TaskNode],
        *,
        session_type: SessionType | None = None,
        session_id: str | None = None,
        history_limit: int = hist.DEFAULT_HISTORY_LIMIT,
    ) -> TaskTreeEditor:
        return cls(
            history=hist.reset(tree, limit=history_limit),
            session_type=session_type,
            session_id=session_id,
        )

    @property
    def tree(self) -> TaskTree:
        return self.history.tree

    # ---- selection ----

    def toggle(self, task_id: str, selected: bool) -> frozenset[str]:
        self.selected_ids = toggle_selection(list(self.history.present), self.selected_ids, task_id, selected)
        return self.selected_ids

    def select_all(self, selected: bool = True) -> frozenset[str]:
        self.selected_ids = select_all(self.history.present, selected)
        return self.selected_ids

    def checkbox_state(self, task_id: str) -> CheckState:
        node = find_node(self.history.present, task_id)
        if node is None:
            return CheckState.UNCHECKED
        return checkbox_state(node, self.selected_ids)

    # ---- content edits (one history step each) ----

    def _commit(self, op: hist.TreeOp) -> TaskTree:
        self.history = hist.apply(self.history, op)
        self.selected_ids = prune_orphans(self.history.present, self.selected_ids)
        return self.tree

    def delete_tasks(self, task_ids: Iterable[str]) -> TaskTree:
        ids = list(task_ids)
        logger.debug("Deleting %d task(s) with descendants", len(ids))
        return self._commit(lambda tree: remove_tasks(tree, ids))

    def delete_selected(self) -> TaskTree:
        roots = selected_root_ids(self.history.present, self.selected_ids)
        if not roots:
            return self.tree
        return self.delete_tasks(roots)

    def update_task(self, task_id: str, **fields: Any) -> TaskTree:
        return self._commit(lambda tree: update_task(tree, task_id, **fields))

    def set_status(self, task_ids: Iterable[str], status: TaskStatus) -> TaskTree:
        ids = list(task_ids)
        return self._commit(lambda tree: set_status(tree, ids, status))

    def approve_completion(self, task_id: str) -> TaskTree:
        return self._commit(lambda tree: approve_completion(tree, task_id))

    def dismiss_completion(self, task_id: str) -> TaskTree:
        return self._commit(
            lambda tree: dismiss_completion(
                tree, task_id, session_type=self.session_type, session_id=self.session_id
            )
        )

    def replace_tree(self, tree: Iterable[TaskNode]) -> TaskTree:
        """Swap in a freshly reconciled tree as an undoable step."""
        new_tree = list(tree)
        return self._commit(lambda _old: new_tree)

    # ---- history ----

    def undo(self) -> TaskTree:
        tree, self.history = hist.undo(self.history)
        self.selected_ids = prune_orphans(tree, self.selected_ids)
        return tree

    def redo(self) -> TaskTree:
        tree, self.history = hist.redo(self.history)
        self.selected_ids = prune_orphans(tree, self.selected_ids)
        return tree
