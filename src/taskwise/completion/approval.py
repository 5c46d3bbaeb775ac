# src/taskwise/completion/approval.py

"""
What happens to completion matches once they exist.

Matching only proposes. This module decides how proposals show up in a
session's tree and when they turn into real status changes:
- merge: flag matching nodes in place, append the rest as suggestion nodes
- auto-approval: policy-driven, applied after merging
- approve/dismiss: explicit user decisions on a single node
- session-sync filter: suggestion nodes that belong to other sessions never
  become canonical tasks of this one
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from ..config import DEFAULT_MATCH_THRESHOLD, clamp_match_threshold
from ..tasks.assignee import assignee_key
from ..tasks.task_models import (
    CompletionSourceType,
    CompletionTarget,
    SessionType,
    TaskNode,
    TaskStatus,
    TaskTree,
)
from ..tasks.task_tree import copy_tree, iter_nodes, map_nodes, remove_tasks
from ..tasks.text_keys import normalize_title_key
from .matcher import CompletionMatch

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CompletionPreferences:
    """Per-user (or per-workspace) switches for completion handling."""

    auto_approve: bool = False
    match_threshold: float = DEFAULT_MATCH_THRESHOLD
    auto_approve_threshold: float | None = None

    @property
    def effective_match_threshold(self) -> float:
        return clamp_match_threshold(self.match_threshold)

    @property
    def effective_auto_approve_threshold(self) -> float:
        if self.auto_approve_threshold is None:
            return self.effective_match_threshold
        return clamp_match_threshold(self.auto_approve_threshold)

    @classmethod
    def from_settings(cls, settings) -> CompletionPreferences:
        return cls(
            auto_approve=bool(getattr(settings, "auto_approve_completed_tasks", False)),
            match_threshold=getattr(settings, "completion_match_threshold", DEFAULT_MATCH_THRESHOLD),
            auto_approve_threshold=getattr(settings, "auto_approve_threshold", None),
        )

    @classmethod
    def from_document(cls, doc: Mapping[str, Any] | None, *, defaults: CompletionPreferences | None = None):
        """Read preferences stored on a user/workspace document, falling back to `defaults`."""
        base = defaults or cls()
        if not doc:
            return base
        auto = doc.get("auto_approve_completed_tasks", base.auto_approve)
        threshold = doc.get("completion_match_threshold", base.match_threshold)
        return cls(
            auto_approve=bool(auto),
            match_threshold=clamp_match_threshold(threshold),
            auto_approve_threshold=doc.get("auto_approve_threshold", base.auto_approve_threshold),
        )


def _match_key(title: str, assignee) -> str:
    return f"{normalize_title_key(title)}|{assignee_key(assignee)}"


def suggestion_node_id(session_type: SessionType | None, session_id: str | None, task_id: str) -> str:
    """Stable id of the suggestion node a session carries for a foreign task."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"taskwise:suggestion:{session_type or ''}:{session_id or ''}:{task_id}"))


def merge_completion_suggestions(
    tree: Iterable[TaskNode],
    matches: Iterable[CompletionMatch],
    *,
    session_type: SessionType | None = None,
    session_id: str | None = None,
    session_name: str | None = None,
    id_factory: Callable[[], str] | None = None,
) -> TaskTree:
    """
    Fold matches into a session tree.

    - a node with the same (title, assignee) key is flagged in place and keeps
      a target pointing at itself, so it still syncs with this session
    - unmatched suggestions are appended as new root nodes; their ids derive
      from (session, matched task) so re-extraction keeps them stable
    - done nodes are never flagged
    """
    by_key: dict[str, CompletionMatch] = {}
    for m in matches:
        by_key.setdefault(_match_key(m.title, m.assignee), m)
    if not by_key:
        return copy_tree(tree)

    out = copy_tree(tree)
    for node in iter_nodes(out):
        if node.is_done:
            continue
        m = by_key.pop(_match_key(node.title, node.assignee), None)
        if m is None:
            continue
        targets = list(m.targets)
        if session_type is not None and session_id:
            own = CompletionTarget(
                source_type=CompletionSourceType.for_session(session_type),
                source_session_id=session_id,
                task_id=node.id,
                source_session_name=session_name,
            )
            if all(t.key != own.key for t in targets):
                targets.append(own)
        node.suggest_completion(m.confidence, targets, m.evidence)

    seen_ids = {n.id for n in iter_nodes(out)}
    for m in by_key.values():
        base_id = id_factory() if id_factory else suggestion_node_id(session_type, session_id, m.task_id)
        node_id, attempt = base_id, 0
        while node_id in seen_ids:
            attempt += 1
            node_id = f"{base_id}-{attempt}"
        seen_ids.add(node_id)
        out.append(
            TaskNode(
                id=node_id,
                title=m.title,
                description=m.description,
                assignee=m.assignee,
                status=TaskStatus.TODO,
                completion_suggested=True,
                completion_confidence=m.confidence,
                completion_targets=list(m.targets),
                completion_evidence=list(m.evidence),
                source_session_id=session_id,
                source_session_type=session_type,
                source_session_name=session_name,
            )
        )

    return out


def apply_auto_approval(tree: Iterable[TaskNode], threshold: float) -> TaskTree:
    """Turn every suggestion at or above `threshold` into a done task (targets kept for propagation)."""
    limit = clamp_match_threshold(threshold)
    approved = 0

    def apply(node: TaskNode) -> None:
        nonlocal approved
        if not node.completion_suggested or node.completion_confidence is None:
            return
        if node.completion_confidence >= limit:
            node.status = TaskStatus.DONE
            node.clear_completion_suggestion(keep_targets=True)
            approved += 1

    out = map_nodes(tree, apply)
    if approved:
        logger.info("Auto-approved %d completion suggestion(s) (threshold=%.2f)", approved, limit)
    return out


def approve_completion(tree: Iterable[TaskNode], task_id: str) -> TaskTree:
    def apply(node: TaskNode) -> None:
        if node.id == task_id and node.completion_suggested:
            node.status = TaskStatus.DONE
            node.clear_completion_suggestion(keep_targets=True)

    return map_nodes(tree, apply)


def belongs_to_session(node: TaskNode, session_type: SessionType, session_id: str) -> bool:
    """False for suggestion nodes whose targets all live in other sessions."""
    if not node.completion_targets:
        return True
    source = CompletionSourceType.for_session(session_type)
    return any(
        t.source_type == source and t.source_session_id == session_id for t in node.completion_targets
    )


def dismiss_completion(
    tree: Iterable[TaskNode],
    task_id: str,
    *,
    session_type: SessionType | None = None,
    session_id: str | None = None,
) -> TaskTree:
    """
    Reject a suggestion.

    A suggestion node that only stands in for another session's task is
    removed; a real node of this session just loses the flag.
    """
    nodes = list(tree)
    target = next((n for n in iter_nodes(nodes) if n.id == task_id), None)
    if target is None or not target.completion_suggested:
        return copy_tree(nodes)
    if session_type is not None and session_id and not belongs_to_session(target, session_type, session_id):
        return remove_tasks(nodes, [task_id])

    def apply(node: TaskNode) -> None:
        if node.id == task_id:
            node.clear_completion_suggestion()

    return map_nodes(nodes, apply)


def filter_tasks_for_session_sync(
    tree: Iterable[TaskNode],
    session_type: SessionType,
    session_id: str,
) -> TaskTree:
    """Drop nodes (with their subtrees) that belong to other sessions."""

    def walk(nodes: Iterable[TaskNode]) -> TaskTree:
        kept: TaskTree = []
        for node in nodes:
            if not belongs_to_session(node, session_type, session_id):
                continue
            clone = copy_tree([node])[0]
            clone.subtasks = walk(node.subtasks)
            kept.append(clone)
        return kept

    return walk(tree)
