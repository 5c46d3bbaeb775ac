# src/taskwise/sync/session_sync.py

"""
Cross-source synchronizer.

reconcile() folds one session's freshly extracted task tree into the
canonical `tasks` collection and the views that depend on it.

Pass outline:
1) drop suggestion nodes that belong to other sessions, flatten what is left
2) match every incoming node to an existing canonical task of the same
   session: by previous id mapping first, then by title token key
3) update matches only when content differs (done is never regressed,
   inactive tasks come back to life), insert the rest with fresh ids
4) existing tasks that did not come back: inactivate when something still
   references them (board item, comments), otherwise hard-delete (policy)
5) push completions approved in this pass to every collection they live in
6) rewrite this session's view, then link/mirror board items

Every write is best-effort: failures are logged and recorded, the pass goes
on, and the next pass repairs what was missed. Re-running with the same
input writes nothing.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..completion.approval import filter_tasks_for_session_sync
from ..core.ports import DocumentRepo
from ..errors import WriteFailure
from ..store.document_store import BOARD_ITEMS, TASKS
from ..tasks.assignee import assignee_key
from ..tasks.task_models import CompletionTarget, SessionType, TaskNode, TaskState, TaskStatus, TaskTree
from ..tasks.task_tree import flatten, iter_nodes, map_nodes
from ..tasks.text_keys import token_key
from .completion_targets import TargetApplyReport, apply_completion_targets
from .guard import guarded_write
from .session_views import load_session_tree, write_session_tree

logger = logging.getLogger(__name__)


class PrunePolicy(StrEnum):
    DELETE_UNREFERENCED = "delete_unreferenced"
    RETAIN = "retain"

    @classmethod
    def from_db(cls, raw: str | None) -> PrunePolicy:
        if not raw:
            return cls.DELETE_UNREFERENCED
        try:
            return cls(str(raw).strip().lower())
        except Exception:
            return cls.DELETE_UNREFERENCED


CONTENT_FIELDS = (
    "workspace_id",
    "title",
    "description",
    "priority",
    "status",
    "due_at",
    "assignee",
    "assignee_name_key",
    "completion_suggested",
    "completion_confidence",
    "completion_targets",
    "completion_evidence",
    "task_state",
    "origin",
    "source_session_name",
    "source_task_id",
    "parent_id",
    "order",
    "subtask_count",
)


@dataclass(slots=True)
class ReconciliationResult:
    inserted_ids: list[str] = field(default_factory=list)
    updated_ids: list[str] = field(default_factory=list)
    inactivated_ids: list[str] = field(default_factory=list)
    deleted_ids: list[str] = field(default_factory=list)
    task_map: dict[str, str] = field(default_factory=dict)
    tree: TaskTree = field(default_factory=list)
    completion: TargetApplyReport | None = None
    session_view_written: bool = False
    board_items_updated: int = 0
    failures: list[WriteFailure] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(
            self.inserted_ids
            or self.updated_ids
            or self.inactivated_ids
            or self.deleted_ids
            or self.session_view_written
            or self.board_items_updated
            or (self.completion and (self.completion.tasks_updated or self.completion.views_updated))
        )


def _content(doc: dict[str, Any]) -> dict[str, Any]:
    return {k: doc.get(k) for k in CONTENT_FIELDS}


def _record_for(
    node: TaskNode,
    *,
    workspace_id: str | None,
    session_type: SessionType,
    session_name: str | None,
    parent_id: str | None,
    order: int,
    existing: dict[str, Any] | None,
) -> dict[str, Any]:
    status = node.status
    suggested = node.completion_suggested
    confidence = node.completion_confidence
    # re-extraction never reopens a canonical task that is already done
    if existing and existing.get("status") == str(TaskStatus.DONE) and status != TaskStatus.DONE:
        status = TaskStatus.DONE
        suggested, confidence = False, None

    key = assignee_key(node.assignee)
    return {
        "workspace_id": workspace_id if workspace_id is not None else (existing or {}).get("workspace_id"),
        "title": node.title,
        "description": node.description,
        "priority": str(node.priority),
        "status": str(status),
        "due_at": node.due_at.isoformat() if node.due_at else None,
        "assignee": node.assignee.to_dict() if node.assignee else None,
        "assignee_name_key": key.removeprefix("name:") if key.startswith("name:") else None,
        "completion_suggested": suggested,
        "completion_confidence": confidence,
        "completion_targets": [t.to_dict() for t in node.completion_targets],
        "completion_evidence": [e.to_dict() for e in node.completion_evidence],
        "task_state": str(TaskState.ACTIVE),
        "origin": (existing or {}).get("origin") or str(session_type),
        "source_session_name": session_name if session_name is not None else (existing or {}).get("source_session_name"),
        "source_task_id": node.id,
        "parent_id": parent_id,
        "order": order,
        "subtask_count": len(node.subtasks),
    }


def board_reference_filter(user_id: Any, doc: dict[str, Any]) -> dict[str, Any]:
    """
    Board items pointing at a canonical task, in any of the forms they use:
    task_canonical_id, or task_id holding the canonical id, the source task id
    or the composite "sourceType:taskId".
    """
    canonical_id = str(doc["_id"])
    task_ids = [canonical_id]
    source_task_id = doc.get("source_task_id")
    if source_task_id:
        task_ids += [str(source_task_id), f"{doc.get('source_session_type')}:{source_task_id}"]
    return {
        "user_id": user_id,
        "$or": [{"task_canonical_id": canonical_id}, {"task_id": {"$in": task_ids}}],
    }


def _is_referenced(store: DocumentRepo, user_id: str, doc: dict[str, Any]) -> bool:
    if doc.get("comments"):
        return True
    return store.count(BOARD_ITEMS, board_reference_filter(user_id, doc)) > 0


def _newly_done_targets(incoming: Iterable[TaskNode], previous: Iterable[TaskNode] | None) -> list[CompletionTarget]:
    prev_status = {n.id: n.status for n in iter_nodes(previous or [])}
    targets: list[CompletionTarget] = []
    for node in iter_nodes(incoming):
        if node.status != TaskStatus.DONE or not node.completion_targets:
            continue
        if prev_status.get(node.id) == TaskStatus.DONE:
            continue
        targets.extend(node.completion_targets)
    return targets


def reconcile(
    store: DocumentRepo,
    *,
    user_id: str,
    source_session_type: SessionType,
    source_session_id: str,
    incoming_tree: Iterable[TaskNode],
    source_session_name: str | None = None,
    workspace_id: str | None = None,
    prune_policy: PrunePolicy | str = PrunePolicy.DELETE_UNREFERENCED,
    id_factory: Callable[[], str] | None = None,
) -> ReconciliationResult:
    new_id = id_factory or (lambda: str(uuid.uuid4()))
    policy = PrunePolicy.from_db(str(prune_policy))
    full_tree = list(incoming_tree)
    result = ReconciliationResult()
    failures = result.failures

    previous_view = guarded_write(
        failures,
        source_session_type,
        "load_view",
        lambda: load_session_tree(store, user_id, source_session_type, source_session_id),
        None,
    )

    # 1) what this session owns
    owned = filter_tasks_for_session_sync(full_tree, source_session_type, source_session_id)
    flat = flatten(owned)

    existing_docs = guarded_write(
        failures,
        TASKS,
        "find",
        lambda: store.find(
            TASKS,
            {
                "user_id": user_id,
                "source_session_type": str(source_session_type),
                "source_session_id": source_session_id,
            },
        ),
        None,
    )
    if existing_docs is None:
        # Without the current canonical state every decision below would be a guess.
        logger.error("Reconcile aborted for %s %s: canonical tasks unreadable", source_session_type, source_session_id)
        result.tree = full_tree
        return result

    unclaimed: dict[str, dict[str, Any]] = {str(d["_id"]): d for d in existing_docs}
    by_source: dict[str, str] = {}
    for d in existing_docs:
        src = d.get("source_task_id")
        if src and str(src) not in by_source:
            by_source[str(src)] = str(d["_id"])

    # 2) match: explicit canonical id, previous id mapping, then title token key
    matched: dict[str, dict[str, Any]] = {}
    for item in flat:
        node = item.node
        for cid in (node.canonical_id, by_source.get(node.id)):
            if cid and cid in unclaimed:
                matched[node.id] = unclaimed.pop(cid)
                break

    for item in flat:
        node = item.node
        if node.id in matched:
            continue
        key = token_key(node.title)
        if not key:
            continue
        for cid, doc in unclaimed.items():
            if token_key(doc.get("title")) == key:
                logger.debug("Matched task %s to %s by title", node.id, cid)
                matched[node.id] = unclaimed.pop(cid)
                break

    # 3) update / insert, parents before children (flatten is pre-order)
    now = time.time()
    for item in flat:
        node = item.node
        doc = matched.get(node.id)
        parent_id = result.task_map.get(item.parent_id) if item.parent_id else None
        record = _record_for(
            node,
            workspace_id=workspace_id,
            session_type=source_session_type,
            session_name=source_session_name,
            parent_id=parent_id,
            order=item.order,
            existing=doc,
        )

        if doc is not None:
            cid = str(doc["_id"])
            result.task_map[node.id] = cid
            if _content(doc) == record:
                continue
            was_inactive = TaskState.from_db(doc.get("task_state")) != TaskState.ACTIVE
            fields = {**record, "last_updated": now}
            if guarded_write(failures, TASKS, "update", lambda c=cid, f=fields: store.update(TASKS, c, f), False):
                result.updated_ids.append(cid)
                if was_inactive:
                    logger.info("Reactivated task %s (%s)", cid, node.title)
            continue

        cid = new_id()
        full = {
            "_id": cid,
            "user_id": user_id,
            "source_session_type": str(source_session_type),
            "source_session_id": source_session_id,
            **record,
            "comments": [],
            "created_at": now,
            "last_updated": now,
        }
        result.task_map[node.id] = cid
        if guarded_write(failures, TASKS, "insert", lambda d=full: store.insert(TASKS, d), None) is not None:
            result.inserted_ids.append(cid)

    # 4) tasks that did not come back
    for cid, doc in unclaimed.items():
        if TaskState.from_db(doc.get("task_state")) == TaskState.INACTIVE:
            continue
        referenced = guarded_write(
            failures, BOARD_ITEMS, "reference_check", lambda d=doc: _is_referenced(store, user_id, d), True
        )
        if policy == PrunePolicy.DELETE_UNREFERENCED and not referenced:
            if guarded_write(failures, TASKS, "delete", lambda c=cid: store.delete(TASKS, c), False):
                result.deleted_ids.append(cid)
            continue
        fields = {"task_state": str(TaskState.INACTIVE), "last_updated": now}
        if guarded_write(failures, TASKS, "inactivate", lambda c=cid, f=fields: store.update(TASKS, c, f), False):
            result.inactivated_ids.append(cid)

    # retained docs (inactivated now or earlier) must not point at a deleted parent
    alive = {str(d["_id"]) for d in existing_docs} - set(result.deleted_ids)
    for cid, doc in unclaimed.items():
        parent = doc.get("parent_id")
        if cid in alive and parent and str(parent) not in alive:
            guarded_write(failures, TASKS, "detach", lambda c=cid: store.update(TASKS, c, {"parent_id": None}), False)

    # 5) completions approved since the last pass
    targets = _newly_done_targets(full_tree, previous_view)
    if targets:
        result.completion = apply_completion_targets(store, user_id, targets)
        failures.extend(result.completion.failures)

    # 6) session view, then board items
    task_map = result.task_map

    def stamp(node: TaskNode) -> None:
        if node.id in task_map:
            node.canonical_id = task_map[node.id]

    result.tree = map_nodes(full_tree, stamp)
    result.session_view_written = guarded_write(
        failures,
        source_session_type,
        "write_view",
        lambda: write_session_tree(store, user_id, source_session_type, source_session_id, result.tree),
        False,
    )
    result.board_items_updated = guarded_write(
        failures,
        BOARD_ITEMS,
        "link",
        lambda: _sync_board_items(store, user_id, source_session_type, task_map),
        0,
    )

    logger.info(
        "Reconciled %s %s: inserted=%d updated=%d inactivated=%d deleted=%d failures=%d",
        source_session_type,
        source_session_id,
        len(result.inserted_ids),
        len(result.updated_ids),
        len(result.inactivated_ids),
        len(result.deleted_ids),
        len(failures),
    )
    return result


def _sync_board_items(
    store: DocumentRepo,
    user_id: str,
    session_type: SessionType,
    task_map: dict[str, str],
) -> int:
    """Fill missing task_canonical_id and mirror canonical status on board items of this session."""
    if not task_map:
        return 0
    by_composite = {f"{session_type}:{src}": cid for src, cid in task_map.items()}
    canonical_ids = set(task_map.values())
    lookup_ids = [*task_map.keys(), *by_composite.keys(), *canonical_ids]

    items = store.find(
        BOARD_ITEMS,
        {"user_id": user_id, "$or": [{"task_canonical_id": {"$in": sorted(canonical_ids)}}, {"task_id": {"$in": lookup_ids}}]},
    )
    if not items:
        return 0

    statuses = {
        str(d["_id"]): d.get("status")
        for d in store.find(TASKS, {"user_id": user_id, "_id": {"$in": sorted(canonical_ids)}})
    }
    changed = 0
    for item in items:
        cid = item.get("task_canonical_id")
        if not cid:
            raw = str(item.get("task_id") or "")
            cid = task_map.get(raw) or by_composite.get(raw) or (raw if raw in canonical_ids else None)
        if not cid:
            continue
        fields: dict[str, Any] = {"task_canonical_id": cid}
        if cid in statuses:
            fields["task_status"] = statuses[cid]
        if store.update(BOARD_ITEMS, item["_id"], fields):
            changed += 1
    return changed
