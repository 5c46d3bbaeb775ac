# src/taskwise/sync/session_views.py

"""
Per-session denormalized task lists.

Each session kind keeps a copy of its task tree on the session document:
- meetings.extracted_tasks
- chatSessions.suggested_tasks
- planningSessions.tasks

The canonical `tasks` collection is the source of truth; these views are
rewritten after it and read back through normalize_task_tree.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from ..core.ports import DocumentRepo
from ..store.document_store import CHAT_SESSIONS, MEETINGS, PLANNING_SESSIONS
from ..tasks.normalize import normalize_task_tree
from ..tasks.task_models import SessionType, TaskNode, TaskStatus, TaskTree

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SessionView:
    collection: str
    tasks_field: str


SESSION_VIEWS: dict[SessionType, SessionView] = {
    SessionType.MEETING: SessionView(MEETINGS, "extracted_tasks"),
    SessionType.CHAT: SessionView(CHAT_SESSIONS, "suggested_tasks"),
    SessionType.PLANNING: SessionView(PLANNING_SESSIONS, "tasks"),
}


def view_for(session_type: SessionType) -> SessionView:
    return SESSION_VIEWS[session_type]


def get_session(store: DocumentRepo, user_id: str, session_type: SessionType, session_id: str) -> dict[str, Any] | None:
    doc = store.get(view_for(session_type).collection, session_id)
    if doc is None or doc.get("user_id") != user_id:
        return None
    return doc


def ensure_session(
    store: DocumentRepo,
    *,
    user_id: str,
    session_type: SessionType,
    session_id: str,
    title: str | None = None,
    workspace_id: str | None = None,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Create the session document if it does not exist yet; return it."""
    existing = get_session(store, user_id, session_type, session_id)
    if existing is not None:
        return existing
    view = view_for(session_type)
    doc: dict[str, Any] = {
        "_id": session_id,
        "user_id": user_id,
        "workspace_id": workspace_id,
        "title": title,
        view.tasks_field: [],
        "created_at": time.time(),
        **(extra or {}),
    }
    store.upsert(view.collection, doc)
    logger.info("Created %s session %s", session_type, session_id)
    return doc


def load_session_tree(
    store: DocumentRepo,
    user_id: str,
    session_type: SessionType,
    session_id: str,
) -> TaskTree | None:
    """Session's task view as TaskNodes, or None when the session does not exist."""
    doc = get_session(store, user_id, session_type, session_id)
    if doc is None:
        return None
    raw = doc.get(view_for(session_type).tasks_field)
    return normalize_task_tree(
        raw if isinstance(raw, list) else [],
        source_session_id=session_id,
        source_session_type=session_type,
        source_session_name=doc.get("title"),
    )


def write_session_tree(
    store: DocumentRepo,
    user_id: str,
    session_type: SessionType,
    session_id: str,
    tree: Iterable[TaskNode],
) -> bool:
    """Replace the session's task view. Returns True when the stored list changed."""
    if get_session(store, user_id, session_type, session_id) is None:
        logger.debug("No %s session %s for user %s; view not written", session_type, session_id, user_id)
        return False
    view = view_for(session_type)
    payload = [node.to_dict() for node in tree]
    return store.update(view.collection, session_id, {view.tasks_field: payload})


def _rewrite_nodes(items: list[Any], task_id: str, patch: Callable[[dict[str, Any]], None]) -> bool:
    """Patch raw dict nodes with matching id, recursively. Unknown keys survive untouched."""
    changed = False
    for item in items:
        if not isinstance(item, dict):
            continue
        if str(item.get("id")) == task_id:
            before = dict(item)
            patch(item)
            changed = changed or item != before
        children = item.get("subtasks")
        if isinstance(children, list) and _rewrite_nodes(children, task_id, patch):
            changed = True
    return changed


def mark_task_done_in_view(
    store: DocumentRepo,
    user_id: str,
    session_type: SessionType,
    session_id: str,
    task_id: str,
) -> bool:
    """Set one node of a session view to done (clearing any pending suggestion)."""
    doc = get_session(store, user_id, session_type, session_id)
    if doc is None:
        return False
    view = view_for(session_type)
    items = doc.get(view.tasks_field)
    if not isinstance(items, list):
        return False

    def patch(item: dict[str, Any]) -> None:
        item["status"] = str(TaskStatus.DONE)
        item["completion_suggested"] = False
        item["completion_confidence"] = None

    if not _rewrite_nodes(items, task_id, patch):
        return False
    return store.update(view.collection, session_id, {view.tasks_field: items})


def linked_chat_session_ids(store: DocumentRepo, user_id: str, meeting_id: str) -> list[str]:
    """Chat sessions opened from a meeting (they mirror the meeting's task list)."""
    meeting = store.get(MEETINGS, meeting_id)
    clauses: list[dict[str, Any]] = [{"source_meeting_id": meeting_id}]
    if meeting and meeting.get("chat_session_id"):
        clauses.append({"_id": str(meeting["chat_session_id"])})
    docs = store.find(CHAT_SESSIONS, {"user_id": user_id, "$or": clauses})
    return [str(d["_id"]) for d in docs]
