# src/taskwise/sync/pipeline.py

"""
Ingestion pipeline.

One session pass:
- extract (the only await; nothing is written when it fails)
- normalize + resolve assignees against the person directory
- match completion cues against open tasks of OTHER sessions
- merge suggestions into the tree, auto-approve per preferences
- reconcile into the canonical store

Independent sessions may be ingested together with ingest_sessions(). Only
the extractor calls overlap: store work after the await is blocking SQLite
on the event loop, so the reconcile passes themselves run one at a time.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

from ..completion.approval import CompletionPreferences, apply_auto_approval, merge_completion_suggestions
from ..completion.candidates import Attendee
from ..completion.matcher import CompletionMatch, MatchOptions, match_completions
from ..core.ports import DocumentRepo, Extractor, PersonDirectory
from ..errors import ExtractionFailure, WriteFailure
from ..store.document_store import TASKS, USERS
from ..tasks.assignee import resolve_assignees
from ..tasks.normalize import normalize_task_tree
from ..tasks.task_models import SessionType, TaskState, TaskStatus, TaskTree
from .guard import guarded_write
from .session_sync import PrunePolicy, ReconciliationResult, reconcile
from .session_views import SESSION_VIEWS, ensure_session

logger = logging.getLogger(__name__)


class IngestionStatus(StrEnum):
    OK = "ok"
    EXTRACTION_FAILED = "extraction_failed"


@dataclass(slots=True)
class SessionContext:
    """Everything the extractor and the matcher know about one session."""

    user_id: str
    session_type: SessionType
    session_id: str
    session_name: str | None = None
    workspace_id: str | None = None
    text: str = ""
    summary: str | None = None
    attendees: list[Attendee] = field(default_factory=list)


@dataclass(slots=True)
class IngestionOutcome:
    status: IngestionStatus
    session_id: str
    error: ExtractionFailure | None = None
    matches: list[CompletionMatch] = field(default_factory=list)
    tree: TaskTree = field(default_factory=list)
    result: ReconciliationResult | None = None
    failures: list[WriteFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == IngestionStatus.OK


def load_preferences(
    store: DocumentRepo,
    user_id: str,
    *,
    defaults: CompletionPreferences | None = None,
) -> CompletionPreferences:
    """Completion preferences stored on the user document (falls back to `defaults`)."""
    return CompletionPreferences.from_document(store.get(USERS, user_id), defaults=defaults)


def _canonical_as_payload(doc: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "id": doc.get("source_task_id") or doc.get("_id"),
        "canonical_id": doc.get("_id"),
        "title": doc.get("title"),
        "description": doc.get("description"),
        "priority": doc.get("priority"),
        "status": doc.get("status"),
        "due_at": doc.get("due_at"),
        "assignee": doc.get("assignee"),
        "source_session_id": doc.get("source_session_id"),
        "source_session_type": doc.get("source_session_type"),
        "source_session_name": doc.get("source_session_name"),
    }


def _workspace_filter(workspace_id: str) -> dict[str, Any]:
    # documents written before workspaces existed stay visible in every workspace
    return {"$or": [{"workspace_id": workspace_id}, {"workspace_id": None}]}


def load_open_tasks(
    store: DocumentRepo,
    user_id: str,
    *,
    exclude_session: tuple[SessionType, str] | None = None,
    workspace_id: str | None = None,
) -> TaskTree:
    """
    Open tasks the matcher may complete: canonical tasks plus session views.

    Each document is normalized on its own, so ids of different sessions
    never collide. The excluded session's own tasks are left out.
    """
    flt: dict[str, Any] = {
        "user_id": user_id,
        "status": {"$ne": str(TaskStatus.DONE)},
        "task_state": {"$nin": [str(TaskState.INACTIVE), str(TaskState.ARCHIVED)]},
    }
    if workspace_id is not None:
        flt.update(_workspace_filter(workspace_id))

    out: TaskTree = []
    for doc in store.find(TASKS, flt):
        if exclude_session and (
            doc.get("source_session_type") == str(exclude_session[0])
            and doc.get("source_session_id") == exclude_session[1]
        ):
            continue
        out += normalize_task_tree([_canonical_as_payload(doc)])

    for session_type, view in SESSION_VIEWS.items():
        sflt: dict[str, Any] = {"user_id": user_id}
        if workspace_id is not None:
            sflt.update(_workspace_filter(workspace_id))
        for session in store.find(view.collection, sflt):
            sid = str(session["_id"])
            if exclude_session and exclude_session == (session_type, sid):
                continue
            raw = session.get(view.tasks_field)
            if not isinstance(raw, list) or not raw:
                continue
            out += normalize_task_tree(
                raw,
                source_session_id=sid,
                source_session_type=session_type,
                source_session_name=session.get("title"),
            )
    return out


async def ingest_session(
    store: DocumentRepo,
    extractor: Extractor,
    context: SessionContext,
    preferences: CompletionPreferences | None = None,
    *,
    directory: PersonDirectory | None = None,
    options: MatchOptions | None = None,
    prune_policy: PrunePolicy | str = PrunePolicy.DELETE_UNREFERENCED,
) -> IngestionOutcome:
    prefs = preferences or CompletionPreferences()
    sid = context.session_id

    try:
        raw = await extractor.extract(context)
    except Exception as e:
        logger.exception("Extractor failed for %s %s", context.session_type, sid)
        return IngestionOutcome(IngestionStatus.EXTRACTION_FAILED, sid, error=ExtractionFailure(sid, str(e)))

    if raw is None or isinstance(raw, (str, bytes, Mapping)) or not isinstance(raw, Sequence):
        failure = ExtractionFailure(sid, f"unusable extractor output of type {type(raw).__name__}")
        logger.error("%s", failure)
        return IngestionOutcome(IngestionStatus.EXTRACTION_FAILED, sid, error=failure)

    tree = normalize_task_tree(
        raw,
        source_session_id=sid,
        source_session_type=context.session_type,
        source_session_name=context.session_name,
    )
    if directory is not None:
        tree = resolve_assignees(tree, directory)

    failures: list[WriteFailure] = []
    open_tasks = guarded_write(
        failures,
        TASKS,
        "load_open_tasks",
        lambda: load_open_tasks(
            store,
            context.user_id,
            exclude_session=(context.session_type, sid),
            workspace_id=context.workspace_id,
        ),
        [],
    )

    match_options = replace(options or MatchOptions(), min_match_ratio=prefs.effective_match_threshold)
    matches = match_completions(
        context.text,
        open_tasks,
        match_options,
        attendees=context.attendees,
        summary=context.summary,
    )

    tree = merge_completion_suggestions(
        tree,
        matches,
        session_type=context.session_type,
        session_id=sid,
        session_name=context.session_name,
    )
    if prefs.auto_approve:
        tree = apply_auto_approval(tree, prefs.effective_auto_approve_threshold)

    guarded_write(
        failures,
        SESSION_VIEWS[context.session_type].collection,
        "ensure_session",
        lambda: ensure_session(
            store,
            user_id=context.user_id,
            session_type=context.session_type,
            session_id=sid,
            title=context.session_name,
            workspace_id=context.workspace_id,
        ),
        None,
    )

    result = reconcile(
        store,
        user_id=context.user_id,
        source_session_type=context.session_type,
        source_session_id=sid,
        incoming_tree=tree,
        source_session_name=context.session_name,
        workspace_id=context.workspace_id,
        prune_policy=prune_policy,
    )
    failures.extend(result.failures)

    logger.info(
        "Ingested %s %s: tasks=%d matches=%d failures=%d",
        context.session_type,
        sid,
        len(result.tree),
        len(matches),
        len(failures),
    )
    return IngestionOutcome(
        IngestionStatus.OK,
        sid,
        matches=matches,
        tree=result.tree,
        result=result,
        failures=failures,
    )


async def ingest_sessions(
    store: DocumentRepo,
    extractor: Extractor,
    contexts: Iterable[SessionContext],
    preferences: CompletionPreferences | None = None,
    **kwargs: Any,
) -> list[IngestionOutcome]:
    """
    Ingest independent sessions (one outcome per context, same order).

    Extractions run concurrently; store writes stay serialized on the loop.
    """
    return list(
        await asyncio.gather(*(ingest_session(store, extractor, ctx, preferences, **kwargs) for ctx in contexts))
    )
