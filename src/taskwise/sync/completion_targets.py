# src/taskwise/sync/completion_targets.py

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..core.ports import DocumentRepo
from ..errors import WriteFailure
from ..store.document_store import BOARD_ITEMS, CHAT_SESSIONS, TASKS
from ..tasks.task_models import CompletionSourceType, CompletionTarget, SessionType, TaskStatus
from .guard import guarded_write
from .session_views import linked_chat_session_ids, mark_task_done_in_view, view_for

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TargetApplyReport:
    tasks_updated: int = 0
    views_updated: int = 0
    board_items_updated: int = 0
    failures: list[WriteFailure] = field(default_factory=list)


def dedupe_targets(targets: Iterable[CompletionTarget]) -> list[CompletionTarget]:
    seen: set[str] = set()
    out: list[CompletionTarget] = []
    for t in targets:
        if t.key in seen:
            continue
        seen.add(t.key)
        out.append(t)
    return out


def _canonical_filter(user_id: str, target: CompletionTarget) -> dict:
    if target.source_type == CompletionSourceType.TASK:
        return {"user_id": user_id, "_id": target.task_id}
    return {
        "user_id": user_id,
        "source_session_type": str(target.source_type),
        "source_session_id": target.source_session_id,
        "$or": [{"_id": target.task_id}, {"source_task_id": target.task_id}],
    }


def apply_completion_targets(
    store: DocumentRepo,
    user_id: str,
    targets: Iterable[CompletionTarget],
) -> TargetApplyReport:
    """
    Mark every place a completed task lives as done.

    Order: canonical tasks, then session views (plus chats linked to a meeting),
    then board items. Every write only touches entries that are not done yet,
    so applying the same targets twice changes nothing the second time.
    """
    report = TargetApplyReport()
    unique = dedupe_targets(targets)
    if not unique:
        return report

    done_fields = {
        "status": str(TaskStatus.DONE),
        "completion_suggested": False,
        "completion_confidence": None,
    }

    # 1) canonical tasks
    canonical_ids: set[str] = set()
    for target in unique:
        flt = _canonical_filter(user_id, target)
        docs = guarded_write(report.failures, TASKS, "find", lambda flt=flt: store.find(TASKS, flt), [])
        canonical_ids.update(str(d["_id"]) for d in docs)
        open_flt = {**flt, "status": {"$ne": str(TaskStatus.DONE)}}
        report.tasks_updated += guarded_write(
            report.failures,
            TASKS,
            "complete",
            lambda f=open_flt: store.update_many(TASKS, f, {**done_fields, "last_updated": time.time()}),
            0,
        )

    # 2) session views
    for target in unique:
        if target.source_type == CompletionSourceType.TASK:
            continue
        session_type = SessionType(str(target.source_type))
        sessions = [(session_type, target.source_session_id)]
        if session_type == SessionType.MEETING:
            linked = guarded_write(
                report.failures,
                CHAT_SESSIONS,
                "find_linked",
                lambda t=target: linked_chat_session_ids(store, user_id, t.source_session_id),
                [],
            )
            sessions += [(SessionType.CHAT, chat_id) for chat_id in linked]
        for st, sid in sessions:
            if guarded_write(
                report.failures,
                view_for(st).collection,
                "complete_in_view",
                lambda st=st, sid=sid, t=target: mark_task_done_in_view(store, user_id, st, sid, t.task_id),
                False,
            ):
                report.views_updated += 1

    # 3) dependent views
    if canonical_ids:
        report.board_items_updated += guarded_write(
            report.failures,
            BOARD_ITEMS,
            "mirror_status",
            lambda: store.update_many(
                BOARD_ITEMS,
                {"user_id": user_id, "task_canonical_id": {"$in": sorted(canonical_ids)}},
                {"task_status": str(TaskStatus.DONE)},
            ),
            0,
        )

    logger.info(
        "Applied %d completion target(s): tasks=%d views=%d board_items=%d failures=%d",
        len(unique),
        report.tasks_updated,
        report.views_updated,
        report.board_items_updated,
        len(report.failures),
    )
    return report
