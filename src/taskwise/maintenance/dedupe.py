# src/taskwise/maintenance/dedupe.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ..core.ports import DocumentRepo
from ..store.document_store import BOARD_ITEMS, TASKS
from ..sync.session_sync import board_reference_filter

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DuplicateGroup:
    user_id: str | None
    source_session_id: str | None
    source_task_id: str
    ids: list[str]
    keep_id: str

    @property
    def extra(self) -> int:
        return len(self.ids) - 1

    @property
    def drop_ids(self) -> list[str]:
        return [i for i in self.ids if i != self.keep_id]


@dataclass(slots=True)
class DedupeReport:
    dry_run: bool
    groups: list[DuplicateGroup] = field(default_factory=list)
    deleted: int = 0
    repointed: int = 0

    @property
    def extra_documents(self) -> int:
        return sum(g.extra for g in self.groups)


def _direct_reference_filter(user_id: Any, doc_id: str) -> dict[str, Any]:
    return {"user_id": user_id, "$or": [{"task_canonical_id": doc_id}, {"task_id": doc_id}]}


def _pick_keeper(store: DocumentRepo, docs: list[dict[str, Any]]) -> str:
    """
    Which duplicate survives:
    - one a board item points at by id
    - else one reachable through its source task id ("meeting:t1" and friends)
    - else the oldest
    """
    for doc in docs:
        if store.count(BOARD_ITEMS, _direct_reference_filter(doc.get("user_id"), str(doc["_id"]))):
            return str(doc["_id"])
    for doc in docs:
        if store.count(BOARD_ITEMS, board_reference_filter(doc.get("user_id"), doc)):
            return str(doc["_id"])
    oldest = min(enumerate(docs), key=lambda p: (float(p[1].get("created_at") or 0.0), p[0]))
    return str(oldest[1]["_id"])


def find_duplicate_tasks(store: DocumentRepo, *, limit: int = 100) -> list[DuplicateGroup]:
    """
    Canonical tasks sharing (user_id, source_session_id, source_task_id).

    Such groups come from concurrent passes over the same session; each one
    should collapse to a single document.
    """
    grouped: dict[tuple[Any, Any, str], list[dict[str, Any]]] = {}
    for doc in store.find(TASKS, {"source_task_id": {"$exists": True, "$ne": None}}):
        key = (doc.get("user_id"), doc.get("source_session_id"), str(doc["source_task_id"]))
        grouped.setdefault(key, []).append(doc)

    out: list[DuplicateGroup] = []
    for (user_id, session_id, source_task_id), docs in grouped.items():
        if len(docs) < 2:
            continue
        out.append(
            DuplicateGroup(
                user_id=user_id,
                source_session_id=session_id,
                source_task_id=source_task_id,
                ids=[str(d["_id"]) for d in docs],
                keep_id=_pick_keeper(store, docs),
            )
        )
        if len(out) >= max(0, limit):
            break
    return out


def _repoint_board_items(store: DocumentRepo, group: DuplicateGroup, drop_id: str) -> int:
    moved = 0
    for item in store.find(BOARD_ITEMS, _direct_reference_filter(group.user_id, drop_id)):
        fields: dict[str, Any] = {"task_canonical_id": group.keep_id}
        if item.get("task_id") == drop_id:
            fields["task_id"] = group.keep_id
        if store.update(BOARD_ITEMS, item["_id"], fields):
            moved += 1
    return moved


def dedupe_tasks(store: DocumentRepo, *, fix: bool = False, limit: int = 100) -> DedupeReport:
    """
    Collapse duplicate canonical tasks.

    Board items of a dropped duplicate are moved to the keeper before the
    duplicate is deleted, so no board item is left pointing at nothing.
    """
    report = DedupeReport(dry_run=not fix, groups=find_duplicate_tasks(store, limit=limit))
    logger.info(
        "Found %d duplicate group(s), %d extra document(s)",
        len(report.groups),
        report.extra_documents,
    )
    if not fix:
        return report

    for group in report.groups:
        for doc_id in group.drop_ids:
            report.repointed += _repoint_board_items(store, group, doc_id)
            if store.delete(TASKS, doc_id):
                report.deleted += 1
        logger.info("Kept %s for source_task_id=%s", group.keep_id, group.source_task_id)
    return report
