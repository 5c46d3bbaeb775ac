# src/taskwise/maintenance/board_items.py

"""
Duplicate board item cleanup.

A board should show a task once. Older writers created several board items
for the same (user, workspace, board, task), some still keyed by the
ephemeral task id. The cleanup runs in two steps:
1) task_id is rewritten to task_canonical_id wherever the item has one
2) items sharing (user_id, workspace_id, board_id, task_id) collapse to the
   most recently updated one

Dry run unless fix=True. The dry run groups by the task id step 1 would
produce, so its report matches what a fix run deletes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ..core.ports import DocumentRepo
from ..store.document_store import BOARD_ITEMS

logger = logging.getLogger(__name__)

GroupKey = tuple[Any, Any, Any, str]


@dataclass(slots=True)
class BoardItemGroup:
    user_id: str | None
    workspace_id: str | None
    board_id: str | None
    task_id: str
    keep_id: str
    drop_ids: list[str]


@dataclass(slots=True)
class BoardDedupeReport:
    dry_run: bool
    to_normalize: int = 0
    normalized: int = 0
    groups: list[BoardItemGroup] = field(default_factory=list)
    deleted: int = 0

    @property
    def extra_documents(self) -> int:
        return sum(len(g.drop_ids) for g in self.groups)


def _canonical_of(item: dict[str, Any]) -> str | None:
    cid = item.get("task_canonical_id")
    return cid if isinstance(cid, str) and cid else None


def _effective_task_id(item: dict[str, Any]) -> str | None:
    task_id = _canonical_of(item) or item.get("task_id")
    return task_id if isinstance(task_id, str) and task_id else None


def _freshness(item: dict[str, Any]) -> tuple[float, float]:
    return float(item.get("updated_at") or 0.0), float(item.get("created_at") or 0.0)


def find_duplicate_board_items(store: DocumentRepo) -> list[BoardItemGroup]:
    grouped: dict[GroupKey, list[dict[str, Any]]] = {}
    for item in store.find(BOARD_ITEMS):
        task_id = _effective_task_id(item)
        if task_id is None:
            continue
        key = (item.get("user_id"), item.get("workspace_id"), item.get("board_id"), task_id)
        grouped.setdefault(key, []).append(item)

    out: list[BoardItemGroup] = []
    for (user_id, workspace_id, board_id, task_id), items in grouped.items():
        if len(items) < 2:
            continue
        # newest first; ties broken by id so every run picks the same keeper
        ranked = sorted(items, key=lambda i: str(i["_id"]))
        ranked.sort(key=_freshness, reverse=True)
        out.append(
            BoardItemGroup(
                user_id=user_id,
                workspace_id=workspace_id,
                board_id=board_id,
                task_id=task_id,
                keep_id=str(ranked[0]["_id"]),
                drop_ids=[str(i["_id"]) for i in ranked[1:]],
            )
        )
    return out


def dedupe_board_items(store: DocumentRepo, *, fix: bool = False) -> BoardDedupeReport:
    report = BoardDedupeReport(dry_run=not fix)

    stale = [
        item for item in store.find(BOARD_ITEMS) if _canonical_of(item) and item.get("task_id") != _canonical_of(item)
    ]
    report.to_normalize = len(stale)
    if fix:
        for item in stale:
            if store.update(BOARD_ITEMS, item["_id"], {"task_id": _canonical_of(item)}):
                report.normalized += 1

    report.groups = find_duplicate_board_items(store)
    logger.info(
        "Board items: to_normalize=%d duplicate_groups=%d extra=%d dry_run=%s",
        report.to_normalize,
        len(report.groups),
        report.extra_documents,
        report.dry_run,
    )
    if not fix:
        return report

    for group in report.groups:
        for item_id in group.drop_ids:
            if store.delete(BOARD_ITEMS, item_id):
                report.deleted += 1
        logger.info("Kept board item %s for task %s", group.keep_id, group.task_id)

    remaining = find_duplicate_board_items(store)
    if remaining:
        logger.warning("%d duplicate board item group(s) remain after cleanup", len(remaining))
    return report
