# src/taskwise/maintenance/backfill.py

"""
Board item canonicalization.

Older board items only know the ephemeral task id they were created from,
sometimes in the composite "sourceType:taskId" form. The backfill resolves
them to canonical task ids via (user_id, source_task_id).

Both helpers are safe to run repeatedly: the backfill only looks at items
still missing `task_canonical_id`, and it is a dry run unless fix=True.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ..core.ports import DocumentRepo
from ..store.document_store import BOARD_ITEMS, TASKS

logger = logging.getLogger(__name__)

MISSING_CANONICAL_FILTER: dict[str, Any] = {
    "$or": [{"task_canonical_id": {"$exists": False}}, {"task_canonical_id": None}]
}


@dataclass(slots=True)
class BackfillReport:
    dry_run: bool
    scanned: int = 0
    resolved: int = 0
    updated: int = 0
    skipped: int = 0
    planned: list[tuple[str, str]] = field(default_factory=list)


@dataclass(slots=True)
class BoardItemCheck:
    total: int
    missing: int
    present: int
    samples: list[dict[str, Any]] = field(default_factory=list)


def source_task_id_of(raw_task_id: Any) -> str | None:
    """Strip a composite "sourceType:taskId" down to the task id."""
    if raw_task_id is None:
        return None
    s = str(raw_task_id).strip()
    if not s:
        return None
    return s.split(":")[-1] or None


def backfill_task_canonical_ids(store: DocumentRepo, *, fix: bool = False) -> BackfillReport:
    report = BackfillReport(dry_run=not fix)

    for item in store.find(BOARD_ITEMS, MISSING_CANONICAL_FILTER):
        report.scanned += 1
        user_id = item.get("user_id")
        source_task_id = source_task_id_of(item.get("task_id"))
        if not user_id or not source_task_id:
            report.skipped += 1
            continue

        match = store.find_one(TASKS, {"user_id": user_id, "source_task_id": source_task_id})
        if match is None:
            report.skipped += 1
            continue

        canonical_id = str(match["_id"])
        report.resolved += 1
        report.planned.append((str(item["_id"]), canonical_id))
        logger.info("Board item %s -> task %s%s", item["_id"], canonical_id, "" if fix else " (dry run)")
        if fix and store.update(BOARD_ITEMS, item["_id"], {"task_canonical_id": canonical_id}):
            report.updated += 1

    logger.info(
        "Backfill scanned=%d resolved=%d updated=%d dry_run=%s",
        report.scanned,
        report.resolved,
        report.updated,
        report.dry_run,
    )
    return report


def check_board_items(store: DocumentRepo, *, sample_size: int = 5) -> BoardItemCheck:
    total = store.count(BOARD_ITEMS)
    missing = store.count(BOARD_ITEMS, MISSING_CANONICAL_FILTER)
    samples = store.find(BOARD_ITEMS, limit=sample_size) if total else []
    return BoardItemCheck(total=total, missing=missing, present=total - missing, samples=samples)
