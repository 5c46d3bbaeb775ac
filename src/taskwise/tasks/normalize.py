# src/taskwise/tasks/normalize.py

"""
Boundary normalization: loosely-shaped task payloads -> TaskNode trees.

Everything that enters the engine from outside goes through here:
- extractor output (camelCase or snake_case dicts, bare strings, odd types)
- denormalized session views read back from the document store

Rules:
- unknown keys are ignored, wrong-typed values fall back to defaults
- nodes without a usable title are dropped (subtree included) unless they
  still carry valid subtasks
- missing or duplicate ids are replaced with fresh ones
- a payload object reachable twice (shared or cyclic) is only used once
"""

from __future__ import annotations

import logging
import math
import uuid
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from .task_models import (
    Assignee,
    CompletionSourceType,
    CompletionTarget,
    SessionType,
    TaskEvidence,
    TaskNode,
    TaskPriority,
    TaskStatus,
    TaskTree,
)
from .text_keys import is_unassigned_label, is_valid_title

logger = logging.getLogger(__name__)

UNTITLED_TASK = "Untitled Task"


def _coerce_str(v: Any) -> str | None:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return str(v)
    if not isinstance(v, str):
        return None
    s = v.strip()
    return s or None


def _coerce_datetime(v: Any) -> datetime | None:
    if v is None or isinstance(v, bool):
        return None
    dt: datetime | None = None
    if isinstance(v, datetime):
        dt = v
    elif isinstance(v, (int, float)):
        if not math.isfinite(v):
            return None
        # epoch milliseconds are common in JS-produced payloads
        seconds = v / 1000.0 if v > 10_000_000_000 else float(v)
        try:
            dt = datetime.fromtimestamp(seconds, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(v, str):
        s = v.strip()
        if not s:
            return None
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class AssigneePayload(_Lenient):
    uid: str | None = Field(default=None, validation_alias=AliasChoices("uid", "id", "user_id", "userId"))
    name: str | None = None
    email: str | None = None

    @field_validator("uid", "name", "email", mode="before")
    @classmethod
    def _strings(cls, v: Any) -> str | None:
        return _coerce_str(v)


class CompletionTargetPayload(_Lenient):
    source_type: CompletionSourceType = Field(validation_alias=AliasChoices("source_type", "sourceType"))
    source_session_id: str = Field(validation_alias=AliasChoices("source_session_id", "sourceSessionId"))
    task_id: str = Field(validation_alias=AliasChoices("task_id", "taskId"))
    source_session_name: str | None = Field(
        default=None, validation_alias=AliasChoices("source_session_name", "sourceSessionName")
    )

    @field_validator("source_session_id", "task_id", "source_session_name", mode="before")
    @classmethod
    def _strings(cls, v: Any) -> str | None:
        return _coerce_str(v)

    @field_validator("source_type", mode="before")
    @classmethod
    def _source_type(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class EvidencePayload(_Lenient):
    snippet: str = Field(validation_alias=AliasChoices("snippet", "text", "quote"))
    speaker: str | None = None
    timestamp: str | None = None

    @field_validator("snippet", "speaker", "timestamp", mode="before")
    @classmethod
    def _strings(cls, v: Any) -> str | None:
        return _coerce_str(v)


class TaskPayload(_Lenient):
    id: str | None = Field(default=None, validation_alias=AliasChoices("id", "_id", "task_id", "taskId"))
    canonical_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("canonical_id", "canonicalId", "task_canonical_id", "taskCanonicalId"),
    )
    title: str | None = Field(default=None, validation_alias=AliasChoices("title", "name"))
    description: str | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.TODO
    due_at: datetime | None = Field(
        default=None, validation_alias=AliasChoices("due_at", "dueAt", "due_date", "dueDate")
    )
    assignee: AssigneePayload | None = None
    assignee_name: str | None = Field(default=None, validation_alias=AliasChoices("assignee_name", "assigneeName"))
    subtasks: list[Any] = Field(default_factory=list, validation_alias=AliasChoices("subtasks", "subTasks", "children"))

    completion_suggested: bool = Field(
        default=False, validation_alias=AliasChoices("completion_suggested", "completionSuggested")
    )
    completion_confidence: float | None = Field(
        default=None, validation_alias=AliasChoices("completion_confidence", "completionConfidence")
    )
    completion_targets: list[Any] = Field(
        default_factory=list, validation_alias=AliasChoices("completion_targets", "completionTargets")
    )
    completion_evidence: list[Any] = Field(
        default_factory=list, validation_alias=AliasChoices("completion_evidence", "completionEvidence")
    )

    source_session_id: str | None = Field(
        default=None, validation_alias=AliasChoices("source_session_id", "sourceSessionId")
    )
    source_session_type: SessionType | None = Field(
        default=None, validation_alias=AliasChoices("source_session_type", "sourceSessionType")
    )
    source_session_name: str | None = Field(
        default=None, validation_alias=AliasChoices("source_session_name", "sourceSessionName")
    )

    @field_validator(
        "id",
        "canonical_id",
        "title",
        "description",
        "assignee_name",
        "source_session_id",
        "source_session_name",
        mode="before",
    )
    @classmethod
    def _strings(cls, v: Any) -> str | None:
        return _coerce_str(v)

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, v: Any) -> TaskPriority:
        return TaskPriority.from_db(v if isinstance(v, str) else None)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v: Any) -> TaskStatus:
        return TaskStatus.from_db(v if isinstance(v, str) else None)

    @field_validator("source_session_type", mode="before")
    @classmethod
    def _session_type(cls, v: Any) -> SessionType | None:
        return SessionType.from_db(v if isinstance(v, str) else None)

    @field_validator("due_at", mode="before")
    @classmethod
    def _due(cls, v: Any) -> datetime | None:
        return _coerce_datetime(v)

    @field_validator("assignee", mode="before")
    @classmethod
    def _assignee(cls, v: Any) -> Any:
        if isinstance(v, str):
            return {"name": v}
        return dict(v) if isinstance(v, Mapping) else None

    @field_validator("subtasks", "completion_targets", "completion_evidence", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> list[Any]:
        return list(v) if isinstance(v, (list, tuple)) else []

    @field_validator("completion_suggested", mode="before")
    @classmethod
    def _flag(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in {"1", "true", "yes", "y", "on"}
        return bool(v)

    @field_validator("completion_confidence", mode="before")
    @classmethod
    def _confidence(cls, v: Any) -> float | None:
        if v is None or isinstance(v, bool):
            return None
        try:
            f = float(v)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(f):
            return None
        return min(1.0, max(0.0, f))


def sanitize_assignee(payload: AssigneePayload | None, fallback_name: str | None = None) -> Assignee | None:
    """Drop placeholder names ("Unassigned", "TBD", ...) and empty assignees."""
    uid = payload.uid if payload else None
    email = payload.email.lower() if payload and payload.email else None
    name = (payload.name if payload else None) or fallback_name
    if name and is_unassigned_label(name):
        name = None
    assignee = Assignee(uid=uid, name=name, email=email)
    return None if assignee.is_empty() else assignee


def _targets(raw_items: Iterable[Any]) -> list[CompletionTarget]:
    out: list[CompletionTarget] = []
    seen: set[str] = set()
    for raw in raw_items:
        if isinstance(raw, CompletionTarget):
            target = raw
        else:
            try:
                p = CompletionTargetPayload.model_validate(raw)
            except ValidationError:
                logger.debug("Dropping malformed completion target: %r", raw)
                continue
            target = CompletionTarget(
                source_type=p.source_type,
                source_session_id=p.source_session_id,
                task_id=p.task_id,
                source_session_name=p.source_session_name,
            )
        if target.key in seen:
            continue
        seen.add(target.key)
        out.append(target)
    return out


def _evidence(raw_items: Iterable[Any]) -> list[TaskEvidence]:
    out: list[TaskEvidence] = []
    for raw in raw_items:
        if isinstance(raw, TaskEvidence):
            out.append(raw)
            continue
        if isinstance(raw, str):
            raw = {"snippet": raw}
        try:
            p = EvidencePayload.model_validate(raw)
        except ValidationError:
            continue
        out.append(TaskEvidence(snippet=p.snippet, speaker=p.speaker, timestamp=p.timestamp))
    return out


def _pick_title(payload: TaskPayload) -> str | None:
    if payload.title and is_valid_title(payload.title):
        return payload.title
    if payload.description:
        first_line = payload.description.strip().splitlines()[0].strip()
        if is_valid_title(first_line):
            return first_line
    return None


def normalize_task_tree(
    items: Iterable[Any] | None,
    *,
    source_session_id: str | None = None,
    source_session_type: SessionType | None = None,
    source_session_name: str | None = None,
    id_factory: Callable[[], str] | None = None,
) -> TaskTree:
    """
    Convert raw payloads into a valid TaskNode forest.

    Provenance arguments fill in nodes that do not carry their own.
    """
    new_id = id_factory or (lambda: str(uuid.uuid4()))
    seen_ids: set[str] = set()
    visited: set[int] = set()

    def convert(raw: Any) -> TaskNode | None:
        if isinstance(raw, TaskNode):
            if id(raw) in visited:
                logger.warning("Task %s reachable twice; dropping repeat", raw.id)
                return None
            visited.add(id(raw))
            data: Any = {**raw.to_dict(include_subtasks=False), "subtasks": list(raw.subtasks)}
        elif isinstance(raw, str):
            data = {"title": raw}
        elif isinstance(raw, Mapping):
            if id(raw) in visited:
                logger.warning("Task payload reachable twice; dropping repeat")
                return None
            visited.add(id(raw))
            data = dict(raw)
        else:
            logger.debug("Dropping non-task payload of type %s", type(raw).__name__)
            return None

        try:
            payload = TaskPayload.model_validate(data)
        except ValidationError:
            logger.warning("Dropping unparseable task payload", exc_info=True)
            return None

        node_id = payload.id
        if not node_id or node_id in seen_ids:
            if node_id:
                logger.info("Duplicate task id %s; issuing a fresh one", node_id)
            node_id = new_id()
            while node_id in seen_ids:
                node_id = new_id()
        seen_ids.add(node_id)

        subtasks = [n for n in (convert(s) for s in payload.subtasks) if n is not None]

        title = _pick_title(payload)
        if title is None:
            if not subtasks:
                logger.debug("Dropping task %s without a usable title", node_id)
                return None
            title = UNTITLED_TASK

        suggested = (
            payload.completion_suggested
            and payload.completion_confidence is not None
            and payload.status != TaskStatus.DONE
        )

        return TaskNode(
            id=node_id,
            canonical_id=payload.canonical_id,
            title=title,
            description=payload.description or "",
            priority=payload.priority,
            status=payload.status,
            due_at=payload.due_at,
            assignee=sanitize_assignee(payload.assignee, payload.assignee_name),
            subtasks=subtasks,
            completion_suggested=suggested,
            completion_confidence=payload.completion_confidence if suggested else None,
            completion_targets=_targets(payload.completion_targets),
            completion_evidence=_evidence(payload.completion_evidence),
            source_session_id=payload.source_session_id or source_session_id,
            source_session_type=payload.source_session_type or source_session_type,
            source_session_name=payload.source_session_name or source_session_name,
        )

    if not items:
        return []
    if isinstance(items, (str, Mapping)):
        items = [items]
    return [n for n in (convert(raw) for raw in items) if n is not None]
