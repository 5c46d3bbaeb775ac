# src/taskwise/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    TODO = "todo"
    INPROGRESS = "inprogress"
    DONE = "done"
    RECURRING = "recurring"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.TODO
        key = str(raw).strip().lower().replace("_", "").replace("-", "").replace(" ", "")
        if key in {"completed", "complete", "finished", "closed"}:
            return cls.DONE
        try:
            return cls(key)
        except Exception:
            return cls.TODO


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskPriority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls(str(raw).strip().lower())
        except Exception:
            return cls.MEDIUM


class SessionType(StrEnum):
    """Kind of conversation a task tree was extracted from."""

    CHAT = "chat"
    PLANNING = "planning"
    MEETING = "meeting"

    @classmethod
    def from_db(cls, raw: str | None) -> SessionType | None:
        if not raw:
            return None
        try:
            return cls(str(raw).strip().lower())
        except Exception:
            return None


class CompletionSourceType(StrEnum):
    """
    Where a completion target lives.

    TASK points straight at a canonical task document; the session kinds
    point at a node inside that session's denormalized task list.
    """

    TASK = "task"
    MEETING = "meeting"
    CHAT = "chat"
    PLANNING = "planning"

    @classmethod
    def for_session(cls, session_type: SessionType) -> CompletionSourceType:
        return cls(str(session_type))

    @classmethod
    def from_db(cls, raw: str | None) -> CompletionSourceType | None:
        if not raw:
            return None
        try:
            return cls(str(raw).strip().lower())
        except Exception:
            return None


class TaskState(StrEnum):
    """Lifecycle of a canonical task document."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUGGESTED = "suggested"
    ARCHIVED = "archived"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskState:
        if not raw:
            return cls.ACTIVE
        try:
            return cls(str(raw).strip().lower())
        except Exception:
            return cls.ACTIVE


@dataclass(slots=True)
class Assignee:
    """Lookup key into the person directory, never an ownership relation."""

    uid: str | None = None
    name: str | None = None
    email: str | None = None

    def is_empty(self) -> bool:
        return not (self.uid or self.name or self.email)

    def to_dict(self) -> dict[str, Any]:
        return {"uid": self.uid, "name": self.name, "email": self.email}


@dataclass(frozen=True, slots=True)
class CompletionTarget:
    source_type: CompletionSourceType
    source_session_id: str
    task_id: str
    source_session_name: str | None = None

    @property
    def key(self) -> str:
        return f"{self.source_type}:{self.source_session_id}:{self.task_id}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_type": str(self.source_type),
            "source_session_id": self.source_session_id,
            "task_id": self.task_id,
            "source_session_name": self.source_session_name,
        }


@dataclass(frozen=True, slots=True)
class TaskEvidence:
    snippet: str
    speaker: str | None = None
    timestamp: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"snippet": self.snippet, "speaker": self.speaker, "timestamp": self.timestamp}


@dataclass(slots=True)
class TaskNode:
    """
    One node of a task tree.

    Invariants:
    - `id` is stable across re-extraction passes and unique within a tree
    - `completion_confidence` is set iff `completion_suggested` is true
    - subtasks are owned by this node only (no sharing between parents)
    """

    id: str
    title: str
    description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.TODO
    due_at: datetime | None = None
    assignee: Assignee | None = None
    subtasks: list[TaskNode] = field(default_factory=list)

    canonical_id: str | None = None

    completion_suggested: bool = False
    completion_confidence: float | None = None
    completion_targets: list[CompletionTarget] = field(default_factory=list)
    completion_evidence: list[TaskEvidence] = field(default_factory=list)

    source_session_id: str | None = None
    source_session_type: SessionType | None = None
    source_session_name: str | None = None

    def __post_init__(self) -> None:
        if not self.completion_suggested:
            if self.completion_confidence is not None:
                raise ValueError(f"task {self.id}: completion_confidence set without a suggestion")
            return
        if self.completion_confidence is None:
            raise ValueError(f"task {self.id}: completion suggestion requires a confidence")
        if not 0.0 <= self.completion_confidence <= 1.0:
            raise ValueError(f"task {self.id}: completion_confidence must be within [0, 1]")

    @property
    def is_done(self) -> bool:
        return self.status == TaskStatus.DONE

    def suggest_completion(
        self,
        confidence: float,
        targets: list[CompletionTarget] | None = None,
        evidence: list[TaskEvidence] | None = None,
    ) -> None:
        self.completion_suggested = True
        self.completion_confidence = min(1.0, max(0.0, float(confidence)))
        if targets is not None:
            self.completion_targets = list(targets)
        if evidence is not None:
            self.completion_evidence = list(evidence)

    def clear_completion_suggestion(self, *, keep_targets: bool = False) -> None:
        self.completion_suggested = False
        self.completion_confidence = None
        if not keep_targets:
            self.completion_targets = []
            self.completion_evidence = []

    def to_dict(self, *, include_subtasks: bool = True) -> dict[str, Any]:
        """Serialize for denormalized session views (read back through normalize_task_tree)."""
        data = {
            "id": self.id,
            "canonical_id": self.canonical_id,
            "title": self.title,
            "description": self.description,
            "priority": str(self.priority),
            "status": str(self.status),
            "due_at": self.due_at.isoformat() if self.due_at else None,
            "assignee": self.assignee.to_dict() if self.assignee else None,
            "completion_suggested": self.completion_suggested,
            "completion_confidence": self.completion_confidence,
            "completion_targets": [t.to_dict() for t in self.completion_targets],
            "completion_evidence": [e.to_dict() for e in self.completion_evidence],
            "source_session_id": self.source_session_id,
            "source_session_type": str(self.source_session_type) if self.source_session_type else None,
            "source_session_name": self.source_session_name,
        }
        if include_subtasks:
            data["subtasks"] = [s.to_dict() for s in self.subtasks]
        return data


TaskTree = list[TaskNode]


@dataclass(slots=True)
class Person:
    """Directory entry an Assignee can resolve to."""

    id: str
    name: str | None = None
    email: str | None = None
