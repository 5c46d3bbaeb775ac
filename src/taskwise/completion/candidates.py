# src/taskwise/completion/candidates.py

"""
Candidate pool for completion matching.

The same real-world task usually lives in several places at once: the
canonical tasks collection plus one or more session views. Open nodes are
grouped by (title key, assignee key) so each task becomes ONE candidate
carrying every place it lives as a CompletionTarget.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..tasks.assignee import assignee_key
from ..tasks.task_models import Assignee, CompletionSourceType, CompletionTarget, TaskNode
from ..tasks.task_tree import iter_nodes
from ..tasks.text_keys import is_valid_title, normalize_person_key, normalize_title_key, tokenize

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Attendee:
    name: str | None = None
    email: str | None = None


@dataclass(slots=True)
class CompletionCandidate:
    key: str
    task_id: str
    title: str
    description: str
    assignee: Assignee | None
    targets: list[CompletionTarget] = field(default_factory=list)
    title_tokens: frozenset[str] = frozenset()
    description_tokens: frozenset[str] = frozenset()

    def add_target(self, target: CompletionTarget) -> None:
        if all(t.key != target.key for t in self.targets):
            self.targets.append(target)


def targets_for_node(node: TaskNode) -> list[CompletionTarget]:
    """Every collection entry a completion of `node` must reach."""
    out: list[CompletionTarget] = []
    if node.canonical_id:
        out.append(
            CompletionTarget(
                source_type=CompletionSourceType.TASK,
                source_session_id=node.canonical_id,
                task_id=node.canonical_id,
            )
        )
    if node.source_session_type and node.source_session_id:
        out.append(
            CompletionTarget(
                source_type=CompletionSourceType.for_session(node.source_session_type),
                source_session_id=node.source_session_id,
                task_id=node.id,
                source_session_name=node.source_session_name,
            )
        )
    return out


def _is_attendee(assignee: Assignee | None, names: set[str], emails: set[str]) -> bool:
    if assignee is None:
        return False
    if assignee.email and assignee.email.strip().lower() in emails:
        return True
    return bool(assignee.name) and normalize_person_key(assignee.name) in names


def build_candidates(
    open_tasks: Iterable[TaskNode],
    *,
    attendees: Iterable[Attendee] = (),
    require_attendee_match: bool = False,
) -> list[CompletionCandidate]:
    """
    Group open tasks into candidates, in first-seen order.

    With require_attendee_match and a non-empty attendee list, only tasks
    assigned to an attendee are kept; if that leaves nothing, all are kept.
    """
    nodes = [n for n in iter_nodes(open_tasks) if not n.is_done and not n.completion_suggested]
    nodes = [n for n in nodes if is_valid_title(n.title)]

    attendee_list = list(attendees)
    names = {normalize_person_key(a.name) for a in attendee_list if a.name}
    emails = {a.email.strip().lower() for a in attendee_list if a.email}
    names.discard("")
    if require_attendee_match and (names or emails):
        restricted = [n for n in nodes if _is_attendee(n.assignee, names, emails)]
        if restricted:
            nodes = restricted
        else:
            logger.debug("No open task is assigned to an attendee; matching against all")

    by_key: dict[str, CompletionCandidate] = {}
    for node in nodes:
        key = f"{normalize_title_key(node.title)}|{assignee_key(node.assignee)}"
        cand = by_key.get(key)
        if cand is None:
            cand = CompletionCandidate(
                key=key,
                task_id=node.canonical_id or node.id,
                title=node.title,
                description=node.description,
                assignee=node.assignee,
                title_tokens=frozenset(tokenize(node.title)),
                description_tokens=frozenset(tokenize(node.description)),
            )
            by_key[key] = cand
        elif len(node.description) > len(cand.description):
            cand.description = node.description
            cand.description_tokens = frozenset(tokenize(node.description))
        for target in targets_for_node(node):
            cand.add_target(target)

    return list(by_key.values())
