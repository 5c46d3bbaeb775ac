# src/taskwise/tasks/assignee.py

from __future__ import annotations

import logging
from collections.abc import Iterable

from ..core.ports import PersonDirectory
from .task_models import Assignee, Person, TaskNode, TaskTree
from .task_tree import map_nodes
from .text_keys import is_unassigned_label, normalize_person_key

logger = logging.getLogger(__name__)


def assignee_key(assignee: Assignee | None) -> str:
    """
    Grouping key for "same person" comparisons.

    Email wins over name; placeholders collapse to "unassigned".
    """
    if assignee is None:
        return "unassigned"
    if assignee.email:
        return f"email:{assignee.email.strip().lower()}"
    if assignee.name and not is_unassigned_label(assignee.name):
        key = normalize_person_key(assignee.name)
        if key:
            return f"name:{key}"
    return "unassigned"


def resolve_person(assignee: Assignee | None, directory: PersonDirectory) -> Person | None:
    """
    Resolve by direct id, then email, then normalized name.

    A uid the directory does not know (stale or from another user) falls
    through to the email and name lookups.
    """
    if assignee is None:
        return None
    if assignee.uid:
        person = directory.find_by_id(assignee.uid)
        if person is not None:
            return person
        logger.debug("Unknown assignee uid %s; trying email and name", assignee.uid)
    if assignee.email:
        person = directory.find_by_email(assignee.email.lower())
        if person is not None:
            return person
    if assignee.name and not is_unassigned_label(assignee.name):
        key = normalize_person_key(assignee.name)
        if key:
            return directory.find_by_name_key(key)
    return None


def resolve_assignees(tree: Iterable[TaskNode], directory: PersonDirectory) -> TaskTree:
    """Return a copy of `tree` with assignees linked to directory entries where possible."""
    resolved = 0

    def apply(node: TaskNode) -> None:
        nonlocal resolved
        person = resolve_person(node.assignee, directory)
        if person is None:
            return
        node.assignee = Assignee(
            uid=person.id,
            name=person.name or (node.assignee.name if node.assignee else None),
            email=person.email or (node.assignee.email if node.assignee else None),
        )
        resolved += 1

    out = map_nodes(tree, apply)
    if resolved:
        logger.debug("Resolved %d assignee(s) against the person directory", resolved)
    return out
