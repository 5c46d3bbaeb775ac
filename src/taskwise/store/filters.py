# src/taskwise/store/filters.py

"""
Tiny Mongo-style filter evaluator for documents held as JSON.

Supported:
- {"field": value}                  equality (None also matches a missing field)
- {"field": {"$eq"|"$ne": v}}
- {"field": {"$in"|"$nin": [...]}}
- {"field": {"$exists": bool}}
- {"$or": [f, ...]}, {"$and": [f, ...]}
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

_MISSING = object()


def _op_matches(value: Any, op: str, arg: Any) -> bool:
    if op == "$eq":
        return _eq(value, arg)
    if op == "$ne":
        return not _eq(value, arg)
    if op == "$in":
        return any(_eq(value, a) for a in arg)
    if op == "$nin":
        return not any(_eq(value, a) for a in arg)
    if op == "$exists":
        return (value is not _MISSING) == bool(arg)
    raise ValueError(f"unsupported filter operator: {op}")


def _eq(value: Any, expected: Any) -> bool:
    if value is _MISSING:
        return expected is None
    return value == expected


def matches(doc: Mapping[str, Any], filter: Mapping[str, Any] | None) -> bool:
    if not filter:
        return True
    for key, cond in filter.items():
        if key == "$or":
            if not any(matches(doc, sub) for sub in cond):
                return False
            continue
        if key == "$and":
            if not all(matches(doc, sub) for sub in cond):
                return False
            continue

        value = doc.get(key, _MISSING)
        if isinstance(cond, Mapping) and cond and all(str(k).startswith("$") for k in cond):
            if not all(_op_matches(value, op, arg) for op, arg in cond.items()):
                return False
        elif not _eq(value, cond):
            return False
    return True


def equality_value(filter: Mapping[str, Any] | None, key: str) -> Any:
    """Plain equality value for `key` if the filter pins it, else None (used for SQL prefiltering)."""
    if not filter:
        return None
    cond = filter.get(key)
    if cond is None or isinstance(cond, Mapping):
        return None
    return cond
