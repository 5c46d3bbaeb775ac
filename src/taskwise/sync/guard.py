# src/taskwise/sync/guard.py

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from ..errors import WriteFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")


def guarded_write(
    failures: list[WriteFailure],
    collection: str,
    operation: str,
    fn: Callable[[], T],
    default: T,
) -> T:
    """
    Run one collection write; on failure log it, record a WriteFailure and return `default`.

    Sync passes are ordered and idempotent, so a failed write is repaired by the next pass.
    """
    try:
        return fn()
    except Exception as e:
        logger.exception("Write failed: %s on %s", operation, collection)
        failures.append(WriteFailure(collection, operation, e))
        return default
