# src/taskwise/errors.py

"""
Failure kinds surfaced by the ingestion and reconciliation passes.

None of these is fatal for the user: the pipeline records them on its result
objects and keeps going (or, for extraction, stops before writing anything).
Orphan selections and tied matches are not errors at all; they are resolved
in place and only logged.
"""

from __future__ import annotations


class TaskwiseError(Exception):
    """Base class for engine failures."""


class ExtractionFailure(TaskwiseError):
    """The extractor raised or returned nothing usable; no writes happened."""

    def __init__(self, session_id: str, message: str) -> None:
        super().__init__(f"extraction failed for session {session_id}: {message}")
        self.session_id = session_id
        self.message = message


class WriteFailure(TaskwiseError):
    """A single collection write failed during a best-effort pass."""

    def __init__(self, collection: str, operation: str, cause: BaseException | str) -> None:
        super().__init__(f"{operation} on {collection} failed: {cause}")
        self.collection = collection
        self.operation = operation
        self.cause = cause
