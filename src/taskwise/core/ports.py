# src/taskwise/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The engine depends on Protocols instead of concrete implementations.
This keeps the document store and the AI extractor swappable and makes
testing easier.
"""

from collections.abc import Mapping, Sequence
from typing import Any, Awaitable, Protocol

from ..tasks.task_models import Person

Document = dict[str, Any]
# Plain JSON-compatible dict; "_id" is the primary key inside a collection.

DocumentFilter = Mapping[str, Any]
# Mongo-style filter: {"field": value, "field": {"$in": [...]}, "$or": [...]}.


class DocumentRepo(Protocol):
    """Collection-oriented persistence used by the synchronizer and maintenance tools."""

    def get(self, collection: str, doc_id: str) -> Document | None: ...

    def find(
            self,
            collection: str,
            filter: DocumentFilter | None = None,
            *,
            limit: int | None = None,
    ) -> list[Document]: ...

    def find_one(self, collection: str, filter: DocumentFilter | None = None) -> Document | None: ...

    def count(self, collection: str, filter: DocumentFilter | None = None) -> int: ...

    def upsert(self, collection: str, doc: Mapping[str, Any]) -> bool: ...

    def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> bool: ...

    def update_many(self, collection: str, filter: DocumentFilter, fields: Mapping[str, Any]) -> int: ...

    def delete(self, collection: str, doc_id: str) -> bool: ...

    def delete_many(self, collection: str, filter: DocumentFilter) -> int: ...


class Extractor(Protocol):
    """
    Opaque AI extractor: returns a loosely-shaped task tree for a session.

    Output is normalized by tasks.normalize; it may be any mix of dicts and strings.
    """

    def extract(self, context: Any) -> Awaitable[Sequence[Any]]: ...


class PersonDirectory(Protocol):
    def find_by_id(self, person_id: str) -> Person | None: ...
    def find_by_email(self, email: str) -> Person | None: ...
    def find_by_name_key(self, name_key: str) -> Person | None: ...
