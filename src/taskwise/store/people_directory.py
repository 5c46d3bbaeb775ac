# src/taskwise/store/people_directory.py

from __future__ import annotations

from typing import Any

from ..core.ports import DocumentRepo
from ..tasks.task_models import Person
from ..tasks.text_keys import normalize_person_key
from .document_store import PEOPLE


class StorePersonDirectory:
    """PersonDirectory over the `people` collection, scoped to one user."""

    def __init__(self, store: DocumentRepo, user_id: str) -> None:
        self._store = store
        self._user_id = user_id

    @staticmethod
    def _to_person(doc: dict[str, Any] | None) -> Person | None:
        if not doc:
            return None
        return Person(id=str(doc["_id"]), name=doc.get("name"), email=doc.get("email"))

    def find_by_id(self, person_id: str) -> Person | None:
        doc = self._store.get(PEOPLE, person_id)
        if doc and doc.get("user_id") == self._user_id:
            return self._to_person(doc)
        return None

    def find_by_email(self, email: str) -> Person | None:
        return self._to_person(
            self._store.find_one(PEOPLE, {"user_id": self._user_id, "email": email.strip().lower()})
        )

    def find_by_name_key(self, name_key: str) -> Person | None:
        key = normalize_person_key(name_key)
        if not key:
            return None
        for doc in self._store.find(PEOPLE, {"user_id": self._user_id}):
            if normalize_person_key(doc.get("name")) == key:
                return self._to_person(doc)
            aliases = doc.get("aliases") or []
            if any(normalize_person_key(a) == key for a in aliases if isinstance(a, str)):
                return self._to_person(doc)
        return None
