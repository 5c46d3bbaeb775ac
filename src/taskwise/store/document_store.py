# src/taskwise/store/document_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
import uuid
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from ..core.ports import Document, DocumentFilter
from .filters import equality_value, matches

logger = logging.getLogger(__name__)

TASKS = "tasks"
BOARD_ITEMS = "boardItems"
CHAT_SESSIONS = "chatSessions"
PLANNING_SESSIONS = "planningSessions"
MEETINGS = "meetings"
PEOPLE = "people"
USERS = "users"

KNOWN_COLLECTIONS = (TASKS, BOARD_ITEMS, CHAT_SESSIONS, PLANNING_SESSIONS, MEETINGS, PEOPLE, USERS)


class DocumentStore:
    """
    SQLite-backed document store (one table, JSON bodies).

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Filtering is evaluated in Python (see store.filters); `user_id` equality
    is pushed down to SQL since every query of the engine pins it.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "taskwise.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_all()
        except Exception:
            total = -1
        logger.info("DocumentStore ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    id TEXT NOT NULL,
                    body TEXT NOT NULL DEFAULT '{}',
                    PRIMARY KEY (collection, id)
                )
                """
            )

            cur.execute("PRAGMA table_info(documents)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE documents ADD COLUMN {name} {decl}")
                logger.info("DocumentStore migration: added column %s", name)

            add_col("user_id", "TEXT")
            add_col("created_at", "REAL NOT NULL DEFAULT 0")
            add_col("updated_at", "REAL NOT NULL DEFAULT 0")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_documents_user ON documents(collection, user_id)")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _encode(doc: Mapping[str, Any]) -> str:
        return json.dumps(dict(doc), ensure_ascii=False, default=str)

    @staticmethod
    def _decode(raw: str | None) -> Document:
        if not raw:
            return {}
        try:
            val = json.loads(raw)
            return val if isinstance(val, dict) else {}
        except Exception:
            logger.exception("Corrupt document body; treating as empty.")
            return {}

    @staticmethod
    def _user_of(doc: Mapping[str, Any]) -> str | None:
        uid = doc.get("user_id")
        return str(uid) if uid is not None else None

    def _select(self, collection: str, filter: DocumentFilter | None) -> list[Document]:
        sql = "SELECT body FROM documents WHERE collection = ?"
        args: list[Any] = [collection]
        user_id = equality_value(filter, "user_id")
        if user_id is not None:
            sql += " AND user_id = ?"
            args.append(str(user_id))
        sql += " ORDER BY created_at ASC, rowid ASC"

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(sql, args)
            rows = cur.fetchall()
        finally:
            conn.close()

        out: list[Document] = []
        for row in rows:
            doc = self._decode(row["body"])
            if matches(doc, filter):
                out.append(doc)
        return out

    # ---- public API ----

    def count_all(self) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) FROM documents")
            (n,) = cur.fetchone()
            return int(n)
        finally:
            conn.close()

    def count_by_collection(self) -> dict[str, int]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT collection, COUNT(*) AS n FROM documents GROUP BY collection ORDER BY collection")
            return {row["collection"]: int(row["n"]) for row in cur.fetchall()}
        finally:
            conn.close()

    def get(self, collection: str, doc_id: str) -> Document | None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT body FROM documents WHERE collection = ? AND id = ?", (collection, str(doc_id)))
            row = cur.fetchone()
        finally:
            conn.close()
        return self._decode(row["body"]) if row else None

    def find(
        self,
        collection: str,
        filter: DocumentFilter | None = None,
        *,
        limit: int | None = None,
    ) -> list[Document]:
        docs = self._select(collection, filter)
        if limit is not None:
            docs = docs[: max(0, limit)]
        return docs

    def find_one(self, collection: str, filter: DocumentFilter | None = None) -> Document | None:
        docs = self.find(collection, filter, limit=1)
        return docs[0] if docs else None

    def count(self, collection: str, filter: DocumentFilter | None = None) -> int:
        return len(self._select(collection, filter))

    def insert(self, collection: str, doc: Mapping[str, Any]) -> str:
        """Insert a new document; assigns a UUID `_id` when missing."""
        body = dict(doc)
        doc_id = str(body.get("_id") or uuid.uuid4())
        body["_id"] = doc_id
        now = time.time()

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO documents (collection, id, body, user_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (collection, doc_id, self._encode(body), self._user_of(body), now, now),
            )
            conn.commit()
        except sqlite3.IntegrityError as e:
            raise ValueError(f"document {collection}/{doc_id} already exists") from e
        finally:
            conn.close()

        logger.debug("Inserted %s/%s", collection, doc_id)
        return doc_id

    def upsert(self, collection: str, doc: Mapping[str, Any]) -> bool:
        """Insert or fully replace by `_id`. Returns True when a new document was created."""
        doc_id = doc.get("_id")
        if not doc_id:
            raise ValueError("upsert requires _id")
        body = dict(doc)
        body["_id"] = str(doc_id)
        now = time.time()

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "UPDATE documents SET body = ?, user_id = ?, updated_at = ? WHERE collection = ? AND id = ?",
                (self._encode(body), self._user_of(body), now, collection, body["_id"]),
            )
            created = cur.rowcount == 0
            if created:
                cur.execute(
                    """
                    INSERT INTO documents (collection, id, body, user_id, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (collection, body["_id"], self._encode(body), self._user_of(body), now, now),
                )
            conn.commit()
            return created
        finally:
            conn.close()

    def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> bool:
        """
        Set `fields` on one document ($set semantics).

        Returns True only when something actually changed, so callers can
        count real modifications and re-runs report zero.
        """
        if "_id" in fields and str(fields["_id"]) != str(doc_id):
            raise ValueError("update cannot change _id")

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT body FROM documents WHERE collection = ? AND id = ?", (collection, str(doc_id)))
            row = cur.fetchone()
            if row is None:
                return False
            body = self._decode(row["body"])
            before = json.loads(self._encode(body))
            body.update(fields)
            encoded = self._encode(body)
            if json.loads(encoded) == before:
                return False
            cur.execute(
                "UPDATE documents SET body = ?, user_id = ?, updated_at = ? WHERE collection = ? AND id = ?",
                (encoded, self._user_of(body), time.time(), collection, str(doc_id)),
            )
            conn.commit()
            return True
        finally:
            conn.close()

    def update_many(self, collection: str, filter: DocumentFilter, fields: Mapping[str, Any]) -> int:
        changed = 0
        for doc in self._select(collection, filter):
            if self.update(collection, doc["_id"], fields):
                changed += 1
        return changed

    def delete(self, collection: str, doc_id: str) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("DELETE FROM documents WHERE collection = ? AND id = ?", (collection, str(doc_id)))
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    def delete_many(self, collection: str, filter: DocumentFilter) -> int:
        deleted = 0
        for doc in self._select(collection, filter):
            if self.delete(collection, doc["_id"]):
                deleted += 1
        return deleted
