# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskwise.core.state import AppState
from taskwise.store.document_store import DocumentStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="taskwise-test",
        log_level="DEBUG",
        # Paths (tmp per test run)
        data_dir=tmp_path,
        store_db_path=tmp_path / "store.sqlite3",
        # Completion inference
        completion_match_threshold=0.6,
        auto_approve_completed_tasks=False,
        auto_approve_threshold=None,
        require_attendee_match=False,
        match_include_description=True,
        # Reconciliation / editor
        prune_policy="delete_unreferenced",
        history_limit=50,
    )


@pytest.fixture()
def store(settings: SimpleNamespace) -> DocumentStore:
    """Real SQLite store: its filtering and change detection are part of what we test."""
    return DocumentStore(settings.store_db_path)


@pytest.fixture()
def state(settings: SimpleNamespace, store: DocumentStore) -> AppState:
    return AppState(settings=settings, store=store)
