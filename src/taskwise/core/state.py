# src/taskwise/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..store.document_store import DocumentStore


@dataclass
class AppState:
    # Settings live on the state so commands never read globals.
    settings: object
    store: DocumentStore
