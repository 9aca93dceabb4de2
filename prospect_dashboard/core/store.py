"""
Key-path JSON document store for the Prospect Dashboard backend.

All persistent state lives in date-scoped JSON documents addressed by string keys
(e.g. ``daily/2026-01-10.json``, ``overseas-sales.json``). This module is the
single point of data access: services receive a ``DocumentStore`` and only ever
call ``get``, ``put``, ``list`` and ``delete`` on it. No multi-key transaction is
offered; callers serialize read-modify-write cycles per date themselves.

Key Components:
- DocumentStore: abstract async interface
- JsonFileStore: one UTF-8 JSON file per key below a root directory
- InMemoryStore: dict-backed store used by tests and ``STORE_BACKEND=memory``
- init_store() / get_store() / close_store(): application-wide singleton

Usage:
    # At application startup (in FastAPI lifespan)
    await init_store()

    # In services or endpoints
    store = await get_store()
    snapshot = await store.get("daily/2026-01-10.json")

    # At application shutdown
    await close_store()
"""

import asyncio
import copy
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from prospect_dashboard.core.config import get_settings

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


# =============================================================================
# Store Interface
# =============================================================================

class DocumentStore(ABC):
    """Async key -> JSON document store."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Document]:
        """Return the document stored under ``key`` or None when absent."""

    @abstractmethod
    async def put(self, key: str, document: Document) -> None:
        """Create or replace the document stored under ``key``."""

    @abstractmethod
    async def list(self, prefix: str = "") -> List[str]:
        """Return all keys starting with ``prefix``, sorted ascending."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if a document was removed."""

    async def close(self) -> None:
        return None


# =============================================================================
# Implementations
# =============================================================================

class InMemoryStore(DocumentStore):
    """
    Dict-backed document store.

    Documents are deep-copied on the way in and out so callers can never
    mutate stored state without an explicit ``put``.
    """

    def __init__(self, documents: Optional[Dict[str, Document]] = None):
        self._documents: Dict[str, Document] = {}
        for key, document in (documents or {}).items():
            self._documents[key] = copy.deepcopy(document)

    async def get(self, key: str) -> Optional[Document]:
        document = self._documents.get(key)
        return copy.deepcopy(document) if document is not None else None

    async def put(self, key: str, document: Document) -> None:
        self._documents[key] = copy.deepcopy(document)

    async def list(self, prefix: str = "") -> List[str]:
        return sorted(key for key in self._documents if key.startswith(prefix))

    async def delete(self, key: str) -> bool:
        return self._documents.pop(key, None) is not None


class JsonFileStore(DocumentStore):
    """
    Filesystem document store.

    Each key maps to a file below ``root``; ``/`` in a key becomes a
    subdirectory. Writes go to a temporary file that replaces the target,
    so a crashed write never leaves a truncated document behind. File IO
    runs in a worker thread to keep the event loop free.
    """

    def __init__(self, root: str):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        if not key or key.startswith("/") or ".." in Path(key).parts:
            raise ValueError(f"Invalid document key: {key!r}")
        return self.root / key

    def _read(self, key: str) -> Optional[Document]:
        path = self._path(key)
        if not path.is_file():
            return None
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)

    def _write(self, key: str, document: Document) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _list(self, prefix: str) -> List[str]:
        if not self.root.is_dir():
            return []
        keys = []
        for path in self.root.rglob("*.json"):
            if path.name.startswith(".tmp-"):
                continue
            key = path.relative_to(self.root).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)

    def _delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.is_file():
            return False
        path.unlink()
        return True

    async def get(self, key: str) -> Optional[Document]:
        return await asyncio.to_thread(self._read, key)

    async def put(self, key: str, document: Document) -> None:
        await asyncio.to_thread(self._write, key, document)

    async def list(self, prefix: str = "") -> List[str]:
        return await asyncio.to_thread(self._list, prefix)

    async def delete(self, key: str) -> bool:
        return await asyncio.to_thread(self._delete, key)


# =============================================================================
# Global Store Singleton
# =============================================================================

# None until init_store() is called
_store: Optional[DocumentStore] = None


def create_store(backend: str, data_dir: str) -> DocumentStore:
    """
    Build a store for the configured backend.

    Raises:
        ValueError: If ``backend`` is not 'file' or 'memory'.
    """
    if backend == "memory":
        return InMemoryStore()
    if backend == "file":
        return JsonFileStore(data_dir)
    raise ValueError(f"Unknown store backend: {backend}")


async def init_store() -> DocumentStore:
    """
    Initialize the document store singleton from settings.

    Idempotent: returns the existing store if already initialized.
    """
    global _store

    if _store is None:
        settings = get_settings()
        _store = create_store(settings.store_backend, settings.data_dir)
        logger.info(f"Document store initialized ({settings.store_backend}, root={settings.data_dir})")

    return _store


async def get_store() -> DocumentStore:
    """Return the store singleton, initializing it lazily."""
    global _store

    if _store is None:
        await init_store()

    assert _store is not None, "Store should be initialized after init_store()"

    return _store


async def close_store() -> None:
    """Release the store singleton. Safe to call when not initialized."""
    global _store

    if _store is not None:
        await _store.close()
        _store = None
