# src/jobagg/cache/store.py
"""
Document stores behind the cache manager.

A store only knows how to insert a document, list documents and delete the
ones matching a predicate; tiering, TTLs and matching live in the manager.
Each document is independent, so no locking beyond atomic insert/delete.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, List, Protocol

from jobagg.errors import CacheStoreError
from jobagg.models import CacheEntry

logger = logging.getLogger(__name__)

Predicate = Callable[[CacheEntry], bool]


class CacheStore(Protocol):
    async def insert(self, entry: CacheEntry) -> None:
        ...

    async def entries(self) -> List[CacheEntry]:
        ...

    async def delete_where(self, predicate: Predicate) -> int:
        ...


class MemoryCacheStore:
    """In-process store; each pipeline instance gets its own."""

    def __init__(self) -> None:
        self._docs: List[CacheEntry] = []

    async def insert(self, entry: CacheEntry) -> None:
        self._docs.append(entry)

    async def entries(self) -> List[CacheEntry]:
        return list(self._docs)

    async def delete_where(self, predicate: Predicate) -> int:
        keep = [d for d in self._docs if not predicate(d)]
        removed = len(self._docs) - len(keep)
        self._docs = keep
        return removed


class JsonCacheStore:
    """
    Whole cache in one JSON file: {"entries": [...]}.

    Every operation re-reads the file; writes go to a temp file that is then
    renamed over the original.
    """

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    def _load(self) -> List[CacheEntry]:
        if not self.path.exists():
            return []
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise CacheStoreError(f"cannot read {self.path}: {e}") from e
        entries = data.get("entries") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise CacheStoreError(f"{self.path} is not a cache file")
        docs = [e for e in entries if isinstance(e, dict)]
        if len(docs) != len(entries):
            logger.warning(f"Ignoring {len(entries) - len(docs)} malformed entries in {self.path}")
        return docs

    def _save(self, entries: List[CacheEntry]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".jobagg-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"entries": entries}, f, ensure_ascii=False)
            os.replace(tmp, self.path)
        except OSError as e:
            raise CacheStoreError(f"cannot write {self.path}: {e}") from e

    async def insert(self, entry: CacheEntry) -> None:
        entries = self._load()
        entries.append(entry)
        self._save(entries)

    async def entries(self) -> List[CacheEntry]:
        return self._load()

    async def delete_where(self, predicate: Predicate) -> int:
        entries = self._load()
        keep = [e for e in entries if not predicate(e)]
        removed = len(entries) - len(keep)
        if removed:
            self._save(keep)
        return removed
