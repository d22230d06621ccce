"""Process-local document store for development and tests."""

import asyncio
import copy
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence

from ..base import BaseDocumentStore
from .._utils import logger


@dataclass
class MemoryDocumentStore(BaseDocumentStore):
    """Keeps collections as lists of dicts.

    ``global_config["initial_data"]`` may seed collections. Staged restores are
    published by swapping the whole collection mapping in one assignment, so
    readers see either the old dataset or the new one.
    """

    def __post_init__(self):
        self._lock = threading.Lock()
        self._collections: Dict[str, List[dict]] = {}
        self._staging: Dict[str, Dict[str, List[dict]]] = {}
        # Yield to the event loop every N records while streaming
        self._yield_every = int(self.global_config.get("yield_every", 100))

        for name, documents in (self.global_config.get("initial_data") or {}).items():
            self._collections[name] = [copy.deepcopy(doc) for doc in documents]

    async def iter_documents(self, collection: str):
        with self._lock:
            snapshot = list(self._collections.get(collection, ()))

        for index, document in enumerate(snapshot):
            if index % self._yield_every == 0:
                await asyncio.sleep(0)
            yield copy.deepcopy(document)

    async def count_documents(self, collection: str) -> int:
        with self._lock:
            return len(self._collections.get(collection, ()))

    async def insert_documents(self, collection: str, documents: Iterable[dict]) -> int:
        new_docs = [copy.deepcopy(doc) for doc in documents]
        with self._lock:
            current = list(self._collections.get(collection, ()))
            current.extend(new_docs)
            self._collections[collection] = current
        return len(new_docs)

    async def list_collections(self) -> List[str]:
        with self._lock:
            return sorted(self._collections)

    async def begin_staging(self, token: str) -> None:
        with self._lock:
            if token in self._staging:
                raise ValueError(f"Staging area already exists: {token}")
            self._staging[token] = {}

    async def stage_documents(self, token: str, collection: str, documents: List[dict]) -> None:
        with self._lock:
            staged = self._staging[token]
            staged.setdefault(collection, []).extend(copy.deepcopy(doc) for doc in documents)
        await asyncio.sleep(0)

    async def swap_staged(self, token: str, collections: Sequence[str]) -> None:
        with self._lock:
            staged = self._staging.pop(token)
            replacement = dict(self._collections)
            for name in collections:
                replacement[name] = staged.get(name, [])
            self._collections = replacement

        logger.debug(f"Swapped {len(collections)} staged collections into place")

    async def discard_staged(self, token: str) -> None:
        with self._lock:
            self._staging.pop(token, None)
