"""Query-time retrieval and the per-source index cache."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable

from .embeddings import EmbeddingService
from .errors import InvalidConfiguration
from .models import RetrievedChunk
from .vectorstore import DEFAULT_K, VectorIndex

logger = logging.getLogger(__name__)


class Retriever:
    """Embeds a question and returns the closest chunks from an index."""

    def __init__(self, embedder: EmbeddingService, index: VectorIndex, k: int = DEFAULT_K) -> None:
        if k <= 0:
            raise InvalidConfiguration(f"retrieval k must be positive, got {k}")
        if embedder.model_name != index.model_name:
            raise InvalidConfiguration(
                f"Index was built with {index.model_name!r} but queries use {embedder.model_name!r}"
            )
        self.embedder = embedder
        self.index = index
        self.k = k

    def retrieve(self, query: str) -> list[RetrievedChunk]:
        return self.search(self.embedder.embed(query))

    async def aretrieve(self, query: str) -> list[RetrievedChunk]:
        return self.search(await self.embedder.aembed(query))

    def search(self, query_vector: list[float]) -> list[RetrievedChunk]:
        results = self.index.search(query_vector, self.k)
        logger.info(
            "Retrieved %d of %d chunk(s), top score %s",
            len(results),
            len(self.index),
            f"{results[0].score:.3f}" if results else None,
        )
        return results


class IndexCache:
    """Built indexes keyed by source, with at most one build in flight per key."""

    def __init__(self) -> None:
        self._indexes: dict[Hashable, VectorIndex] = {}
        self._locks: dict[Hashable, asyncio.Lock] = {}

    def __contains__(self, key: Hashable) -> bool:
        return key in self._indexes

    def __len__(self) -> int:
        return len(self._indexes)

    async def get_or_build(self, key: Hashable, build: Callable[[], Awaitable[VectorIndex]]) -> VectorIndex:
        cached = self._indexes.get(key)
        if cached is not None:
            return cached
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            cached = self._indexes.get(key)
            if cached is not None:
                return cached
            index = await build()
            self._indexes[key] = index
            self._locks.pop(key, None)
            logger.info("Cached index for %s (%d entries)", key, len(index))
            return index

    def invalidate(self, key: Hashable) -> None:
        self._indexes.pop(key, None)
        self._locks.pop(key, None)

    def clear(self) -> None:
        self._indexes.clear()
        self._locks.clear()
