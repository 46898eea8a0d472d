"""In-memory vector index with exact cosine similarity search."""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence

import numpy as np

from .errors import InvalidConfiguration
from .models import Chunk, RetrievedChunk

DEFAULT_K = 4


class VectorIndex(ABC):
    """Read-only nearest-neighbour index over chunk embeddings."""

    model_name: str
    dimension: int

    @abstractmethod
    def __len__(self) -> int: ...

    @abstractmethod
    def search(self, query_vector: Sequence[float], k: int = DEFAULT_K) -> list[RetrievedChunk]:
        """Return at most ``k`` chunks ordered from most to least similar."""


def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms


class InMemoryVectorIndex(VectorIndex):
    """Linear scan over a matrix of unit-length rows.

    Built once from (chunk, vector) pairs. Ties in similarity keep insertion
    order, so the earlier chunk ranks first.
    """

    def __init__(self, chunks: list[Chunk], matrix: np.ndarray, model_name: str) -> None:
        self._chunks = chunks
        self._matrix = matrix
        self._matrix.setflags(write=False)
        self.model_name = model_name
        self.dimension = matrix.shape[1] if matrix.ndim == 2 else 0

    @classmethod
    def build(
        cls,
        pairs: Iterable[tuple[Chunk, Sequence[float]]],
        model_name: str,
    ) -> InMemoryVectorIndex:
        chunks: list[Chunk] = []
        vectors: list[Sequence[float]] = []
        for chunk, vector in pairs:
            chunks.append(chunk)
            vectors.append(vector)
        if not vectors:
            return cls([], np.zeros((0, 0), dtype=np.float64), model_name)
        dimensions = {len(vector) for vector in vectors}
        if len(dimensions) != 1:
            raise InvalidConfiguration(f"Mixed embedding dimensions in one index: {sorted(dimensions)}")
        matrix = _normalize_rows(np.asarray(vectors, dtype=np.float64))
        return cls(chunks, matrix, model_name)

    def __len__(self) -> int:
        return len(self._chunks)

    def search(self, query_vector: Sequence[float], k: int = DEFAULT_K) -> list[RetrievedChunk]:
        if k <= 0:
            raise InvalidConfiguration(f"k must be positive, got {k}")
        if not self._chunks:
            return []
        query = np.asarray(query_vector, dtype=np.float64)
        if query.shape != (self.dimension,):
            raise InvalidConfiguration(
                f"Query vector has dimension {query.shape[-1] if query.ndim else 0}, index expects {self.dimension}"
            )
        norm = np.linalg.norm(query)
        if norm:
            query = query / norm
        scores = self._matrix @ query
        order = np.argsort(-scores, kind="stable")[:k]
        return [RetrievedChunk(chunk=self._chunks[i], score=float(scores[i])) for i in order]
