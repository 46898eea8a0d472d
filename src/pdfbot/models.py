"""Core domain models for the question answering pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import ErrorKind

FALLBACK_ANSWER = "Could not produce an answer."


class QueryState(str, Enum):
    IDLE = "idle"
    EMBEDDING = "embedding"
    RETRIEVING = "retrieving"
    PROMPT_ASSEMBLED = "prompt_assembled"
    GENERATING = "generating"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class Chunk:
    chunk_id: str
    document_id: str
    text: str
    source: str
    page_number: int | None
    chunk_index: int
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class RetrievedChunk:
    chunk: Chunk
    score: float


@dataclass(slots=True, frozen=True)
class Citation:
    document_id: str
    source_name: str
    page_number: int | None


@dataclass(slots=True)
class QAResponse:
    answer: str
    citations: list[Citation] = field(default_factory=list)
    state: QueryState = QueryState.DONE
    error_kind: ErrorKind | None = None
    latency_ms: float | None = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    @classmethod
    def failed(cls, kind: ErrorKind, latency_ms: float | None = None) -> QAResponse:
        return cls(answer=FALLBACK_ANSWER, state=QueryState.FAILED, error_kind=kind, latency_ms=latency_ms)


def citations_for(retrieved: list[RetrievedChunk]) -> list[Citation]:
    """Distinct (document, page) pairs of the retrieved chunks, in rank order."""

    seen: set[tuple[str, int | None]] = set()
    citations: list[Citation] = []
    for item in retrieved:
        key = (item.chunk.document_id, item.chunk.page_number)
        if key in seen:
            continue
        seen.add(key)
        citations.append(
            Citation(
                document_id=item.chunk.document_id,
                source_name=item.chunk.metadata.get("source_name") or item.chunk.source,
                page_number=item.chunk.page_number,
            )
        )
    return citations
