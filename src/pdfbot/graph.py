"""LangGraph definition of the question answering flow and its entry point."""
from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import TypedDict

from langchain_core.embeddings import Embeddings
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage
from langgraph.graph import END, START, StateGraph

from .config import AppSettings
from .embeddings import EmbeddingService
from .errors import RAGError
from .ingestion import IngestionPipeline
from .llm import AnswerGenerator
from .models import QAResponse, QueryState, RetrievedChunk, citations_for
from .observability import QUERY_FAILURES, REQUEST_LATENCY, traced_span
from .retrieval import IndexCache, Retriever
from .vectorstore import InMemoryVectorIndex, VectorIndex

logger = logging.getLogger(__name__)


class GraphState(TypedDict, total=False):
    question: str
    retriever: Retriever
    state: QueryState
    query_vector: list[float]
    retrieved: list[RetrievedChunk]
    prompt: list[BaseMessage]
    answer: str


# Stage that is running once the previous one has completed.
NEXT_STATE = {
    QueryState.IDLE: QueryState.EMBEDDING,
    QueryState.EMBEDDING: QueryState.RETRIEVING,
    QueryState.RETRIEVING: QueryState.PROMPT_ASSEMBLED,
    QueryState.PROMPT_ASSEMBLED: QueryState.GENERATING,
}


def build_graph(generator: AnswerGenerator) -> StateGraph:
    """Single-path graph: embed_query -> retrieve -> assemble_prompt -> generate.

    The retriever travels in the state, so one compiled graph serves every index.
    """

    async def embed_query_node(state: GraphState) -> GraphState:
        with traced_span("embed_query"):
            vector = await state["retriever"].embedder.aembed(state["question"])
        return {"query_vector": vector, "state": QueryState.EMBEDDING}

    def retrieve_node(state: GraphState) -> GraphState:
        with traced_span("retrieve"):
            retrieved = state["retriever"].search(state["query_vector"])
        return {"retrieved": retrieved, "state": QueryState.RETRIEVING}

    def assemble_prompt_node(state: GraphState) -> GraphState:
        prompt = generator.build_prompt(state["question"], state["retrieved"])
        return {"prompt": prompt, "state": QueryState.PROMPT_ASSEMBLED}

    async def generate_node(state: GraphState) -> GraphState:
        with traced_span("generate"):
            answer = await generator.agenerate_from_prompt(state["prompt"])
        return {"answer": answer, "state": QueryState.DONE}

    graph = StateGraph(GraphState)
    graph.add_node("embed_query", embed_query_node)
    graph.add_node("retrieve", retrieve_node)
    graph.add_node("assemble_prompt", assemble_prompt_node)
    graph.add_node("generate", generate_node)
    graph.add_edge(START, "embed_query")
    graph.add_edge("embed_query", "retrieve")
    graph.add_edge("retrieve", "assemble_prompt")
    graph.add_edge("assemble_prompt", "generate")
    graph.add_edge("generate", END)
    return graph


class QueryPipeline:
    """Loads, indexes and answers questions about one source at a time."""

    def __init__(
        self,
        settings: AppSettings,
        ingestion: IngestionPipeline,
        embedder: EmbeddingService,
        generator: AnswerGenerator,
        index_cache: IndexCache | None = None,
    ) -> None:
        self.settings = settings
        self.ingestion = ingestion
        self.embedder = embedder
        self.generator = generator
        self.index_cache = index_cache
        self.graph = build_graph(generator).compile()

    def _cache_key(self, source: str, source_type: str | None) -> tuple:
        return (
            source,
            source_type,
            self.embedder.model_name,
            self.ingestion.chunker.chunk_size,
            self.ingestion.chunker.chunk_overlap,
        )

    async def build_index(self, source: str, source_type: str | None = None) -> VectorIndex:
        """Load, split and embed a source; the index exists only once every chunk is embedded."""

        with traced_span("ingest"):
            chunks = await asyncio.to_thread(self.ingestion.ingest, source, source_type)
        with traced_span("embed_chunks"):
            vectors = await self.embedder.aembed_all([chunk.text for chunk in chunks])
        with traced_span("index_build"):
            index = InMemoryVectorIndex.build(zip(chunks, vectors, strict=True), self.embedder.model_name)
        logger.info("Built index for %s with %d entries", source, len(index))
        return index

    async def aget_index(self, source: str, source_type: str | None = None) -> VectorIndex:
        if self.index_cache is None:
            return await self.build_index(source, source_type)
        return await self.index_cache.get_or_build(
            self._cache_key(source, source_type),
            lambda: self.build_index(source, source_type),
        )

    async def aanswer_question(
        self,
        question: str,
        source: str | None = None,
        source_type: str | None = None,
    ) -> QAResponse:
        """Answer ``question`` from ``source``; failures come back as a failed response."""

        start = perf_counter()
        source = source or self.settings.paths.default_source
        final_state: GraphState = {"question": question, "state": QueryState.IDLE}

        try:
            index = await self.aget_index(source, source_type)
            final_state["retriever"] = Retriever(self.embedder, index, k=self.settings.rag.retrieval_k)
            async for final_state in self.graph.astream(final_state, stream_mode="values"):
                logger.debug("Query state %s", final_state["state"].value)
        except RAGError as exc:
            latency = (perf_counter() - start) * 1000
            failed_in = QueryState.IDLE
            if "retriever" in final_state:
                failed_in = NEXT_STATE.get(final_state["state"], final_state["state"])
            QUERY_FAILURES.labels(exc.kind.value).inc()
            logger.warning(
                "Question failed in state %s with %s: %s",
                failed_in.value,
                exc.kind.value,
                exc,
                exc_info=self.settings.debug,
            )
            return QAResponse.failed(exc.kind, latency_ms=latency)

        latency = (perf_counter() - start) * 1000
        REQUEST_LATENCY.observe(latency)
        return QAResponse(
            answer=final_state["answer"],
            citations=citations_for(final_state["retrieved"]),
            state=final_state["state"],
            latency_ms=latency,
        )

    def answer_question(
        self,
        question: str,
        source: str | None = None,
        source_type: str | None = None,
    ) -> QAResponse:
        return asyncio.run(self.aanswer_question(question, source, source_type))


def build_pipeline(
    settings: AppSettings,
    embeddings: Embeddings | None = None,
    llm: BaseChatModel | None = None,
) -> QueryPipeline:
    """Wire the configured loader, embedder and chat model into a pipeline."""

    return QueryPipeline(
        settings=settings,
        ingestion=IngestionPipeline.from_settings(settings),
        embedder=EmbeddingService.from_settings(settings, embeddings),
        generator=AnswerGenerator.from_settings(settings, llm),
        index_cache=IndexCache() if settings.cache.index_cache_enabled else None,
    )
