"""Shared fixtures wiring the offline fakes into pipeline components."""
from __future__ import annotations

import pytest

from fakes import MANUAL_PAGES, KeywordEmbeddings, RecordingChatModel, StaticLoader
from pdfbot.config import AppSettings, ModelSettings, RAGSettings
from pdfbot.embeddings import EmbeddingService
from pdfbot.graph import QueryPipeline
from pdfbot.ingestion import Chunker, DocumentLoader, IngestionPipeline
from pdfbot.llm import AnswerGenerator
from pdfbot.retrieval import IndexCache


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        openai_api_key="sk-test",
        model=ModelSettings(embed_model="keyword-test", request_timeout_s=5.0, embed_batch_size=2),
        rag=RAGSettings(chunk_size=200, chunk_overlap=40, retrieval_k=4),
    )


@pytest.fixture
def embeddings() -> KeywordEmbeddings:
    return KeywordEmbeddings()


@pytest.fixture
def embedder(embeddings: KeywordEmbeddings) -> EmbeddingService:
    return EmbeddingService(embeddings, model_name="keyword-test", timeout_s=5.0, batch_size=2)


@pytest.fixture
def chat_model() -> RecordingChatModel:
    return RecordingChatModel(responses=["The warranty period is 12 months."])


@pytest.fixture
def manual_loader() -> StaticLoader:
    return StaticLoader(MANUAL_PAGES)


@pytest.fixture
def make_pipeline(settings: AppSettings, embedder: EmbeddingService):
    def factory(loader: DocumentLoader, llm, cache: bool = False) -> QueryPipeline:
        return QueryPipeline(
            settings=settings,
            ingestion=IngestionPipeline(loader=loader, chunker=Chunker(200, 40)),
            embedder=embedder,
            generator=AnswerGenerator(llm, timeout_s=5.0),
            index_cache=IndexCache() if cache else None,
        )

    return factory
