import asyncio

import pytest

from fakes import MANUAL_PAGES, KeywordEmbeddings, StaticLoader
from pdfbot.embeddings import EmbeddingService
from pdfbot.errors import InvalidConfiguration, SourceUnavailable
from pdfbot.ingestion import Chunker
from pdfbot.models import Chunk
from pdfbot.retrieval import IndexCache, Retriever
from pdfbot.vectorstore import InMemoryVectorIndex


def _manual_index(embedder: EmbeddingService, model_name: str = "keyword-test") -> InMemoryVectorIndex:
    chunks = Chunker(200, 40).split(StaticLoader(MANUAL_PAGES).load("example_data/Manual.pdf"))
    vectors = embedder.embed_all([c.text for c in chunks])
    return InMemoryVectorIndex.build(zip(chunks, vectors), model_name=model_name)


def test_warranty_question_prefers_warranty_page(embedder: EmbeddingService):
    retriever = Retriever(embedder, _manual_index(embedder), k=4)
    results = retriever.retrieve("How long is the warranty?")
    assert [r.chunk.page_number for r in results] == [1, 2]
    assert results[0].score > results[1].score
    assert "12 months" in results[0].chunk.text


@pytest.mark.asyncio
async def test_async_retrieval_matches_sync(embedder: EmbeddingService):
    retriever = Retriever(embedder, _manual_index(embedder), k=1)
    results = await retriever.aretrieve("Are returns accepted?")
    assert [r.chunk.page_number for r in results] == [2]


def test_retriever_handles_empty_index(embedder: EmbeddingService):
    retriever = Retriever(embedder, InMemoryVectorIndex.build([], model_name="keyword-test"))
    assert retriever.retrieve("Test question") == []


def test_retriever_rejects_index_from_other_model(embedder: EmbeddingService):
    index = _manual_index(embedder, model_name="another-model")
    with pytest.raises(InvalidConfiguration):
        Retriever(embedder, index)


def test_retriever_rejects_non_positive_k(embedder: EmbeddingService):
    with pytest.raises(InvalidConfiguration):
        Retriever(embedder, _manual_index(embedder), k=0)


@pytest.mark.asyncio
async def test_index_cache_builds_once_under_concurrent_cold_start():
    cache = IndexCache()
    builds = 0

    async def build():
        nonlocal builds
        builds += 1
        await asyncio.sleep(0.01)
        return InMemoryVectorIndex.build([], model_name="m")

    indexes = await asyncio.gather(*(cache.get_or_build("manual", build) for _ in range(5)))
    assert builds == 1
    assert all(index is indexes[0] for index in indexes)
    assert "manual" in cache


@pytest.mark.asyncio
async def test_index_cache_keeps_nothing_after_failed_build():
    cache = IndexCache()

    async def broken():
        raise SourceUnavailable("gone")

    with pytest.raises(SourceUnavailable):
        await cache.get_or_build("manual", broken)
    assert "manual" not in cache
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_index_cache_invalidate_forces_rebuild():
    cache = IndexCache()
    embeddings = KeywordEmbeddings()
    service = EmbeddingService(embeddings, model_name="m")

    async def build():
        vectors = await service.aembed_all(["warranty"])
        chunk = Chunk(chunk_id="d:1:0", document_id="d", text="warranty", source="s", page_number=1, chunk_index=0)
        return InMemoryVectorIndex.build(zip([chunk], vectors), model_name="m")

    await cache.get_or_build("manual", build)
    cache.invalidate("manual")
    await cache.get_or_build("manual", build)
    assert len(embeddings.document_calls) == 2


def test_index_cache_survives_rebuilds_across_event_loops():
    cache = IndexCache()
    builds = 0

    async def build():
        nonlocal builds
        builds += 1
        await asyncio.sleep(0.01)
        return InMemoryVectorIndex.build([], model_name="m")

    async def cold_start():
        return await asyncio.gather(cache.get_or_build("manual", build), cache.get_or_build("manual", build))

    first = asyncio.run(cold_start())
    assert cache._locks == {}
    cache.invalidate("manual")
    second = asyncio.run(cold_start())

    assert builds == 2
    assert first[0] is first[1]
    assert second[0] is second[1]
    assert cache._locks == {}
