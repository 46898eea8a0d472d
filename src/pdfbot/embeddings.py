"""Embedding model selection and the embedding service adapter."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from langchain_community.embeddings import HuggingFaceEmbeddings
from langchain_core.embeddings import Embeddings
from langchain_openai import OpenAIEmbeddings

from .config import AppSettings
from .errors import CLIENT_TIMEOUT_ERRORS, EmbeddingServiceError, InvalidConfiguration, RAGTimeout
from .observability import EMBEDDED_CHUNKS

logger = logging.getLogger(__name__)


def build_embeddings(settings: AppSettings) -> Embeddings:
    """Instantiate the embedding backend named by ``model.embed_provider``."""

    if settings.model.embed_provider == "openai":
        if settings.openai_api_key is None:
            raise InvalidConfiguration("OPENAI_API_KEY is not set but embed_provider=openai")
        openai_kwargs = {
            "model": settings.model.embed_model,
            "api_key": settings.openai_api_key,
            "request_timeout": settings.model.request_timeout_s,
            "max_retries": 0,
        }
        if settings.model.openai_api_base:
            openai_kwargs["base_url"] = settings.model.openai_api_base
        return OpenAIEmbeddings(**openai_kwargs)
    return HuggingFaceEmbeddings(
        model_name=settings.model.embed_model,
        model_kwargs={"trust_remote_code": True},
        encode_kwargs={"normalize_embeddings": True},
    )


class EmbeddingService:
    """Maps chunk and query text to vectors with one embedding model."""

    def __init__(
        self,
        embeddings: Embeddings,
        model_name: str,
        timeout_s: float | None = None,
        batch_size: int = 64,
    ) -> None:
        if batch_size <= 0:
            raise InvalidConfiguration(f"batch_size must be positive, got {batch_size}")
        self.embeddings = embeddings
        self.model_name = model_name
        self.timeout_s = timeout_s
        self.batch_size = batch_size

    @classmethod
    def from_settings(cls, settings: AppSettings, embeddings: Embeddings | None = None) -> EmbeddingService:
        return cls(
            embeddings=embeddings or build_embeddings(settings),
            model_name=settings.model.embed_model,
            timeout_s=settings.model.request_timeout_s,
            batch_size=settings.model.embed_batch_size,
        )

    def embed(self, text: str) -> list[float]:
        try:
            vector = self.embeddings.embed_query(text)
        except CLIENT_TIMEOUT_ERRORS as exc:
            raise RAGTimeout(f"Embedding with {self.model_name} timed out: {exc}") from exc
        except Exception as exc:  # noqa: BLE001
            raise EmbeddingServiceError(f"Embedding request failed: {exc}") from exc
        return self._check([vector], 1)[0]

    def embed_all(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            vectors = self.embeddings.embed_documents(list(texts))
        except CLIENT_TIMEOUT_ERRORS as exc:
            raise RAGTimeout(f"Embedding with {self.model_name} timed out: {exc}") from exc
        except Exception as exc:  # noqa: BLE001
            raise EmbeddingServiceError(f"Embedding request failed: {exc}") from exc
        EMBEDDED_CHUNKS.inc(len(texts))
        return self._check(vectors, len(texts))

    async def aembed(self, text: str) -> list[float]:
        vector = await self._bounded(self.embeddings.aembed_query(text))
        return self._check([vector], 1)[0]

    async def aembed_all(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed texts in concurrent batches; returns only once every batch succeeded."""

        if not texts:
            return []
        texts = list(texts)
        batches = [texts[i : i + self.batch_size] for i in range(0, len(texts), self.batch_size)]
        logger.debug("Embedding %d text(s) in %d batch(es) with %s", len(texts), len(batches), self.model_name)
        results = await self._bounded(
            asyncio.gather(*(self.embeddings.aembed_documents(batch) for batch in batches))
        )
        vectors = [vector for batch in results for vector in batch]
        EMBEDDED_CHUNKS.inc(len(texts))
        return self._check(vectors, len(texts))

    async def _bounded(self, awaitable):
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_s)
        except asyncio.TimeoutError as exc:
            raise RAGTimeout(f"Embedding with {self.model_name} exceeded {self.timeout_s}s") from exc
        except CLIENT_TIMEOUT_ERRORS as exc:
            raise RAGTimeout(f"Embedding with {self.model_name} timed out: {exc}") from exc
        except Exception as exc:  # noqa: BLE001
            raise EmbeddingServiceError(f"Embedding request failed: {exc}") from exc

    @staticmethod
    def _check(vectors: Sequence[Sequence[float]], expected: int) -> list[list[float]]:
        if len(vectors) != expected:
            raise EmbeddingServiceError(f"Expected {expected} vector(s), got {len(vectors)}")
        if any(not vector for vector in vectors):
            raise EmbeddingServiceError("Embedding model returned an empty vector")
        return [list(vector) for vector in vectors]
