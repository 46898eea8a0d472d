"""Chat model selection and grounded answer generation."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI

from .config import AppSettings
from .errors import CLIENT_TIMEOUT_ERRORS, GenerationError, InvalidConfiguration, RAGTimeout
from .models import RetrievedChunk

logger = logging.getLogger(__name__)

CONTEXT_DELIMITER = "\n\n---\n\n"

SYSTEM_PROMPT = (
    "You are an assistant for question-answering tasks. "
    "Answer the question using only the retrieved context provided by the user message. "
    "Context passages are separated by lines containing only ---. "
    "If the context does not contain enough information to answer, reply with \"I don't know\". "
    "Do not use outside knowledge and keep the answer concise."
)

HUMAN_PROMPT = "Context:\n{context}\n\nQuestion: {question}\n\nAnswer:"


def build_chat_model(settings: AppSettings) -> BaseChatModel:
    """Instantiate the chat model named by ``model.llm_provider``."""

    if settings.model.llm_provider == "openai":
        if settings.openai_api_key is None:
            raise InvalidConfiguration("OPENAI_API_KEY is not set but llm_provider=openai")
        openai_kwargs = {
            "model": settings.model.llm_model,
            "temperature": settings.model.llm_temperature,
            "max_retries": 0,
            "max_tokens": settings.model.max_output_tokens,
            "timeout": settings.model.request_timeout_s,
            "api_key": settings.openai_api_key,
        }
        if settings.model.openai_api_base:
            openai_kwargs["base_url"] = settings.model.openai_api_base
        return ChatOpenAI(**openai_kwargs)
    return ChatOllama(
        model=settings.model.llm_model,
        base_url=settings.model.llm_base_url,
        temperature=settings.model.llm_temperature,
        num_predict=settings.model.max_output_tokens,
    )


def format_context(retrieved: Sequence[RetrievedChunk]) -> str:
    return CONTEXT_DELIMITER.join(item.chunk.text for item in retrieved)


class AnswerGenerator:
    """Builds the grounded prompt and asks the chat model once."""

    def __init__(self, llm: BaseChatModel, timeout_s: float | None = None) -> None:
        self.llm = llm
        self.timeout_s = timeout_s
        self.prompt = ChatPromptTemplate.from_messages([("system", SYSTEM_PROMPT), ("human", HUMAN_PROMPT)])
        self.chain = llm | StrOutputParser()

    @classmethod
    def from_settings(cls, settings: AppSettings, llm: BaseChatModel | None = None) -> AnswerGenerator:
        return cls(llm=llm or build_chat_model(settings), timeout_s=settings.model.request_timeout_s)

    def build_prompt(self, question: str, retrieved: Sequence[RetrievedChunk]) -> list[BaseMessage]:
        return self.prompt.format_messages(question=question, context=format_context(retrieved))

    def generate(self, question: str, retrieved: Sequence[RetrievedChunk]) -> str:
        messages = self.build_prompt(question, retrieved)
        try:
            text = self.chain.invoke(messages)
        except CLIENT_TIMEOUT_ERRORS as exc:
            raise RAGTimeout(f"LLM call timed out: {exc}") from exc
        except Exception as exc:  # noqa: BLE001
            raise GenerationError(f"LLM call failed: {exc}") from exc
        return self._clean(text)

    async def agenerate(self, question: str, retrieved: Sequence[RetrievedChunk]) -> str:
        return await self.agenerate_from_prompt(self.build_prompt(question, retrieved))

    async def agenerate_from_prompt(self, messages: list[BaseMessage]) -> str:
        try:
            text = await asyncio.wait_for(self.chain.ainvoke(messages), timeout=self.timeout_s)
        except asyncio.TimeoutError as exc:
            raise RAGTimeout(f"LLM call exceeded {self.timeout_s}s") from exc
        except CLIENT_TIMEOUT_ERRORS as exc:
            raise RAGTimeout(f"LLM call timed out: {exc}") from exc
        except Exception as exc:  # noqa: BLE001
            raise GenerationError(f"LLM call failed: {exc}") from exc
        return self._clean(text)

    @staticmethod
    def _clean(text: object) -> str:
        if not isinstance(text, str):
            raise GenerationError(f"LLM returned {type(text).__name__} instead of text")
        cleaned = text.strip()
        if not cleaned:
            raise GenerationError("LLM returned an empty answer")
        return cleaned
