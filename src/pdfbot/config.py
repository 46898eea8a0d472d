"""Centralized configuration for the question answering pipeline."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import AliasChoices, BaseModel, Field, SecretStr, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import InvalidConfiguration

DOTENV_PATH = Path(__file__).resolve().parents[2] / ".env"
if DOTENV_PATH.exists():
    load_dotenv(dotenv_path=DOTENV_PATH, override=False)
else:
    load_dotenv()


class Paths(BaseModel):
    project_root: Path = Field(default=Path(__file__).resolve().parents[2])
    default_source: str = Field(default="example_data/Manual.pdf")


class ModelSettings(BaseModel):
    embed_provider: Literal["openai", "huggingface"] = Field(default="openai")
    embed_model: str = Field(default="text-embedding-ada-002")
    embed_batch_size: int = Field(default=64, gt=0)
    llm_provider: Literal["openai", "ollama"] = Field(default="openai")
    llm_model: str = Field(default="gpt-4o")
    llm_temperature: float = Field(default=0.2, ge=0.0, le=1.0)
    llm_base_url: str = Field(default="http://localhost:11434")
    openai_api_base: str | None = Field(default=None)
    max_output_tokens: int = Field(default=1024, gt=0)
    request_timeout_s: float = Field(default=60.0, gt=0)


class RAGSettings(BaseModel):
    chunk_size: int = Field(default=1000, gt=0)
    chunk_overlap: int = Field(default=200, ge=0)
    retrieval_k: int = Field(default=4, gt=0)
    separators: list[str] = Field(default_factory=lambda: ["\n\n", "\n", ". ", " ", ""])

    @model_validator(mode="after")
    def _overlap_below_size(self) -> RAGSettings:
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than chunk_size ({self.chunk_size})"
            )
        return self


class ObservabilitySettings(BaseModel):
    log_level: str = Field(default="INFO")
    enable_tracing: bool = Field(default=False)
    otlp_endpoint: str = Field(default="http://localhost:4318/v1/traces")


class CacheSettings(BaseModel):
    index_cache_enabled: bool = Field(default=True)
    llm_cache_enabled: bool = Field(default=False)
    llm_cache_path: Path = Field(default=Path("data/cache/lc_cache.db"))


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RAG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
        populate_by_name=True,
    )

    debug: bool = Field(default=False)
    openai_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("RAG_OPENAI_API_KEY", "OPENAI_API_KEY", "openai_api_key"),
    )
    paths: Paths = Paths()
    model: ModelSettings = ModelSettings()
    rag: RAGSettings = RAGSettings()
    observability: ObservabilitySettings = ObservabilitySettings()
    cache: CacheSettings = CacheSettings()


@lru_cache
def get_settings() -> AppSettings:
    """Return the process-wide settings, built once at startup."""

    try:
        settings = AppSettings()
    except ValidationError as exc:
        raise InvalidConfiguration(f"Invalid settings: {exc}") from exc
    cache_path = settings.cache.llm_cache_path
    if not cache_path.is_absolute():
        settings.cache.llm_cache_path = settings.paths.project_root / cache_path
    return settings
