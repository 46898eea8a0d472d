"""Document loading and chunking pipeline."""
from __future__ import annotations

import hashlib
import logging
import mimetypes
import os
from collections.abc import Iterable, Sequence
from pathlib import Path
from urllib.parse import urlparse

import requests
from langchain_community.document_loaders import PyPDFLoader, TextLoader, WebBaseLoader
from langchain_core.documents import Document
from langchain_text_splitters import RecursiveCharacterTextSplitter

from .config import AppSettings
from .errors import InvalidConfiguration, SourceUnavailable, UnsupportedFormat
from .models import Chunk

logger = logging.getLogger(__name__)

SOURCE_TYPES = ("pdf", "text", "web")
DEFAULT_SEPARATORS = ["\n\n", "\n", ". ", " ", ""]


def is_url(source: str) -> bool:
    return urlparse(source).scheme in {"http", "https"}


def document_id_for(source: str) -> str:
    return hashlib.sha256(source.encode("utf-8")).hexdigest()[:12]


def detect_source_type(source: str) -> str:
    """Guess the loader to use for a file path or URL."""

    if is_url(source):
        return "pdf" if urlparse(source).path.lower().endswith(".pdf") else "web"
    mime_type, _ = mimetypes.guess_type(source)
    if mime_type == "application/pdf":
        return "pdf"
    if mime_type and mime_type.startswith("text/"):
        return "text"
    raise UnsupportedFormat(f"Cannot infer a loader for {source!r} (mime type {mime_type})")


class DocumentLoader:
    """Reads one source into an ordered list of page-level documents."""

    def __init__(self, request_timeout_s: float = 30.0) -> None:
        self.request_timeout_s = request_timeout_s

    def load(self, source: str, source_type: str | None = None) -> list[Document]:
        remote = is_url(source)
        if not remote:
            path = Path(source)
            if not path.is_file() or not os.access(path, os.R_OK):
                raise SourceUnavailable(f"Source file not found or unreadable: {source}")

        source_type = source_type or detect_source_type(source)
        if source_type not in SOURCE_TYPES:
            raise UnsupportedFormat(f"Unknown source type {source_type!r}; expected one of {SOURCE_TYPES}")

        try:
            docs = self._loader_for(source, source_type).load()
        except requests.RequestException as exc:
            raise SourceUnavailable(f"Could not fetch {source}: {exc}") from exc
        except (ValueError, OSError) as exc:
            if remote:
                raise SourceUnavailable(f"Could not fetch {source}: {exc}") from exc
            raise UnsupportedFormat(f"Could not parse {source} as {source_type}: {exc}") from exc
        except Exception as exc:  # noqa: BLE001 - parser libraries raise their own hierarchies
            raise UnsupportedFormat(f"Could not parse {source} as {source_type}: {exc}") from exc

        if not any(doc.page_content.strip() for doc in docs):
            raise UnsupportedFormat(f"No extractable text in {source}")

        document_id = document_id_for(source)
        source_name = source if remote else Path(source).name
        loaded = [
            Document(
                page_content=doc.page_content,
                metadata={
                    **doc.metadata,
                    "source": source,
                    "source_name": source_name,
                    "source_type": source_type,
                    "document_id": document_id,
                    "page_number": page_number,
                },
            )
            for page_number, doc in enumerate(docs, start=1)
        ]
        logger.info("Loaded %d %s document(s) from %s", len(loaded), source_type, source)
        return loaded

    def _loader_for(self, source: str, source_type: str):
        if source_type == "pdf":
            return PyPDFLoader(source)
        if source_type == "web":
            return WebBaseLoader(
                web_path=source,
                raise_for_status=True,
                requests_kwargs={"timeout": self.request_timeout_s},
            )
        return TextLoader(source, autodetect_encoding=True)


class Chunker:
    """Splits documents into overlapping character chunks."""

    def __init__(
        self,
        chunk_size: int,
        chunk_overlap: int,
        separators: Sequence[str] | None = None,
    ) -> None:
        if chunk_size <= 0:
            raise InvalidConfiguration(f"chunk_size must be positive, got {chunk_size}")
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise InvalidConfiguration(
                f"chunk_overlap must satisfy 0 <= chunk_overlap < chunk_size, got {chunk_overlap} / {chunk_size}"
            )
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            separators=list(separators or DEFAULT_SEPARATORS),
            length_function=len,
        )

    def split(self, documents: Iterable[Document]) -> list[Chunk]:
        """Split every document on its own, keeping its metadata on each chunk."""

        chunks: list[Chunk] = []
        for doc in documents:
            document_id = doc.metadata.get("document_id") or document_id_for(doc.metadata.get("source", ""))
            page_number = doc.metadata.get("page_number")
            pieces = [piece for piece in self.splitter.split_text(doc.page_content) if piece.strip()]
            for idx, piece in enumerate(pieces):
                chunks.append(
                    Chunk(
                        chunk_id=f"{document_id}:{page_number}:{idx}",
                        document_id=document_id,
                        text=piece,
                        source=doc.metadata.get("source", ""),
                        page_number=page_number,
                        chunk_index=idx,
                        metadata=dict(doc.metadata),
                    )
                )
        return chunks


class IngestionPipeline:
    """Load a source and split it into chunks."""

    def __init__(self, loader: DocumentLoader, chunker: Chunker) -> None:
        self.loader = loader
        self.chunker = chunker

    @classmethod
    def from_settings(cls, settings: AppSettings) -> IngestionPipeline:
        return cls(
            loader=DocumentLoader(request_timeout_s=settings.model.request_timeout_s),
            chunker=Chunker(
                chunk_size=settings.rag.chunk_size,
                chunk_overlap=settings.rag.chunk_overlap,
                separators=settings.rag.separators,
            ),
        )

    def ingest(self, source: str, source_type: str | None = None) -> list[Chunk]:
        docs = self.loader.load(source, source_type)
        chunks = self.chunker.split(docs)
        logger.info("Split %d page(s) of %s into %d chunk(s)", len(docs), source, len(chunks))
        return chunks
