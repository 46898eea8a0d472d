"""Retrieval-augmented question answering over a PDF manual."""

from __future__ import annotations

from .errors import ErrorKind, RAGError
from .graph import QueryPipeline, build_pipeline
from .models import QAResponse

__version__ = "0.1.0"

__all__ = ["ErrorKind", "QAResponse", "QueryPipeline", "RAGError", "build_pipeline"]
