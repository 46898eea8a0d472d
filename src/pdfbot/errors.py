"""Error taxonomy shared by every stage of the pipeline."""
from __future__ import annotations

from enum import Enum

import httpx
import openai


class ErrorKind(str, Enum):
    SOURCE_UNAVAILABLE = "source_unavailable"
    UNSUPPORTED_FORMAT = "unsupported_format"
    INVALID_CONFIGURATION = "invalid_configuration"
    EMBEDDING_SERVICE_ERROR = "embedding_service_error"
    GENERATION_ERROR = "generation_error"
    TIMEOUT = "timeout"


class RAGError(Exception):
    """Base class for failures that terminate a question answering request.

    The message is meant for diagnostics only. Callers show users a generic
    message and the ``kind`` tag.
    """

    kind: ErrorKind


class SourceUnavailable(RAGError):
    kind = ErrorKind.SOURCE_UNAVAILABLE


class UnsupportedFormat(RAGError):
    kind = ErrorKind.UNSUPPORTED_FORMAT


class InvalidConfiguration(RAGError):
    kind = ErrorKind.INVALID_CONFIGURATION


class EmbeddingServiceError(RAGError):
    kind = ErrorKind.EMBEDDING_SERVICE_ERROR


class GenerationError(RAGError):
    kind = ErrorKind.GENERATION_ERROR


class RAGTimeout(RAGError):
    kind = ErrorKind.TIMEOUT


# Timeouts raised by the model clients themselves, before any asyncio deadline.
CLIENT_TIMEOUT_ERRORS = (openai.APITimeoutError, httpx.TimeoutException, TimeoutError)
