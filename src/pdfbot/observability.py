"""Observability helpers for tracing, metrics, and logging."""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from time import perf_counter

from langchain_community.cache import SQLiteCache
from langchain_core.globals import set_llm_cache
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import Counter, Histogram

from .config import AppSettings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s | %(message)s"

logger = logging.getLogger("pdfbot")
logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

tracer = trace.get_tracer(__name__)

REQUEST_LATENCY = Histogram(
    "pdfbot_request_latency_ms",
    "Latency of question answering requests",
    buckets=(50, 100, 250, 500, 1000, 2000, 5000, 10000),
)
STAGE_LATENCY = Histogram(
    "pdfbot_stage_latency_ms",
    "Latency of individual pipeline stages",
    labelnames=("stage",),
    buckets=(5, 25, 100, 250, 1000, 5000),
)
QUERY_FAILURES = Counter("pdfbot_query_failures", "Failed question answering requests", labelnames=("kind",))
EMBEDDED_CHUNKS = Counter("pdfbot_embedded_chunks", "Chunks sent to the embedding model")


def configure_observability(settings: AppSettings) -> None:
    """Apply log level, tracing exporter and LLM cache from settings."""

    logging.getLogger().setLevel(settings.observability.log_level.upper())

    if settings.observability.enable_tracing:
        resource = Resource.create({"service.name": "pdfbot"})
        provider = TracerProvider(resource=resource)
        processor = BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.observability.otlp_endpoint))
        provider.add_span_processor(processor)
        trace.set_tracer_provider(provider)
        logger.info("Tracing enabled, exporting to %s", settings.observability.otlp_endpoint)

    if settings.cache.llm_cache_enabled:
        cache_path = settings.cache.llm_cache_path
        cache_path.parent.mkdir(parents=True, exist_ok=True)
        set_llm_cache(SQLiteCache(database_path=str(cache_path)))
        logger.info("LangChain cache enabled at %s", cache_path)


@contextmanager
def traced_span(name: str) -> Iterator[None]:
    start = perf_counter()
    with tracer.start_as_current_span(name):
        yield
    duration_ms = (perf_counter() - start) * 1000
    STAGE_LATENCY.labels(name).observe(duration_ms)
