"""FastAPI server exposing the question answering endpoint."""
from __future__ import annotations

from dataclasses import asdict
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .config import get_settings
from .errors import ErrorKind
from .graph import QueryPipeline, build_pipeline
from .observability import configure_observability

STATUS_BY_KIND = {
    ErrorKind.SOURCE_UNAVAILABLE: 404,
    ErrorKind.UNSUPPORTED_FORMAT: 415,
    ErrorKind.INVALID_CONFIGURATION: 500,
    ErrorKind.EMBEDDING_SERVICE_ERROR: 502,
    ErrorKind.GENERATION_ERROR: 502,
    ErrorKind.TIMEOUT: 504,
}

app = FastAPI(title="pdfbot", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache
def get_pipeline() -> QueryPipeline:
    settings = get_settings()
    configure_observability(settings)
    return build_pipeline(settings)


class QueryRequest(BaseModel):
    question: str = Field(..., min_length=1, description="User question")


class QueryResponse(BaseModel):
    answer: str
    citations: list[dict]
    latency_ms: float


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/query", response_model=QueryResponse)
async def query(payload: QueryRequest, pipeline: QueryPipeline = Depends(get_pipeline)) -> QueryResponse:  # noqa: B008
    response = await pipeline.aanswer_question(payload.question)
    if not response.ok:
        raise HTTPException(
            status_code=STATUS_BY_KIND[response.error_kind],
            detail={"message": response.answer, "error_kind": response.error_kind.value},
        )
    return QueryResponse(
        answer=response.answer,
        citations=[asdict(citation) for citation in response.citations],
        latency_ms=response.latency_ms or 0.0,
    )


__all__ = ["app"]
