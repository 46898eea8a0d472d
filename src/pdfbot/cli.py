"""Typer CLI for asking questions and inspecting chunking."""
from __future__ import annotations

from collections import Counter
from typing import Optional

import typer

from .config import get_settings
from .errors import RAGError
from .graph import build_pipeline
from .ingestion import IngestionPipeline
from .observability import configure_observability

app = typer.Typer(help="Ask questions about a PDF manual")


@app.command()
def ask(
    question: str,
    source: Optional[str] = typer.Option(None, help="File path or URL; defaults to the configured manual."),
    source_type: Optional[str] = typer.Option(None, help="pdf, text or web; inferred when omitted."),
) -> None:
    """Answer a question grounded in the source document."""

    settings = get_settings()
    configure_observability(settings)
    response = build_pipeline(settings).answer_question(question, source, source_type)
    if not response.ok:
        typer.echo(f"{response.answer} ({response.error_kind.value})", err=True)
        raise typer.Exit(code=1)
    typer.echo(response.answer)
    for citation in response.citations:
        typer.echo(f"  - {citation.source_name} p.{citation.page_number}")


@app.command()
def chunks(
    source: str,
    source_type: Optional[str] = typer.Option(None, help="pdf, text or web; inferred when omitted."),
) -> None:
    """Load and split a source without calling any model."""

    pipeline = IngestionPipeline.from_settings(get_settings())
    try:
        result = pipeline.ingest(source, source_type)
    except RAGError as exc:
        typer.echo(f"{exc.kind.value}: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    per_page = Counter(chunk.page_number for chunk in result)
    typer.echo(f"{len(result)} chunks across {len(per_page)} page(s)")
    for page, count in sorted(per_page.items(), key=lambda item: item[0] or 0):
        typer.echo(f"  page {page}: {count}")


if __name__ == "__main__":
    app()
