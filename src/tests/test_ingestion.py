from pathlib import Path

import pytest
from langchain_core.documents import Document

from pdfbot.errors import InvalidConfiguration, SourceUnavailable, UnsupportedFormat
from pdfbot.ingestion import Chunker, DocumentLoader, IngestionPipeline, detect_source_type

WORDS = " ".join(f"w{i:03d}" for i in range(120))


def _doc(text: str, page: int, source: str = "manual.pdf") -> Document:
    return Document(page_content=text, metadata={"source": source, "document_id": "doc1", "page_number": page})


def test_ingestion_chunking(tmp_path: Path):
    sample = tmp_path / "sample.txt"
    sample.write_text("Line one.\nLine two.\nLine three.")
    pipeline = IngestionPipeline(DocumentLoader(), Chunker(chunk_size=100, chunk_overlap=20))
    chunks = pipeline.ingest(str(sample))
    assert chunks, "Chunks should be created"
    assert chunks[0].document_id
    assert chunks[0].text
    assert chunks[0].page_number == 1
    assert chunks[0].metadata["source_type"] == "text"
    assert chunks[0].metadata["source_name"] == "sample.txt"


def test_missing_file_is_source_unavailable(tmp_path: Path):
    with pytest.raises(SourceUnavailable):
        DocumentLoader().load(str(tmp_path / "missing.pdf"))


def test_unparseable_pdf_is_unsupported(tmp_path: Path):
    broken = tmp_path / "broken.pdf"
    broken.write_bytes(b"this is not a pdf at all")
    with pytest.raises(UnsupportedFormat):
        DocumentLoader().load(str(broken))


def test_empty_text_is_unsupported(tmp_path: Path):
    empty = tmp_path / "empty.txt"
    empty.write_text("   \n")
    with pytest.raises(UnsupportedFormat):
        DocumentLoader().load(str(empty))


def test_unknown_source_type_is_unsupported(tmp_path: Path):
    sample = tmp_path / "sample.txt"
    sample.write_text("hello")
    with pytest.raises(UnsupportedFormat):
        DocumentLoader().load(str(sample), source_type="docx")


@pytest.mark.parametrize(
    ("source", "expected"),
    [
        ("example_data/Manual.pdf", "pdf"),
        ("notes/readme.txt", "text"),
        ("https://example.com/files/manual.PDF", "pdf"),
        ("https://example.com/docs/alert", "web"),
    ],
)
def test_detect_source_type(source: str, expected: str):
    assert detect_source_type(source) == expected


def test_detect_source_type_rejects_binary():
    with pytest.raises(UnsupportedFormat):
        detect_source_type("archive.zip")


@pytest.mark.parametrize(("size", "overlap"), [(100, 100), (100, 150), (0, 0), (100, -1)])
def test_chunker_rejects_bad_configuration(size: int, overlap: int):
    with pytest.raises(InvalidConfiguration):
        Chunker(chunk_size=size, chunk_overlap=overlap)


def test_chunking_is_deterministic():
    chunker = Chunker(chunk_size=40, chunk_overlap=10)
    docs = [_doc(WORDS, 1)]
    first = chunker.split(docs)
    second = Chunker(chunk_size=40, chunk_overlap=10).split(docs)
    assert [c.text for c in first] == [c.text for c in second]
    assert [c.chunk_id for c in first] == [c.chunk_id for c in second]


def test_chunks_respect_size_and_overlap():
    chunks = Chunker(chunk_size=40, chunk_overlap=10).split([_doc(WORDS, 1)])
    assert len(chunks) > 1
    assert all(len(chunk.text) <= 40 for chunk in chunks)
    for prev, nxt in zip(chunks, chunks[1:]):
        shared = [n for n in range(1, 11) if prev.text.endswith(nxt.text[:n])]
        assert shared, f"{prev.text!r} and {nxt.text!r} share no text"
        assert prev.text.split()[-1] in nxt.text.split()[:3]


def test_paragraph_breaks_are_preferred():
    text = "First paragraph about charging.\n\nSecond paragraph about the battery."
    chunks = Chunker(chunk_size=40, chunk_overlap=5).split([_doc(text, 1)])
    assert [c.text for c in chunks] == [
        "First paragraph about charging.",
        "Second paragraph about the battery.",
    ]


def test_chunks_never_cross_documents():
    docs = [_doc(WORDS, 1), _doc(WORDS.upper(), 2)]
    chunks = Chunker(chunk_size=50, chunk_overlap=10).split(docs)
    for chunk in chunks:
        parent = docs[chunk.page_number - 1]
        assert chunk.text in parent.page_content
        assert chunk.metadata["page_number"] == chunk.page_number
        assert chunk.source == "manual.pdf"
    assert {c.page_number for c in chunks} == {1, 2}
    first_page = [c.chunk_index for c in chunks if c.page_number == 1]
    assert first_page == list(range(len(first_page)))


@pytest.mark.parametrize("name", ["Manual", "manual.docx"])
def test_missing_file_without_known_format_is_source_unavailable(tmp_path: Path, name: str):
    with pytest.raises(SourceUnavailable):
        DocumentLoader().load(str(tmp_path / name))


def test_unreachable_url_is_source_unavailable():
    with pytest.raises(SourceUnavailable):
        DocumentLoader(request_timeout_s=2).load("http://127.0.0.1:9/manual")


class RecordingPDFLoader:
    paths: list[str] = []

    def __init__(self, file_path: str) -> None:
        self.paths.append(file_path)

    def load(self) -> list[Document]:
        return [Document(page_content="The warranty period is 12 months", metadata={"page": 0})]


def test_remote_pdf_url_uses_pdf_loader(monkeypatch):
    RecordingPDFLoader.paths = []
    monkeypatch.setattr("pdfbot.ingestion.PyPDFLoader", RecordingPDFLoader)
    url = "https://example.com/files/Manual.pdf"

    docs = DocumentLoader().load(url)

    assert RecordingPDFLoader.paths == [url]
    assert docs[0].metadata["source_type"] == "pdf"
    assert docs[0].metadata["source_name"] == url
    assert docs[0].metadata["page_number"] == 1


def test_remote_pdf_download_failure_is_source_unavailable(monkeypatch):
    class FailingPDFLoader:
        def __init__(self, file_path: str) -> None:
            pass

        def load(self):
            raise ValueError("Check the url of your file; returned status code 404")

    monkeypatch.setattr("pdfbot.ingestion.PyPDFLoader", FailingPDFLoader)
    with pytest.raises(SourceUnavailable):
        DocumentLoader().load("https://example.com/files/missing.pdf")


def test_web_page_uses_web_loader_with_timeout(monkeypatch):
    seen = {}

    class RecordingWebLoader:
        def __init__(self, web_path: str, **kwargs) -> None:
            seen["web_path"] = web_path
            seen.update(kwargs)

        def load(self) -> list[Document]:
            return [Document(page_content="Alerts are shown in red.", metadata={})]

    monkeypatch.setattr("pdfbot.ingestion.WebBaseLoader", RecordingWebLoader)
    docs = DocumentLoader(request_timeout_s=3).load("https://example.com/docs/alert")

    assert seen["web_path"] == "https://example.com/docs/alert"
    assert seen["requests_kwargs"] == {"timeout": 3}
    assert docs[0].metadata["source_type"] == "web"
