import pytest

from services.rag.DocumentChunker import DocumentChunker
from shared.exceptions import InvalidInput
from shared.models.document import UploadedFile


def test_short_text_is_single_chunk(chunker):
    chunks = chunker.chunk_text("This paragraph is long enough to be kept as a chunk.")
    assert chunks == ["This paragraph is long enough to be kept as a chunk."]


def test_empty_and_tiny_text(chunker):
    assert chunker.chunk_text("") == []
    assert chunker.chunk_text("   \n\n  ") == []
    # below the minimum chunk length
    assert chunker.chunk_text("tiny") == []


def test_paragraphs_are_packed_up_to_chunk_size(chunker):
    paragraphs = [f"Paragraph number {i} talks about a topic in some detail." for i in range(20)]
    chunks = chunker.chunk_text("\n\n".join(paragraphs), chunk_size=200, overlap=20)

    assert len(chunks) > 1
    # paragraph packing plus a short overlap never far exceeds the target size
    assert all(len(c) <= 200 + 20 for c in chunks)
    joined = " ".join(chunks)
    for paragraph in paragraphs:
        assert paragraph in joined


def test_long_paragraph_is_split_into_sentences(chunker):
    sentence = "Every sentence in this paragraph ends with a period. "
    text = sentence * 30
    chunks = chunker.chunk_text(text, chunk_size=150, overlap=10)

    assert len(chunks) > 1
    assert all(len(c) <= 150 * 1.5 for c in chunks)


def test_unbroken_text_is_force_split(chunker):
    text = "word " * 400
    chunks = chunker.chunk_text(text.strip(), chunk_size=100, overlap=10)

    assert len(chunks) > 1
    assert all(len(c) <= 100 for c in chunks)


def test_explicit_zero_overlap_is_respected(chunker):
    paragraphs = [f"Paragraph {i} carries a few filler words about the topic." for i in range(6)]
    chunks = chunker.chunk_text("\n\n".join(paragraphs), chunk_size=130, overlap=0)

    assert len(chunks) > 1
    assert all(c.startswith("Paragraph") for c in chunks)
    assert sum(c.count("Paragraph") for c in chunks) == len(paragraphs)


def test_invalid_chunking_parameters(chunker):
    with pytest.raises(InvalidInput):
        chunker.chunk_text("Some text that is long enough to chunk.", chunk_size=0)
    with pytest.raises(InvalidInput):
        chunker.chunk_text("Some text that is long enough to chunk.", overlap=-1)


def test_chunk_size_from_environment(helper_config, monkeypatch):
    monkeypatch.setenv("RAG_CHUNK_SIZE", "100")
    monkeypatch.setenv("RAG_CHUNK_MIN_LENGTH", "5")
    chunker = DocumentChunker(helper_config=helper_config)

    assert chunker.chunk_size == 100
    assert chunker.chunk_text("short text") == ["short text"]


def test_chunk_document_plain_text(chunker):
    content = "=== Report ===\n\nThe first paragraph has enough characters.\n\nThe second paragraph as well."
    file = UploadedFile(name="report.txt", mime_type="text/plain", content=content.encode("utf-8"))
    result = chunker.chunk_document(file)

    assert not result.text.startswith("===")
    assert len(result.chunks) == 1
    assert "first paragraph" in result.chunks[0]


def test_chunk_document_strips_utf8_bom(chunker):
    file = UploadedFile(name="notes.md", content="\ufeffMarkdown notes with enough characters.".encode("utf-8"))
    result = chunker.chunk_document(file)

    assert result.text.startswith("Markdown")


def test_chunk_document_html(chunker):
    html = "<html><head><style>p {color: red}</style><script>alert(1)</script></head><body><p>Visible HTML content for the knowledge base.</p></body></html>"
    file = UploadedFile(name="page.html", mime_type="text/html", content=html.encode("utf-8"))
    result = chunker.chunk_document(file)

    assert "Visible HTML content" in result.text
    assert "alert" not in result.text
    assert "color" not in result.text


def test_chunk_document_rejects_binary(chunker):
    file = UploadedFile(name="image.png", mime_type="image/png", content=b"\x89PNG\r\n")
    with pytest.raises(InvalidInput):
        chunker.chunk_document(file)
