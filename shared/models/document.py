"""Knowledge base records: documents, chunks and uploaded files."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class SourceType(str, Enum):
    """Origin of a stored document."""
    UPLOAD = "upload"
    WIKI_PAGE = "wiki-page"


class Document(BaseModel):
    """
    A logical source record in the knowledge base.

    Attributes:
        id:               Opaque unique id, generated once at ingestion.
        name:             Display name (file name or page title).
        source_type:      Where the document came from.
        size_bytes:       Size of the extracted text.
        chunk_count:      Number of chunks stored for this document.
        mime_type:        MIME type of an uploaded file, if known.
        source_url:       Link back to the remote page, for wiki documents.
        external_page_id: Stable id of the page in the remote source.
        last_modified:    Remote ISO-8601 modification timestamp, stored as received.
        collection_key:   Remote collection (space) key.
        collection_name:  Remote collection (space) display name.
        created_at:       Local ingestion time, set by the store if missing.
    """

    id: str
    name: str
    source_type: SourceType = SourceType.UPLOAD
    size_bytes: int = 0
    chunk_count: int = 0
    mime_type: str | None = None

    # provenance of remote pages
    source_url: str | None = None
    external_page_id: str | None = None
    last_modified: str | None = None
    collection_key: str | None = None
    collection_name: str | None = None

    created_at: datetime | None = None


class Chunk(BaseModel):
    """
    A contiguous span of a document's text together with its embedding.

    Attributes:
        id:        "<doc_id>_<position>".
        doc_id:    Owning document id.
        text:      Chunk text, prefixed with a provenance tag.
        embedding: Vector produced by the active embedding backend.
        position:  Zero-based ordinal within the document.
    """

    id: str
    doc_id: str
    text: str
    embedding: list[float] = Field(default_factory=list)
    position: int = 0


class UploadedFile(BaseModel):
    """A file handed to the knowledge base for ingestion."""

    name: str
    mime_type: str | None = None
    content: bytes = b""

    @property
    def size_bytes(self) -> int:
        return len(self.content)


class ChunkedDocument(BaseModel):
    """Extracted text of a file and its ordered chunks."""

    text: str
    chunks: list[str] = []


class AddDocumentResult(BaseModel):
    doc_id: str
    name: str
    chunk_count: int
