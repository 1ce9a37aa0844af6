"""Search, augmentation and statistics models."""

from typing import Any

from pydantic import BaseModel

from shared.models.document import Chunk


class SearchResult(BaseModel):
    """A chunk paired with its cosine similarity to the query."""

    chunk: Chunk
    similarity: float


class SearchStats(BaseModel):
    count: int = 0
    avg_similarity: float = 0.0
    min_similarity: float = 0.0
    max_similarity: float = 0.0


class SourceReference(BaseModel):
    """
    One distinct source document contributing to a retrieval result.

    Attributes:
        doc_id:     Id of the stored document.
        doc_name:   Display name of the document.
        similarity: Best chunk similarity of this document, in whole percent.
        source_url: Remote link, for wiki documents.
    """

    doc_id: str
    doc_name: str
    similarity: int
    source_url: str | None = None


class SearchDetails(BaseModel):
    context: str = ""
    sources: list[SourceReference] = []


class AugmentResult(BaseModel):
    messages: list[dict[str, Any]]
    sources: list[SourceReference] = []


class KnowledgeBaseStats(BaseModel):
    document_count: int
    chunk_count: int
    total_size_bytes: int
    embedding_backend: str
    embedding_model: str
    embedding_dimension: int
    enabled: bool
