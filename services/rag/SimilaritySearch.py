"""Ranking of stored chunks against a query vector.

All functions are pure; the only store access is the thin search_store() wrapper.
"""

from typing import Sequence

import numpy as np

from shared.clients.vectorstore.VectorStoreInterface import VectorStoreInterface
from shared.models.document import Chunk
from shared.models.search import SearchResult, SearchStats

DEFAULT_TOP_K = 5
DEFAULT_THRESHOLD = 0.3
DEFAULT_DUP_THRESHOLD = 0.95
DEFAULT_MAX_CONTEXT_LENGTH = 4000

# characters compared at both ends of two texts when neither contains the other
_EDGE_WINDOW = 100


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors.

    Returns 0.0 instead of raising when the vectors differ in length, are
    empty or have zero magnitude.
    """
    if len(a) == 0 or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def find_similar(
    query_vector: Sequence[float],
    chunks: list[Chunk],
    top_k: int = DEFAULT_TOP_K,
    threshold: float = DEFAULT_THRESHOLD,
) -> list[SearchResult]:
    """Score every chunk and return the best matches.

    Args:
        query_vector: Embedding of the query.
        chunks: Candidate chunks.
        top_k: Maximum number of results.
        threshold: Minimum similarity, inclusive.

    Returns:
        list[SearchResult]: At most top_k results with similarity >= threshold,
        highest first. Ties keep store order.
    """
    if top_k <= 0:
        return []
    scored = [SearchResult(chunk=chunk, similarity=cosine_similarity(query_vector, chunk.embedding)) for chunk in chunks]
    # sorted() is stable, so equal scores keep their input order
    ranked = sorted((r for r in scored if r.similarity >= threshold), key=lambda r: r.similarity, reverse=True)
    return ranked[:top_k]


async def search_store(
    store: VectorStoreInterface,
    query_vector: Sequence[float],
    top_k: int = DEFAULT_TOP_K,
    threshold: float = DEFAULT_THRESHOLD,
) -> list[SearchResult]:
    """find_similar() over every chunk of the store."""
    chunks = await store.get_all_chunks()
    return find_similar(query_vector, chunks, top_k=top_k, threshold=threshold)


def text_similarity(a: str, b: str) -> float:
    """Cheap textual overlap score used for de-duplication.

    Identical texts score 1.0. If one text contains the other the score is
    the length ratio. Otherwise matching 100 character prefixes and suffixes
    score 0.9 together and 0.7 alone.
    """
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    shorter, longer = (a, b) if len(a) < len(b) else (b, a)
    if shorter in longer:
        return len(shorter) / len(longer)

    window = min(_EDGE_WINDOW, len(shorter))
    start_match = shorter[:window] == longer[:window]
    end_match = shorter[len(shorter) - window:] == longer[len(longer) - window:]
    if start_match and end_match:
        return 0.9
    if start_match or end_match:
        return 0.7
    return 0.0


def deduplicate_results(results: list[SearchResult], dup_threshold: float = DEFAULT_DUP_THRESHOLD) -> list[SearchResult]:
    """Drop results whose text nearly repeats a higher ranked result.

    Args:
        results: Results in rank order.
        dup_threshold: text_similarity() at or above which a result is a duplicate.

    Returns:
        list[SearchResult]: The kept results, in rank order.
    """
    kept: list[SearchResult] = []
    for result in results:
        if any(text_similarity(result.chunk.text, k.chunk.text) >= dup_threshold for k in kept):
            continue
        kept.append(result)
    return kept


def format_results_as_context(results: list[SearchResult], max_length: int = DEFAULT_MAX_CONTEXT_LENGTH) -> str:
    """Concatenate results into a context block of bounded length.

    Each entry reads "[relevance: NN.N%]\\n<text>\\n\\n". The first entry that
    does not fit is cut to the remaining budget and marked with "..." if more
    than 50 characters remain, otherwise dropped. Nothing after it is added.
    """
    context = ""
    for result in results:
        entry = f"[relevance: {result.similarity * 100:.1f}%]\n{result.chunk.text}\n\n"
        if len(context) + len(entry) > max_length:
            remaining = max_length - len(context)
            if remaining > 50:
                context += entry[:remaining - 3] + "..."
            break
        context += entry
    return context.strip()


def get_search_stats(results: list[SearchResult]) -> SearchStats:
    if not results:
        return SearchStats()
    scores = np.array([r.similarity for r in results], dtype=np.float64)
    return SearchStats(
        count=len(results),
        avg_similarity=float(scores.mean()),
        min_similarity=float(scores.min()),
        max_similarity=float(scores.max()),
    )
