import pytest

from services.rag import SimilaritySearch
from shared.models.document import Chunk
from shared.models.search import SearchResult


def _chunk(chunk_id: str, embedding: list[float], text: str | None = None) -> Chunk:
    return Chunk(id=chunk_id, doc_id="doc_1", text=text or f"text of {chunk_id}", embedding=embedding)


def _result(text: str, similarity: float) -> SearchResult:
    return SearchResult(chunk=Chunk(id=text[:10], doc_id="doc_1", text=text), similarity=similarity)


def test_cosine_similarity_basic_cases():
    assert SimilaritySearch.cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert SimilaritySearch.cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert SimilaritySearch.cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)
    assert SimilaritySearch.cosine_similarity([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)


def test_cosine_similarity_degenerate_inputs_return_zero():
    assert SimilaritySearch.cosine_similarity([], []) == 0.0
    assert SimilaritySearch.cosine_similarity([1, 2], [1, 2, 3]) == 0.0
    assert SimilaritySearch.cosine_similarity([0, 0], [1, 1]) == 0.0


def test_find_similar_orders_filters_and_limits():
    chunks = [
        _chunk("low", [0.1, 1.0]),
        _chunk("best", [1.0, 0.0]),
        _chunk("good", [1.0, 0.5]),
        _chunk("orthogonal", [0.0, 1.0]),
    ]
    results = SimilaritySearch.find_similar([1.0, 0.0], chunks, top_k=2, threshold=0.3)

    assert [r.chunk.id for r in results] == ["best", "good"]
    assert results[0].similarity >= results[1].similarity


def test_find_similar_threshold_is_inclusive_and_ties_keep_store_order():
    chunks = [_chunk("a", [1.0, 0.0]), _chunk("b", [2.0, 0.0]), _chunk("c", [0.0, 1.0])]
    results = SimilaritySearch.find_similar([1.0, 0.0], chunks, top_k=5, threshold=1.0)

    assert [r.chunk.id for r in results] == ["a", "b"]


def test_find_similar_edge_cases():
    chunks = [_chunk("a", [1.0, 0.0])]
    assert SimilaritySearch.find_similar([1.0, 0.0], chunks, top_k=0) == []
    assert SimilaritySearch.find_similar([1.0, 0.0], [], top_k=5) == []
    # wrong dimension scores 0 and falls below the threshold
    assert SimilaritySearch.find_similar([1.0, 0.0, 0.0], chunks, top_k=5, threshold=0.3) == []


def test_text_similarity():
    assert SimilaritySearch.text_similarity("same text", "same text") == 1.0
    assert SimilaritySearch.text_similarity("", "something") == 0.0
    assert SimilaritySearch.text_similarity("abcd", "abcdefgh") == pytest.approx(0.5)

    prefix = "p" * 100
    suffix = "s" * 100
    both = SimilaritySearch.text_similarity(prefix + "x" * 50 + suffix, prefix + "y" * 60 + suffix)
    start_only = SimilaritySearch.text_similarity(prefix + "x" * 150, prefix + "y" * 150)
    assert both == 0.9
    assert start_only == 0.7
    assert SimilaritySearch.text_similarity("a" * 150, "b" * 150) == 0.0


def test_deduplicate_results_keeps_higher_ranked():
    text = "The quick brown fox jumps over the lazy dog."
    results = [
        _result(text, 0.9),
        _result(text, 0.85),
        _result("A completely different sentence about rivers.", 0.8),
    ]
    kept = SimilaritySearch.deduplicate_results(results, dup_threshold=0.95)

    assert [r.similarity for r in kept] == [0.9, 0.8]


def test_format_results_as_context():
    results = [_result("First chunk text", 0.876), _result("Second chunk text", 0.5)]
    context = SimilaritySearch.format_results_as_context(results, max_length=4000)

    assert context == "[relevance: 87.6%]\nFirst chunk text\n\n[relevance: 50.0%]\nSecond chunk text"


def test_format_results_as_context_truncates_to_budget():
    results = [_result("a" * 100, 0.9), _result("b" * 200, 0.8)]
    context = SimilaritySearch.format_results_as_context(results, max_length=200)

    assert len(context) <= 200
    assert context.endswith("...")
    assert "b" in context

    # less than 50 characters left: the second entry is dropped entirely
    tight = SimilaritySearch.format_results_as_context(results, max_length=140)
    assert "b" not in tight


def test_format_results_as_context_empty():
    assert SimilaritySearch.format_results_as_context([]) == ""


def test_get_search_stats():
    stats = SimilaritySearch.get_search_stats([_result("a", 0.2), _result("b", 0.6)])
    assert stats.count == 2
    assert stats.avg_similarity == pytest.approx(0.4)
    assert stats.min_similarity == pytest.approx(0.2)
    assert stats.max_similarity == pytest.approx(0.6)
    assert SimilaritySearch.get_search_stats([]).count == 0


async def test_search_store_uses_all_chunks(memory_store):
    await memory_store.add_chunks([_chunk("x", [1.0, 0.0]), _chunk("y", [0.0, 1.0])])
    results = await SimilaritySearch.search_store(memory_store, [0.0, 1.0], top_k=5, threshold=0.5)

    assert [r.chunk.id for r in results] == ["y"]
