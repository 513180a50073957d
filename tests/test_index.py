"""
Tests for cosine similarity and the in-memory embedding index.
"""

import math

import pytest

from kbase.errors import DimensionMismatch
from kbase.index import EmbeddingIndex, cosine_similarity
from kbase.types import Chunk, ChunkRange


def _chunk(doc_id: str, index: int = 0) -> Chunk:
    return Chunk(doc_id, index, f"{doc_id}-{index}", ChunkRange(index, index + 1))


class TestCosineSimilarity:

    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 1.0], [-1.0, -1.0]) == pytest.approx(-1.0)

    def test_scale_invariant(self):
        assert cosine_similarity([1.0, 2.0], [10.0, 20.0]) == pytest.approx(1.0)

    def test_known_angle(self):
        assert cosine_similarity([1.0, 0.0], [1.0, 1.0]) == pytest.approx(1 / math.sqrt(2))

    def test_zero_vector_gives_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0
        assert cosine_similarity([1.0, 2.0], [0.0, 0.0]) == 0.0

    def test_length_mismatch_raises(self):
        with pytest.raises(DimensionMismatch) as exc_info:
            cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])
        assert exc_info.value.expected == 2
        assert exc_info.value.actual == 3

    def test_dimension_mismatch_is_value_error(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0], [1.0, 2.0])


class TestEmbeddingIndex:

    def test_empty_index_returns_nothing(self):
        assert EmbeddingIndex().search([1.0, 0.0], 5) == []

    def test_ranked_by_similarity(self):
        index = EmbeddingIndex()
        index.add(_chunk("a"), [1.0, 0.0])
        index.add(_chunk("b"), [0.0, 1.0])
        index.add(_chunk("c"), [1.0, 1.0])
        hits = index.search([1.0, 0.1], 3)
        assert [h.document_id for h in hits] == ["a", "c", "b"]
        assert hits[0].similarity > hits[1].similarity > hits[2].similarity

    def test_top_k_limits_results(self):
        index = EmbeddingIndex()
        for i in range(10):
            index.add(_chunk(f"d{i}"), [1.0, float(i)])
        assert len(index.search([1.0, 0.0], 3)) == 3
        assert len(index.search([1.0, 0.0], 50)) == 10

    def test_top_k_zero_returns_empty(self):
        index = EmbeddingIndex()
        index.add(_chunk("a"), [1.0])
        assert index.search([1.0], 0) == []

    def test_ties_keep_insertion_order(self):
        index = EmbeddingIndex()
        for name in ("first", "second", "third"):
            index.add(_chunk(name), [1.0, 1.0])
        hits = index.search([2.0, 2.0], 3)
        assert [h.document_id for h in hits] == ["first", "second", "third"]

    def test_skip_pages_through_results(self):
        index = EmbeddingIndex()
        for i in range(8):
            index.add(_chunk(f"d{i}"), [1.0, i / 10])
        query = [1.0, 0.0]
        full = index.search(query, 8)
        assert index.search(query, 3, skip=2) == full[2:5]
        assert index.search(query, 3, skip=7) == full[7:]
        assert index.search(query, 3, skip=20) == []

    def test_negative_skip_rejected(self):
        index = EmbeddingIndex()
        index.add(_chunk("a"), [1.0])
        with pytest.raises(ValueError):
            index.search([1.0], 1, skip=-1)

    def test_first_vector_fixes_dimension(self):
        index = EmbeddingIndex()
        assert index.dimension is None
        index.add(_chunk("a"), [1.0, 2.0, 3.0])
        assert index.dimension == 3
        with pytest.raises(DimensionMismatch):
            index.add(_chunk("b"), [1.0, 2.0])

    def test_query_dimension_checked(self):
        index = EmbeddingIndex()
        index.add(_chunk("a"), [1.0, 2.0])
        with pytest.raises(DimensionMismatch):
            index.search([1.0, 2.0, 3.0], 1)

    def test_add_many_is_all_or_nothing(self):
        index = EmbeddingIndex()
        index.add(_chunk("a"), [1.0, 0.0])
        with pytest.raises(DimensionMismatch):
            index.add_many([(_chunk("b", 0), [0.0, 1.0]), (_chunk("b", 1), [1.0])])
        assert len(index) == 1
        assert "b" not in index

    def test_remove_document(self):
        index = EmbeddingIndex()
        index.add_many([(_chunk("a", i), [1.0, float(i)]) for i in range(3)])
        index.add(_chunk("b"), [0.0, 1.0])
        assert index.remove("a") == 3
        assert index.remove("a") == 0
        assert len(index) == 1
        assert [h.document_id for h in index.search([1.0, 0.0], 10)] == ["b"]

    def test_clear_forgets_dimension(self):
        index = EmbeddingIndex()
        index.add(_chunk("a"), [1.0, 0.0])
        index.clear()
        assert len(index) == 0
        assert index.dimension is None
        index.add(_chunk("b"), [1.0, 0.0, 0.0])
        assert index.dimension == 3

    def test_chunks_for_and_document_count(self):
        index = EmbeddingIndex()
        index.add_many([(_chunk("a", i), [1.0]) for i in range(2)])
        index.add(_chunk("b"), [1.0])
        assert [c.chunk_index for c in index.chunks_for("a")] == [0, 1]
        assert index.document_count() == 2
