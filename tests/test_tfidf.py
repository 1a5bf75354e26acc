"""
TF-IDF and Similarity Math Tests
"""

import math

import pytest

from linkrec_server.indexing.similarity import compute_neighbors
from linkrec_server.indexing.tfidf import (
    compute_idf,
    inverse_document_frequency,
    tfidf_vector,
    vector_norm,
)


class TestIdf:

    def test_idf_formula(self):
        assert inverse_document_frequency(10, 2) == pytest.approx(math.log(5))

    def test_term_in_every_document_scores_zero(self):
        assert inverse_document_frequency(4, 4) == 0.0

    def test_degenerate_counts(self):
        assert inverse_document_frequency(0, 3) == 0.0
        assert inverse_document_frequency(3, 0) == 0.0

    def test_rarer_terms_weigh_more(self):
        idf = compute_idf(100, [("common", 50), ("rare", 2), ("unique", 1)])
        assert idf["unique"] > idf["rare"] > idf["common"] >= 0.0

    def test_tfidf_vector_ignores_unknown_terms(self):
        vector = tfidf_vector({"alpha": 3, "beta": 1}, {"alpha": 0.5})
        assert vector == {"alpha": 1.5, "beta": 0.0}

    def test_vector_norm(self):
        assert vector_norm({"a": 3.0, "b": 4.0}) == pytest.approx(5.0)


def _cosine(a, b):
    dot = sum(a[t] * b[t] for t in a.keys() & b.keys())
    norms = vector_norm(a) * vector_norm(b)
    return dot / norms if norms else 0.0


def _pair_score(a, b):
    neighbors = compute_neighbors({1: a, 2: b}, max_per_doc=1, min_score=0.0)
    return neighbors[1][0][1] if 1 in neighbors else 0.0


class TestCosine:

    def test_identical_vectors(self):
        v = {"a": 1.0, "b": 2.0}
        assert _pair_score(v, v) == pytest.approx(1.0)

    def test_disjoint_vectors(self):
        assert _pair_score({"a": 1.0}, {"b": 1.0}) == 0.0

    def test_zero_vector(self):
        assert _pair_score({}, {"a": 1.0}) == 0.0
        assert _pair_score({"a": 0.0}, {"a": 1.0}) == 0.0

    def test_symmetric_and_bounded(self):
        a = {"x": 0.3, "y": 1.7, "z": 2.2}
        b = {"y": 0.9, "z": 0.1, "w": 4.0}
        score = _pair_score(a, b)
        assert score == pytest.approx(_pair_score(b, a))
        assert score == pytest.approx(_cosine(a, b))
        assert 0.0 <= score <= 1.0


class TestComputeNeighbors:

    @pytest.fixture
    def vectors(self):
        return {
            10: {"a": 1.0, "b": 1.0},
            20: {"a": 1.0, "b": 0.9},
            30: {"a": 1.0, "c": 1.0},
            40: {"d": 1.0},
        }

    def test_scores_match_pairwise_cosine(self, vectors):
        neighbors = compute_neighbors(vectors, max_per_doc=10, min_score=0.0)
        for source, entries in neighbors.items():
            for target, score in entries:
                assert score == pytest.approx(_cosine(vectors[source], vectors[target]))

    def test_symmetric(self, vectors):
        neighbors = compute_neighbors(vectors, max_per_doc=10, min_score=0.0)
        scores = {
            (source, target): score
            for source, entries in neighbors.items()
            for target, score in entries
        }
        for (source, target), score in scores.items():
            assert scores[(target, source)] == score

    def test_excludes_self_and_zero_scores(self, vectors):
        neighbors = compute_neighbors(vectors, max_per_doc=10, min_score=0.0)
        for source, entries in neighbors.items():
            assert source not in [target for target, _ in entries]
        # Shares no term with anyone
        assert 40 not in neighbors

    def test_sorted_descending(self, vectors):
        neighbors = compute_neighbors(vectors, max_per_doc=10, min_score=0.0)
        for entries in neighbors.values():
            scores = [score for _, score in entries]
            assert scores == sorted(scores, reverse=True)
        assert neighbors[10][0][0] == 20

    def test_top_k_truncation(self, vectors):
        neighbors = compute_neighbors(vectors, max_per_doc=1, min_score=0.0)
        assert all(len(entries) == 1 for entries in neighbors.values())
        assert neighbors[10] == [(20, pytest.approx(neighbors[20][0][1]))]

    def test_min_score_floor(self, vectors):
        loose = compute_neighbors(vectors, max_per_doc=10, min_score=0.0)
        strict = compute_neighbors(vectors, max_per_doc=10, min_score=0.9)
        assert strict[10] == [(20, loose[10][0][1])]
        assert 30 not in strict

    def test_zero_capacity(self, vectors):
        assert compute_neighbors(vectors, max_per_doc=0, min_score=0.0) == {}

    def test_empty_vectors_are_skipped(self):
        neighbors = compute_neighbors({1: {}, 2: {"a": 1.0}, 3: {"a": 2.0}}, 5, 0.0)
        assert 1 not in neighbors
        assert neighbors[2] == [(3, pytest.approx(1.0))]
