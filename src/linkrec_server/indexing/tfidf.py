"""
TF-IDF weighting.

idf(t) = ln(N / df(t)) with N = number of processed documents, and a
document's weight for t is count(t) * idf(t).
"""

from __future__ import annotations

import math
from typing import Dict, Hashable, Iterable, Mapping, Tuple, TypeVar

K = TypeVar("K", bound=Hashable)


def inverse_document_frequency(total_documents: int, document_frequency: int) -> float:
    """
    Return ln(N / df), or 0.0 when either count is non-positive.

    A term present in every document scores 0 and drops out of similarity.
    """
    if total_documents <= 0 or document_frequency <= 0:
        return 0.0
    return max(0.0, math.log(total_documents / document_frequency))


def compute_idf(
    total_documents: int,
    document_frequencies: Iterable[Tuple[K, int]],
) -> Dict[K, float]:
    """
    Recompute IDF for every (term, df) pair against a corpus of
    `total_documents` processed documents.
    """
    return {
        term: inverse_document_frequency(total_documents, df)
        for term, df in document_frequencies
    }


def tfidf_vector(term_counts: Mapping[K, int], idf: Mapping[K, float]) -> Dict[K, float]:
    """
    Weight raw term counts by IDF; unknown terms weigh 0.
    """
    return {term: count * idf.get(term, 0.0) for term, count in term_counts.items()}


def vector_norm(vector: Mapping[K, float]) -> float:
    """L2 norm of a sparse vector."""
    return math.sqrt(sum(w * w for w in vector.values()))
