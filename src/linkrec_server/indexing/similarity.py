"""
Pairwise cosine similarity over sparse TF-IDF vectors.

The corpus-wide pass walks an inverted index built from each document's
capped term set, so a pair only costs the terms the two documents share.
Each unordered pair is scored exactly once and the score is written to both
neighbour lists, which keeps sim(A, B) and sim(B, A) identical.
"""

from __future__ import annotations

import heapq
from collections import defaultdict
from typing import Dict, Hashable, List, Mapping, Tuple

import numpy as np

from .tfidf import vector_norm


def _normalize(vector: Mapping[Hashable, float]) -> Dict[Hashable, float]:
    norm = vector_norm(vector)
    if norm == 0:
        return {}
    return {term: weight / norm for term, weight in vector.items() if weight != 0}


def _offer(heap: List[Tuple[float, int]], item: Tuple[float, int], capacity: int) -> None:
    # Min-heap of (score, -doc_index): the weakest neighbour sits on top and
    # equal scores evict the higher document index first.
    if len(heap) < capacity:
        heapq.heappush(heap, item)
    elif item > heap[0]:
        heapq.heapreplace(heap, item)


def compute_neighbors(
    vectors: Mapping[int, Mapping[Hashable, float]],
    max_per_doc: int,
    min_score: float,
) -> Dict[int, List[Tuple[int, float]]]:
    """
    Score every pair of documents and keep each document's best neighbours.

    Parameters
    ----------
    vectors : Mapping[int, Mapping[Hashable, float]]
        Document id -> sparse TF-IDF vector (term -> weight).
    max_per_doc : int
        Maximum neighbours retained per document.
    min_score : float
        Scores below this are discarded; zero scores are always discarded.

    Returns
    -------
    Dict[int, List[Tuple[int, float]]]
        Document id -> [(neighbour id, score)] sorted by score descending,
        then neighbour id ascending. Documents without neighbours are omitted.
    """
    if max_per_doc <= 0:
        return {}

    doc_ids = list(vectors)
    size = len(doc_ids)
    units = [_normalize(vectors[doc_id]) for doc_id in doc_ids]

    # term -> (ascending document indexes, weights)
    raw_postings: Dict[Hashable, Tuple[List[int], List[float]]] = defaultdict(lambda: ([], []))
    for index, unit in enumerate(units):
        for term, weight in unit.items():
            indexes, weights = raw_postings[term]
            indexes.append(index)
            weights.append(weight)
    postings = {
        term: (np.asarray(indexes, dtype=np.int64), np.asarray(weights, dtype=np.float64))
        for term, (indexes, weights) in raw_postings.items()
    }

    heaps: List[List[Tuple[float, int]]] = [[] for _ in range(size)]

    for i, unit in enumerate(units):
        if not unit:
            continue

        scores = np.zeros(size, dtype=np.float64)
        for term, weight in unit.items():
            indexes, weights = postings[term]
            # Only partners after i; earlier pairs were scored on their turn
            start = int(np.searchsorted(indexes, i, side="right"))
            if start < len(indexes):
                scores[indexes[start:]] += weight * weights[start:]

        np.clip(scores, 0.0, 1.0, out=scores)
        for j in np.nonzero((scores > 0.0) & (scores >= min_score))[0]:
            j = int(j)
            score = float(scores[j])
            _offer(heaps[i], (score, -j), max_per_doc)
            _offer(heaps[j], (score, -i), max_per_doc)

    neighbors: Dict[int, List[Tuple[int, float]]] = {}
    for i, heap in enumerate(heaps):
        if heap:
            ranked = sorted(heap, reverse=True)
            neighbors[doc_ids[i]] = [(doc_ids[-neg], score) for score, neg in ranked]

    return neighbors
