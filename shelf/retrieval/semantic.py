"""Semantic retrieval: cosine similarity top-K over stored embeddings."""

from collections.abc import Sequence

import numpy as np

from shelf.models.bookmark import Embedding
from shelf.models.search import SemanticHit

DEFAULT_TOP_K = 50


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors.

    Returns 0.0 instead of raising when the vectors differ in length or
    either has zero norm.
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0

    a_arr = np.asarray(a, dtype=np.float64)
    b_arr = np.asarray(b, dtype=np.float64)
    denom = float(np.linalg.norm(a_arr) * np.linalg.norm(b_arr))
    if denom == 0.0:
        return 0.0
    return float(np.dot(a_arr, b_arr) / denom)


def semantic_top_k(
    items: Sequence[Embedding],
    query_vector: Sequence[float],
    k: int = DEFAULT_TOP_K,
) -> list[SemanticHit]:
    """Rank embeddings by cosine similarity to the query vector.

    Args:
        items: Bookmark embeddings to score
        query_vector: Query embedding
        k: Number of hits to keep

    Returns:
        Up to k SemanticHits, highest similarity first (stable for ties)
    """
    scored = [
        SemanticHit(bookmark_id=item.bookmark_id, score=cosine_similarity(item.vector, query_vector))
        for item in items
    ]
    scored.sort(key=lambda hit: hit.score, reverse=True)
    return scored[:k]
