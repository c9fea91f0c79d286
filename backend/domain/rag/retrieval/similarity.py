"""
Similarity functions (cosine)
"""

import numpy as np
from typing import List, Sequence


def cosine_similarity(vec1: List[float], vec2: List[float]) -> float:
    """Compute cosine similarity between two vectors"""
    vec1_np = np.asarray(vec1, dtype=np.float32)
    vec2_np = np.asarray(vec2, dtype=np.float32)

    dot_product = np.dot(vec1_np, vec2_np)
    norm1 = np.linalg.norm(vec1_np)
    norm2 = np.linalg.norm(vec2_np)

    if norm1 == 0 or norm2 == 0:
        return 0.0

    return float(dot_product / (norm1 * norm2))


def cosine_similarities(
    query_vector: Sequence[float],
    candidate_vectors: Sequence[Sequence[float]]
) -> List[float]:
    """
    Cosine similarity of one query vector against many candidates (vectorized).

    Zero vectors score 0.0 instead of producing NaN.

    Args:
        query_vector: Query embedding, shape [d]
        candidate_vectors: Candidate embeddings, shape [N, d]

    Returns:
        N similarity scores in candidate order
    """
    if len(candidate_vectors) == 0:
        return []

    query_arr = np.asarray(query_vector, dtype=np.float32)        # [d]
    cand_arr = np.asarray(candidate_vectors, dtype=np.float32)    # [N, d]

    query_norm = np.linalg.norm(query_arr)
    cand_norms = np.linalg.norm(cand_arr, axis=1)                 # [N]
    if query_norm == 0:
        return [0.0] * len(candidate_vectors)

    dots = cand_arr @ query_arr                                   # [N]
    denom = cand_norms * query_norm
    scores = np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)

    return [float(s) for s in scores]
