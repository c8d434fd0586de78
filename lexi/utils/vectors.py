"""Vector math helpers for embedding comparison."""

from collections.abc import Sequence

import numpy as np


def cosine_similarity(
    a: Sequence[float] | None, b: Sequence[float] | None
) -> float:
    """Cosine of the angle between two vectors.

    Args:
        a: First vector
        b: Second vector

    Returns:
        Similarity in [-1, 1]. 0.0 when either vector is missing or empty,
        the lengths differ, or either vector has zero magnitude.

    Example:
        >>> cosine_similarity([1.0, 0.0], [1.0, 0.0])
        1.0
        >>> cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])
        0.0
    """
    if a is None or b is None or len(a) == 0 or len(a) != len(b):
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denominator = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denominator == 0.0:
        return 0.0

    similarity = float(np.dot(va, vb) / denominator)
    # Clamp floating point drift
    return max(-1.0, min(1.0, similarity))


def cosine_similarities(
    query: Sequence[float], candidates: Sequence[Sequence[float]]
) -> list[float]:
    """Cosine similarity of one query vector against many candidates.

    Vectorised for the brute-force retrieval path. Candidates whose length
    differs from the query, or with zero magnitude, score 0.0.
    """
    if not candidates:
        return []

    q = np.asarray(query, dtype=np.float64)
    q_norm = float(np.linalg.norm(q))
    scores: list[float] = [0.0] * len(candidates)

    same_length = [i for i, c in enumerate(candidates) if len(c) == len(q)]
    if q_norm == 0.0 or not same_length:
        return scores

    matrix = np.asarray([candidates[i] for i in same_length], dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1)
    dots = matrix @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        values = np.where(norms > 0, dots / (norms * q_norm), 0.0)

    for idx, value in zip(same_length, values):
        scores[idx] = max(-1.0, min(1.0, float(value)))
    return scores


def normalize_vector(vector: Sequence[float]) -> list[float]:
    """L2-normalise a vector.

    Returns the input unchanged (as a list) when its magnitude is zero.
    """
    v = np.asarray(vector, dtype=np.float64)
    magnitude = float(np.linalg.norm(v))
    if magnitude == 0.0:
        return list(vector)
    return (v / magnitude).tolist()
