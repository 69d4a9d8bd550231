"""Cosine-similarity ranking of interest-history entries against a question.

Results are ordered by similarity (highest first) with ties resolved by the
candidate's original position, so equal scores always come back first-seen
first.
"""

import heapq
import logging
from enum import Enum
from typing import List, Literal, Sequence, Union

import numpy as np

logger = logging.getLogger(__name__)

EPSILON = 1e-8

Vector = Sequence[float]


class Relevance(str, Enum):
    INSUFFICIENT_DATA = "insufficient_data"


INSUFFICIENT_DATA = Relevance.INSUFFICIENT_DATA

InsufficientData = Literal[Relevance.INSUFFICIENT_DATA]


def cosine_similarity(a: Vector, b: Vector) -> float:
    va, vb = np.asarray(a, dtype=float), np.asarray(b, dtype=float)
    return float(va.dot(vb) / (np.linalg.norm(va) * np.linalg.norm(vb) + EPSILON))


def similarity_scores(query: Vector, candidates: Sequence[Vector]) -> np.ndarray:
    """Score every candidate against the query in one matrix product."""
    q = np.asarray(query, dtype=float)
    matrix = np.asarray(candidates, dtype=float)
    if matrix.ndim != 2 or matrix.shape[1] != q.shape[0]:
        raise ValueError(
            f"Candidate vectors must all have dimension {q.shape[0]}, "
            f"got array of shape {matrix.shape}"
        )
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
    return matrix.dot(q) / (norms + EPSILON)


def top_k_indices(
    query: Vector, candidates: Sequence[Vector], k: int
) -> Union[List[int], InsufficientData]:
    """Indices of the k candidates most similar to the query."""
    if k < 1:
        raise ValueError(f"k must be a positive integer, got {k}")
    if len(candidates) == 0:
        return INSUFFICIENT_DATA

    scores = similarity_scores(query, candidates)
    # Heap selection on (-score, index) keeps ties in original order
    return heapq.nsmallest(
        k, range(len(scores)), key=lambda i: (-float(scores[i]), i)
    )


def most_relevant(
    query: Vector, candidates: Sequence[Vector], texts: Sequence[str], k: int = 3
) -> Union[List[str], InsufficientData]:
    """The k texts whose vectors are most similar to the query."""
    if len(candidates) != len(texts):
        raise ValueError(
            f"Got {len(candidates)} vectors for {len(texts)} texts; "
            "each text needs exactly one vector"
        )

    indices = top_k_indices(query, candidates, k)
    if indices is INSUFFICIENT_DATA:
        logger.info("No interest history to rank against")
        return INSUFFICIENT_DATA

    return [texts[i] for i in indices]
