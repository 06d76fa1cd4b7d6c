"""Cosine similarity ranking of embedding candidates."""

import math
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from meeting_context.memory.models import ScoredCandidate

Candidate = Tuple[Sequence[float], Any]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors.

    Returns 0.0 for empty, zero-magnitude or mismatched-length vectors
    instead of raising.
    """
    if not a or not b or len(a) != len(b):
        return 0.0

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    similarity = dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
    if not math.isfinite(similarity):
        return 0.0
    return similarity


class SimilarityRanker:
    """Ranks ``(vector, payload)`` candidates against a query vector."""

    def rank(
        self, query_vector: Sequence[float], candidates: Iterable[Candidate]
    ) -> List[ScoredCandidate]:
        """Score every candidate, highest similarity first.

        Ties keep the candidates' input order.
        """
        scored = [
            ScoredCandidate(payload=payload, similarity=cosine_similarity(query_vector, vector))
            for vector, payload in candidates
        ]
        # sorted() is stable, so equal scores stay in input order
        return sorted(scored, key=lambda c: c.similarity, reverse=True)

    def top(
        self,
        query_vector: Sequence[float],
        candidates: Iterable[Candidate],
        threshold: float,
        limit: Optional[int] = None,
    ) -> List[ScoredCandidate]:
        """Rank, keep candidates at or above ``threshold``, then take ``limit``."""
        ranked = [
            c for c in self.rank(query_vector, candidates) if c.similarity >= threshold
        ]
        if limit is not None:
            ranked = ranked[:limit]
        return ranked

    def threshold_sweep(
        self,
        query_vector: Sequence[float],
        candidates: Iterable[Candidate],
        thresholds: Sequence[float] = (0.8, 0.7, 0.6, 0.5, 0.4, 0.3),
    ) -> Dict[float, int]:
        """Count candidates at or above each threshold.

        Diagnostic for tuning strategy thresholds against real data.
        """
        similarities = [c.similarity for c in self.rank(query_vector, candidates)]
        return {
            threshold: sum(1 for s in similarities if s >= threshold)
            for threshold in thresholds
        }
