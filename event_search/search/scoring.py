"""Relevance scoring and default ordering."""

from collections.abc import Sequence

import numpy as np

from event_search.logging_config import get_logger
from event_search.search.models import Candidate

logger = get_logger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 when either has zero norm.

    Raises:
        ValueError: If the vectors differ in length.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"vector dimensions differ: {va.shape[0]} != {vb.shape[0]}")

    denominator = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denominator == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denominator)


def ranking_key(candidate: Candidate) -> tuple[float, float, str]:
    """Sort key: relevance desc, then cosine desc, then event id."""
    return (-candidate.overall_relevance, -candidate.cosine_similarity, candidate.event.id)


class RelevanceScorer:
    """Combines vector similarity with keyword match counts.

    Cosine similarity is recomputed exactly from each event's stored
    embedding; index-reported scores are only a fallback for events whose
    document lacks a usable vector. With a keyword, relevance is
    ``cosine * match_count``; without one it is the cosine alone.
    """

    def cosine(self, candidate: Candidate, query_vector: Sequence[float]) -> float:
        """Exact cosine similarity between the candidate and the query."""
        embedding = candidate.event.embedding
        if embedding:
            try:
                return cosine_similarity(embedding, query_vector)
            except ValueError:
                logger.warning(
                    "Stored embedding has unexpected dimensionality",
                    extra={"event_id": candidate.event.id, "dimensions": len(embedding)},
                )
        return candidate.index_score if candidate.index_score is not None else 0.0

    def score(self, candidate: Candidate, query_vector: Sequence[float], keyword: str) -> float:
        """Score *candidate*, storing the components on it.

        Expects ``candidate.match_count`` to have been set by the filter engine.
        """
        candidate.cosine_similarity = self.cosine(candidate, query_vector)
        if keyword:
            candidate.overall_relevance = candidate.cosine_similarity * candidate.match_count
        else:
            candidate.overall_relevance = candidate.cosine_similarity
        return candidate.overall_relevance

    def rank(
        self,
        candidates: list[Candidate],
        query_vector: Sequence[float],
        keyword: str,
    ) -> list[Candidate]:
        """Score every candidate and return them in relevance order."""
        for candidate in candidates:
            self.score(candidate, query_vector, keyword)
        return sorted(candidates, key=ranking_key)
