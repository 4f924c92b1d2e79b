"""Vector index module."""

from event_search.vectorindex.models import IndexMatch, VectorRecord
from event_search.vectorindex.service import (
    QdrantVectorIndex,
    VectorIndex,
    candidate_pool_size,
    point_id,
)

__all__ = [
    "IndexMatch",
    "QdrantVectorIndex",
    "VectorIndex",
    "VectorRecord",
    "candidate_pool_size",
    "point_id",
]
