"""Embedding provider module."""

from event_search.embeddings.models import EmbeddingResult
from event_search.embeddings.service import (
    EmbeddingProvider,
    HTTPEmbeddingProvider,
    SentenceTransformerEmbeddingProvider,
    create_embedding_provider,
)

__all__ = [
    "EmbeddingProvider",
    "EmbeddingResult",
    "HTTPEmbeddingProvider",
    "SentenceTransformerEmbeddingProvider",
    "create_embedding_provider",
]
