"""Vector index data models."""

from typing import Any

from pydantic import BaseModel, Field


class VectorRecord(BaseModel):
    """An event embedding to store in the vector index.

    Attributes:
        event_id: Identifier of the event the vector belongs to.
        vector: The embedding vector.
        payload: Additional metadata to store with the vector.
    """

    event_id: str = Field(description="Event identifier")
    vector: list[float] = Field(description="Embedding vector")
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Metadata payload",
    )


class IndexMatch(BaseModel):
    """Result from an approximate nearest-neighbor query.

    Attributes:
        event_id: Identifier of the matched event.
        score: Index-reported similarity (higher is more similar).
    """

    event_id: str = Field(description="Event identifier")
    score: float = Field(description="Index-reported similarity score")
