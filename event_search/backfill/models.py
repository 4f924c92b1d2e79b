"""Embedding backfill data models."""

from pydantic import BaseModel, ConfigDict, Field

from event_search.exceptions import PartialBackfillFailure


class BackfillItemResult(BaseModel):
    """Outcome for one event in a backfill batch.

    Attributes:
        event_id: Event identifier as requested.
        success: Whether the embedding was stored on the event.
        error: Failure reason when ``success`` is False.
        indexed: Whether the embedding also reached the vector index.
    """

    model_config = ConfigDict(populate_by_name=True)

    event_id: str = Field(alias="eventId")
    success: bool
    error: str | None = None
    indexed: bool = False


class BackfillReport(BaseModel):
    """Per-id summary of a backfill run, in request order."""

    items: list[BackfillItemResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> list[str]:
        """Ids whose embeddings were stored."""
        return [item.event_id for item in self.items if item.success]

    @property
    def failed(self) -> list[str]:
        """Ids that could not be updated."""
        return [item.event_id for item in self.items if not item.success]

    def failures(self) -> list[BackfillItemResult]:
        """Failed items with their reasons."""
        return [item for item in self.items if not item.success]

    def raise_for_failures(self) -> None:
        """Raise if any item failed.

        Raises:
            PartialBackfillFailure: Carrying this report.
        """
        if self.failed:
            raise PartialBackfillFailure(self)
