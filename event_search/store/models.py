"""Event store data models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from event_search.utils.datetime_utils import to_naive_utc


class Location(BaseModel):
    """Event location; only the precomputed full address is searched."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    full_address: str = Field(default="", alias="fullAddress")

    @field_validator("full_address", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class Event(BaseModel):
    """A searchable event document with its ticket price aggregate.

    Field aliases follow the stored document keys. ``min_price`` and
    ``max_price`` are computed per query from ticket records and are
    ``None`` for events without tickets. Unknown document fields are kept
    so they can be returned to callers unchanged.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(alias="_id")
    title: str = ""
    description: str = ""
    start_time: datetime | None = Field(default=None, alias="startTime")
    end_time: datetime | None = Field(default=None, alias="endTime")
    category: str = ""
    event_type: str = Field(default="", alias="eventType")
    artist_name: str = Field(default="", alias="artistName")
    location: Location = Field(default_factory=Location)
    embedding: list[float] | None = Field(default=None, alias="embeddedDescription")
    min_price: float | None = Field(default=None, alias="minPrice")
    max_price: float | None = Field(default=None, alias="maxPrice")

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        return str(value)

    @field_validator(
        "title", "description", "category", "event_type", "artist_name", mode="before"
    )
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("location", mode="before")
    @classmethod
    def _default_location(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("embedding", mode="before")
    @classmethod
    def _empty_embedding(cls, value: Any) -> Any:
        return value or None

    @field_validator("start_time", "end_time", mode="after")
    @classmethod
    def _normalise_time(cls, value: datetime | None) -> datetime | None:
        return to_naive_utc(value) if value is not None else None

    @property
    def full_address(self) -> str:
        """The location's precomputed full address."""
        return self.location.full_address

    def to_document(self) -> dict[str, Any]:
        """Serialise for API responses, without the embedding vector."""
        return self.model_dump(mode="json", by_alias=True, exclude={"embedding"})


class BulkWriteOutcome(BaseModel):
    """Per-id outcome of an unordered bulk embedding write.

    Attributes:
        updated: Event ids whose write was accepted.
        failed: Event ids mapped to the reason their write failed.
    """

    updated: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)
