from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PhotoState = Literal["pending", "resolved"]
AlbumState = Literal["empty", "populating", "populated"]
ChangeKind = Literal["insert", "delete", "update"]


class Coordinate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class Location(Coordinate):
    id: int
    created_at: datetime


class PhotoReference(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    location_id: int
    source_url: str | None = None
    content: bytes | None = Field(default=None, repr=False)
    created_at: datetime
    resolved_at: datetime | None = None

    @property
    def state(self) -> PhotoState:
        return "resolved" if self.content is not None else "pending"

    @property
    def is_resolved(self) -> bool:
        return self.content is not None


class MapRegion(BaseModel):
    model_config = ConfigDict(extra="ignore")

    center_latitude: float = Field(ge=-90, le=90)
    center_longitude: float = Field(ge=-180, le=180)
    latitude_delta: float = Field(gt=0, le=180)
    longitude_delta: float = Field(gt=0, le=360)


class BoundingBox(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    @model_validator(mode="after")
    def validate_order(self) -> BoundingBox:
        if self.min_lon > self.max_lon or self.min_lat > self.max_lat:
            raise ValueError("bounding box minimums must be <= maximums")
        return self

    def as_query(self) -> str:
        return f"{self.min_lon},{self.min_lat},{self.max_lon},{self.max_lat}"


class SearchPage(BaseModel):
    """One page of remote search results."""

    model_config = ConfigDict(extra="ignore")

    page: int = Field(ge=1)
    pages: int = Field(ge=0)
    items: list[dict] = Field(default_factory=list)

    @field_validator("items", mode="before")
    @classmethod
    def drop_non_mapping_items(cls, value: object) -> object:
        if isinstance(value, list):
            return [item for item in value if isinstance(item, dict)]
        return value


@dataclass(slots=True, frozen=True)
class AlbumChange:
    kind: ChangeKind
    location_id: int
    photo_ids: tuple[int, ...]


@dataclass(slots=True)
class ResolveReport:
    resolved: list[int]
    failed: list[int]
    skipped: list[int]
