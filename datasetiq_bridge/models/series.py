"""Data models for series requests and responses."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

import httpx


class Mode(str, Enum):
    """What a caller wants back from a series."""

    TABLE = "table"
    LATEST = "latest"
    VALUE = "value"
    YOY = "yoy"
    META = "meta"


class ErrorCode(str, Enum):
    """Error codes carried in upstream error bodies."""

    NO_KEY = "NO_KEY"
    INVALID_KEY = "INVALID_KEY"
    REVOKED_KEY = "REVOKED_KEY"
    FREE_LIMIT = "FREE_LIMIT"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    PLAN_REQUIRED = "PLAN_REQUIRED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, raw: Any) -> "ErrorCode | None":
        """Parse a code from an error body; unrecognised codes become UNKNOWN."""
        if raw is None:
            return None
        key = str(raw).strip().upper().replace("-", "_").replace(" ", "_")
        if not key:
            return None
        try:
            return cls(key)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class SeriesRequest:
    """Normalized parameters for a single series fetch."""

    series_id: str
    mode: Mode
    api_key: str | None = None
    freq: str | None = None
    start: str | None = None
    date: str | None = None

    def __post_init__(self) -> None:
        if not self.series_id:
            raise ValueError("series_id is required.")
        if self.mode is Mode.VALUE and not self.date:
            raise ValueError("date is required.")


# (date, value) as returned upstream
Observation = tuple[str, float]


@dataclass(frozen=True)
class ObservationsResponse:
    """Observation list, with the scalar derived from it for latest/value modes."""

    data: list[Observation]
    series_id: str | None = None
    status: str | None = None
    message: str | None = None
    scalar: float | None = None


@dataclass(frozen=True)
class MetadataResponse:
    """Metadata mapping for a series."""

    meta: dict[str, Any]


@dataclass(frozen=True)
class RawResponse:
    """A success body carrying neither observations nor metadata."""

    body: Any


SeriesResponse = ObservationsResponse | MetadataResponse | RawResponse


@dataclass
class FetchResult:
    """Outcome of one fetch: exactly one of ``response`` or ``error`` is set."""

    response: SeriesResponse | None = None
    error: str | None = None
    status: int = 0
    headers: httpx.Headers | Mapping[str, str] | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class SearchResult:
    """A series hit from search or browse."""

    id: str
    title: str
    frequency: str | None = None
    units: str | None = None
    source: str | None = None


@dataclass(frozen=True)
class StoredKey:
    """Credential read from a store, plus whether the store works at all."""

    key: str | None
    supported: bool


@dataclass(frozen=True)
class IngestionResult:
    """Outcome of a full-dataset ingestion request."""

    queued: bool
    message: str


@dataclass
class SeriesPreview:
    """Latest value and metadata for one series, for display before insertion."""

    series_id: str
    latest: float | None = None
    meta: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    is_metadata_only: bool = False
    is_pending: bool = False
    status_message: str | None = None
