"""Data models."""

from .series import (
    ErrorCode,
    FetchResult,
    IngestionResult,
    MetadataResponse,
    Mode,
    Observation,
    ObservationsResponse,
    RawResponse,
    SearchResult,
    SeriesPreview,
    SeriesRequest,
    SeriesResponse,
    StoredKey,
)

__all__ = [
    "ErrorCode",
    "FetchResult",
    "IngestionResult",
    "MetadataResponse",
    "Mode",
    "Observation",
    "ObservationsResponse",
    "RawResponse",
    "SearchResult",
    "SeriesPreview",
    "SeriesRequest",
    "SeriesResponse",
    "StoredKey",
]
