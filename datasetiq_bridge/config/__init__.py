"""Configuration."""

from .settings import (
    AUTH_TIER_LIMIT,
    CONNECT_MESSAGE,
    FREE_TIER_LIMIT,
    HEADER_ROW,
    SOURCES,
    Settings,
    normalize_source,
)

__all__ = [
    "AUTH_TIER_LIMIT",
    "CONNECT_MESSAGE",
    "FREE_TIER_LIMIT",
    "HEADER_ROW",
    "SOURCES",
    "Settings",
    "normalize_source",
]
