"""Data fetching, shaping and storage."""

from .fetcher import SeriesFetcher
from .store import CredentialStore, MemoryStore, SqliteStore, get_store

__all__ = ["SeriesFetcher", "CredentialStore", "MemoryStore", "SqliteStore", "get_store"]
