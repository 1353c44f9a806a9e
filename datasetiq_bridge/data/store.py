"""Credential and series-list storage."""

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path

from datasetiq_bridge.config.settings import FAVORITES_LIMIT, RECENT_LIMIT, Settings
from datasetiq_bridge.data.errors import StorageError
from datasetiq_bridge.models.series import StoredKey


logger = logging.getLogger(__name__)

API_KEY_KEY = "DATASETIQ_API_KEY"
FAVORITES_KEY = "DATASETIQ_FAVORITES"
RECENT_KEY = "DATASETIQ_RECENT"


class CredentialStore(ABC):
    """
    Key/value storage for the API key and the favorites/recent lists.

    Subclasses implement the three raw primitives; list bookkeeping is shared.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier for this backend (e.g. ``'sqlite'``)."""

    @abstractmethod
    def _get_item(self, key: str) -> str | None:
        """Read a raw value. May raise ``StorageError``."""

    @abstractmethod
    def _set_item(self, key: str, value: str) -> None:
        """Write a raw value. May raise ``StorageError``."""

    @abstractmethod
    def _remove_item(self, key: str) -> None:
        """Delete a raw value. May raise ``StorageError``."""

    # ------------------------------------------------------------------ #
    # Credential
    # ------------------------------------------------------------------ #

    def get(self) -> StoredKey:
        """Read the stored API key; a broken store reports ``supported=False``."""
        try:
            return StoredKey(key=self._get_item(API_KEY_KEY), supported=True)
        except StorageError as e:
            logger.warning(f"Credential storage unavailable ({self.name}): {e}")
            return StoredKey(key=None, supported=False)

    def set(self, value: str) -> None:
        self._set_item(API_KEY_KEY, value)

    def clear(self) -> None:
        try:
            self._remove_item(API_KEY_KEY)
        except StorageError as e:
            logger.warning(f"Could not clear stored API key ({self.name}): {e}")

    # ------------------------------------------------------------------ #
    # Favorites and recent series
    # ------------------------------------------------------------------ #

    def _get_list(self, key: str) -> list[str]:
        try:
            raw = self._get_item(key)
        except StorageError as e:
            logger.warning(f"Could not read {key} ({self.name}): {e}")
            return []
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding malformed {key} list")
            return []
        return [str(item) for item in items] if isinstance(items, list) else []

    def _set_list(self, key: str, items: list[str]) -> None:
        self._set_item(key, json.dumps(items))

    def get_favorites(self) -> list[str]:
        return self._get_list(FAVORITES_KEY)

    def add_favorite(self, series_id: str) -> None:
        """Put a series at the top of the favorites if it is not there already."""
        favorites = self.get_favorites()
        if series_id in favorites:
            return
        favorites.insert(0, series_id)
        self._set_list(FAVORITES_KEY, favorites[:FAVORITES_LIMIT])

    def remove_favorite(self, series_id: str) -> None:
        favorites = [s for s in self.get_favorites() if s != series_id]
        self._set_list(FAVORITES_KEY, favorites)

    def get_recent(self) -> list[str]:
        return self._get_list(RECENT_KEY)

    def add_recent(self, series_id: str) -> None:
        """Move a series to the top of the recent list."""
        recent = [s for s in self.get_recent() if s != series_id]
        recent.insert(0, series_id)
        self._set_list(RECENT_KEY, recent[:RECENT_LIMIT])


class MemoryStore(CredentialStore):
    """Process-local store. ``supported=False`` models a host without storage."""

    def __init__(self, supported: bool = True) -> None:
        self.supported = supported
        self._items: dict[str, str] = {}

    @property
    def name(self) -> str:
        return "memory"

    def _check(self) -> None:
        if not self.supported:
            raise StorageError("Storage not available")

    def _get_item(self, key: str) -> str | None:
        self._check()
        return self._items.get(key)

    def _set_item(self, key: str, value: str) -> None:
        self._check()
        self._items[key] = value

    def _remove_item(self, key: str) -> None:
        self._check()
        self._items.pop(key, None)


class SqliteStore(CredentialStore):
    """SQLite-backed store persisted under the settings directory."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._initialized = False

    @property
    def name(self) -> str:
        return "sqlite"

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection, creating the schema on first use."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            if not self._initialized:
                with conn:
                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS settings (
                            key TEXT PRIMARY KEY,
                            value TEXT NOT NULL,
                            updated_at TEXT NOT NULL
                        )
                    """)
                self._initialized = True
            return conn
        except (OSError, sqlite3.Error) as e:
            raise StorageError(str(e)) from e

    def _get_item(self, key: str) -> str | None:
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT value FROM settings WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e
        finally:
            conn.close()
        return row["value"] if row else None

    def _set_item(self, key: str, value: str) -> None:
        conn = self._get_connection()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO settings (key, value, updated_at)
                    VALUES (?, ?, ?)
                    """,
                    (key, value, datetime.now().isoformat()),
                )
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e
        finally:
            conn.close()

    def _remove_item(self, key: str) -> None:
        conn = self._get_connection()
        try:
            with conn:
                conn.execute("DELETE FROM settings WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e
        finally:
            conn.close()


def get_store(name: str = "sqlite", settings: Settings | None = None) -> CredentialStore:
    """
    Return a store instance by name.

    Raises ``KeyError`` if *name* is not registered.
    Available names: memory, sqlite
    """
    if name == "memory":
        return MemoryStore()
    if name == "sqlite":
        return SqliteStore((settings or Settings()).store_path)
    raise KeyError(f"Unknown store '{name}'. Available: memory, sqlite")
