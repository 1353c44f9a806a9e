"""Configuration settings for the DataSetIQ bridge."""

from dataclasses import dataclass, field
from pathlib import Path
import os

from dotenv import load_dotenv


load_dotenv()


# API layout
SERIES_PATH = "/api/public/series/"
SERIES_DATA_PATH = "/data"
SEARCH_PATH = "/api/public/search"
INGEST_PATH = "/api/datasets/{series_id}/fetch"

# Result-size tiers: unauthenticated requests are capped upstream
FREE_TIER_LIMIT = 100
AUTH_TIER_LIMIT = 1000
BROWSE_LIMIT = 50

# Local list bounds
FAVORITES_LIMIT = 50
RECENT_LIMIT = 20

CONNECT_MESSAGE = "Please open DataSetIQ sidebar to connect."
HEADER_ROW = ["Date", "Value"]

TRUNCATION_NOTICE: list[list[str]] = [
    ["", ""],
    [f"⚠️ Free tier limited to {FREE_TIER_LIMIT} most recent observations", ""],
    ["Upgrade for full access: datasetiq.com/pricing", ""],
]

# Upstream sources available for browsing
SOURCES: dict[str, str] = {
    "FRED": "FRED (Federal Reserve)",
    "BLS": "BLS (Bureau of Labor Statistics)",
    "OECD": "OECD",
    "EUROSTAT": "Eurostat",
    "IMF": "IMF",
    "WORLDBANK": "World Bank",
    "ECB": "ECB (European Central Bank)",
    "BOE": "Bank of England",
    "CENSUS": "US Census Bureau",
    "EIA": "EIA (Energy Information)",
}

# Alternate spellings seen in formulas and templates
SOURCE_ALIASES: dict[str, str] = {
    "WORLD_BANK": "WORLDBANK",
    "WB": "WORLDBANK",
    "BANK_OF_ENGLAND": "BOE",
    "US_CENSUS": "CENSUS",
}


def normalize_source(source: str | None) -> str | None:
    """Map a source identifier or alias to its canonical id."""
    if source is None:
        return None
    key = source.strip().upper().replace("-", "_").replace(" ", "_")
    if not key:
        return None
    return SOURCE_ALIASES.get(key, key)


@dataclass
class Settings:
    """Application settings."""

    base_url: str = field(
        default_factory=lambda: os.getenv("DATASETIQ_BASE_URL", "https://www.datasetiq.com")
    )
    api_key: str = field(default_factory=lambda: os.getenv("DATASETIQ_API_KEY", ""))
    store_dir: Path = field(
        default_factory=lambda: Path(
            os.getenv("DATASETIQ_HOME", str(Path.home() / ".datasetiq"))
        )
    )
    timeout: float = 30.0
    store_path: Path = field(init=False)

    def __post_init__(self) -> None:
        self.base_url = self.base_url.rstrip("/")
        self.store_dir = Path(self.store_dir)
        self.store_path = self.store_dir / "datasetiq.db"

    def validate(self) -> None:
        """Validate required settings."""
        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError(
                f"DATASETIQ_BASE_URL must be an http(s) URL, got {self.base_url!r}"
            )

    def has_api_key(self) -> bool:
        """Check if a seed API key is configured."""
        return bool(self.api_key)
