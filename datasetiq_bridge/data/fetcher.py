"""DataSetIQ API client with bounded retry and response normalization."""

import logging
import math
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Mapping
from urllib.parse import quote

import httpx

from datasetiq_bridge.config.settings import (
    AUTH_TIER_LIMIT,
    BROWSE_LIMIT,
    FREE_TIER_LIMIT,
    INGEST_PATH,
    SEARCH_PATH,
    SERIES_DATA_PATH,
    SERIES_PATH,
    Settings,
    normalize_source,
)
from datasetiq_bridge.data.errors import classify
from datasetiq_bridge.models.series import (
    ErrorCode,
    FetchResult,
    IngestionResult,
    MetadataResponse,
    Mode,
    ObservationsResponse,
    RawResponse,
    SearchResult,
    SeriesRequest,
    SeriesResponse,
)


logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 2
BASE_BACKOFF = 0.5  # seconds, doubled per attempt

# Raised while building or sending a request; a credential that is not
# header-safe surfaces as UnicodeEncodeError, a ValueError.
REQUEST_ERRORS = (httpx.HTTPError, httpx.InvalidURL, ValueError)


def backoff_delay(attempt: int) -> float:
    """Exponential fallback delay in seconds for a zero-based attempt."""
    return BASE_BACKOFF * (2**attempt)


def compute_retry_delay(
    headers: Mapping[str, str] | None, attempt: int, now: datetime | None = None
) -> float:
    """
    Seconds to wait before retrying, honouring ``Retry-After``.

    A numeric header is a seconds count. Otherwise it is parsed as an HTTP
    date and used only if it lies in the future. Anything else falls back to
    exponential backoff.
    """
    retry_after = None
    if headers:
        for key, value in headers.items():
            if key.lower() == "retry-after":
                retry_after = str(value).strip()
                break

    if retry_after:
        try:
            seconds = float(retry_after)
        except ValueError:
            seconds = None
        if seconds is not None and math.isfinite(seconds):
            return max(seconds, 0.0)
        try:
            when = parsedate_to_datetime(retry_after)
        except (TypeError, ValueError, IndexError):
            when = None
        if when is not None:
            if when.tzinfo is None:
                when = when.replace(tzinfo=timezone.utc)
            remaining = (when - (now or datetime.now(timezone.utc))).total_seconds()
            if remaining > 0:
                return remaining

    return backoff_delay(attempt)


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {}


def _to_pair(obs: Any) -> tuple[Any, Any]:
    if isinstance(obs, dict):
        return obs.get("date"), obs.get("value")
    if isinstance(obs, (list, tuple)) and len(obs) >= 2:
        return obs[0], obs[1]
    return None, None


def _auth_headers(api_key: str | None) -> dict[str, str]:
    return {"Authorization": f"Bearer {api_key}"} if api_key else {}


class SeriesFetcher:
    """Fetches series data from the DataSetIQ API."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or Settings()
        self.settings.validate()
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep

    @property
    def client(self) -> httpx.Client:
        """Lazy-initialize HTTP client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.settings.timeout)
        return self._client

    def close(self) -> None:
        """Close HTTP client if we created it."""
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def __enter__(self) -> "SeriesFetcher":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Series data
    # ------------------------------------------------------------------ #

    def build_url(self, request: SeriesRequest) -> tuple[str, dict[str, str]]:
        """Endpoint URL and query parameters for a request."""
        url = f"{self.settings.base_url}{SERIES_PATH}{quote(request.series_id, safe='')}"
        if request.mode is Mode.META:
            return url, {}

        params: dict[str, str] = {}
        if request.start:
            params["start"] = request.start
        if request.date:
            params["end"] = request.date
        params["limit"] = str(AUTH_TIER_LIMIT if request.api_key else FREE_TIER_LIMIT)
        return url + SERIES_DATA_PATH, params

    def fetch(self, request: SeriesRequest) -> FetchResult:
        """
        Fetch a series, retrying once on rate limiting, server or network errors.

        Args:
            request: Normalized request

        Returns:
            FetchResult with either a normalized response or a user-facing error
        """
        url, params = self.build_url(request)
        headers = _auth_headers(request.api_key)

        for attempt in range(MAX_ATTEMPTS):
            last_attempt = attempt == MAX_ATTEMPTS - 1
            logger.info(
                f"Fetching {request.series_id} ({request.mode.value}), attempt {attempt + 1}"
            )
            try:
                response = self.client.get(url, params=params, headers=headers)
            except REQUEST_ERRORS as e:
                if not last_attempt:
                    delay = backoff_delay(attempt)
                    logger.warning(
                        f"  Network error for {request.series_id}: {e}; retrying in {delay:.1f}s"
                    )
                    self._sleep(delay)
                    continue
                logger.warning(f"  Network error for {request.series_id}: {e}")
                return FetchResult(error=classify(None, 0, str(e) or None), status=0)

            status = response.status_code
            body = _safe_json(response)
            embedded_error = body.get("error") if isinstance(body, dict) else None

            if 200 <= status < 300 and not embedded_error:
                return FetchResult(
                    response=self.transform(request.mode, body), status=status
                )

            retryable = status == 429 or status >= 500
            if retryable and not last_attempt:
                delay = compute_retry_delay(response.headers, attempt)
                logger.warning(
                    f"  HTTP {status} for {request.series_id}; retrying in {delay:.1f}s"
                )
                self._sleep(delay)
                continue

            code = None
            fallback = None
            if isinstance(embedded_error, dict):
                code = ErrorCode.parse(embedded_error.get("code"))
                fallback = embedded_error.get("message")
            message = classify(code, status, fallback)
            logger.warning(f"  HTTP {status} for {request.series_id}: {message}")
            return FetchResult(error=message, status=status, headers=response.headers)

        # Unreachable: the final attempt always returns
        return FetchResult(error=classify(None, 0), status=0)

    @staticmethod
    def transform(mode: Mode, body: Any) -> SeriesResponse:
        """Normalize a success body into one of the response variants."""
        if not isinstance(body, dict):
            return RawResponse(body)

        if mode is Mode.META and isinstance(body.get("dataset"), dict):
            return MetadataResponse(meta=body["dataset"])

        raw_data = body.get("data")
        if isinstance(raw_data, list) or "scalar" in body:
            data = [_to_pair(obs) for obs in raw_data] if isinstance(raw_data, list) else []
            # latest/value come only from a non-empty list; yoy is computed upstream
            if mode is Mode.LATEST:
                scalar = data[-1][1] if data else None
            elif mode is Mode.VALUE:
                scalar = data[0][1] if data else None
            else:
                scalar = body.get("scalar")
            return ObservationsResponse(
                data=data,
                series_id=body.get("seriesId"),
                status=body.get("status"),
                message=body.get("message"),
                scalar=scalar,
            )

        return RawResponse(body)

    # ------------------------------------------------------------------ #
    # Search, browse and account helpers (single attempt, no retry)
    # ------------------------------------------------------------------ #

    def _get_results(self, params: dict[str, Any], api_key: str | None) -> list[SearchResult]:
        try:
            response = self.client.get(
                f"{self.settings.base_url}{SEARCH_PATH}",
                params=params,
                headers=_auth_headers(api_key),
            )
        except REQUEST_ERRORS as e:
            logger.warning(f"Search request failed: {e}")
            return []

        if not response.is_success:
            logger.warning(f"Search returned HTTP {response.status_code}")
            return []

        body = _safe_json(response)
        results = body.get("results") if isinstance(body, dict) else None
        if not isinstance(results, list):
            return []

        return [
            SearchResult(
                id=item.get("id"),
                title=item.get("title"),
                frequency=item.get("frequency"),
                units=item.get("units"),
                source=item.get("source"),
            )
            for item in results
            if isinstance(item, dict)
        ]

    def search(
        self, query: str, api_key: str | None = None, source: str | None = None
    ) -> list[SearchResult]:
        """Search series by free text, optionally within one source."""
        if not query:
            return []
        params: dict[str, Any] = {"q": query}
        source = normalize_source(source)
        if source:
            params["source"] = source
        return self._get_results(params, api_key)

    def browse(self, source: str, api_key: str | None = None) -> list[SearchResult]:
        """List series published by one source."""
        return self._get_results(
            {"source": normalize_source(source) or "", "limit": BROWSE_LIMIT}, api_key
        )

    def check_api_key(self, api_key: str | None) -> tuple[bool, str | None]:
        """
        Verify a credential with a minimal authenticated search.

        Returns:
            (valid, error message or None)
        """
        if not api_key:
            return False, "No API key provided"
        try:
            response = self.client.get(
                f"{self.settings.base_url}{SEARCH_PATH}",
                params={"q": "test", "limit": 1},
                headers=_auth_headers(api_key),
            )
        except REQUEST_ERRORS as e:
            return False, str(e) or "Unable to verify API key"

        if response.status_code in (401, 403):
            return False, "Invalid API Key"
        return response.is_success, None

    def request_ingestion(self, series_id: str, api_key: str | None = None) -> IngestionResult:
        """Ask the API to ingest the full history of a series."""
        url = self.settings.base_url + INGEST_PATH.format(series_id=quote(series_id, safe=""))
        try:
            response = self.client.post(
                url,
                headers={"Content-Type": "application/json", **_auth_headers(api_key)},
            )
        except REQUEST_ERRORS as e:
            return IngestionResult(False, f"⚠️ {str(e) or 'Failed to request ingestion'}")

        data = _safe_json(response)
        if not isinstance(data, dict):
            data = {}
        status = response.status_code

        if status == 401 or data.get("requiresAuth"):
            return IngestionResult(
                False,
                "⚠️ Authentication required. Visit datasetiq.com to sign up for full data access.",
            )
        if status == 429 or data.get("upgradeToPro"):
            remaining = data.get("remaining") or 0
            limit = data.get("limit") or FREE_TIER_LIMIT
            return IngestionResult(
                False,
                f"⚠️ Monthly limit reached ({remaining}/{limit}). "
                "Upgrade to Pro for unlimited access.",
            )
        if not response.is_success:
            return IngestionResult(False, f"⚠️ {data.get('error') or 'Failed to queue ingestion'}")

        logger.info(f"Queued ingestion for {series_id}")
        return IngestionResult(
            True, "✅ Dataset ingestion started! Data will be available in 1-2 minutes."
        )
