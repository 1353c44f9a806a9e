"""Spreadsheet formula functions: DSIQ, DSIQ_LATEST, DSIQ_VALUE, DSIQ_YOY, DSIQ_META."""

import logging
from typing import Any

from datasetiq_bridge.config.settings import CONNECT_MESSAGE
from datasetiq_bridge.data.errors import (
    ApiKeyRequired,
    DateRequired,
    FetchError,
    FieldRequired,
    MetadataNotFound,
    SeriesIdRequired,
    StorageError,
    ValueNotAvailable,
    classify,
)
from datasetiq_bridge.data.fetcher import SeriesFetcher
from datasetiq_bridge.data.inputs import DateInput, normalize_date_input, normalize_optional_string
from datasetiq_bridge.data.shaping import to_table, with_truncation_notice
from datasetiq_bridge.data.store import CredentialStore
from datasetiq_bridge.models.series import (
    FetchResult,
    MetadataResponse,
    Mode,
    ObservationsResponse,
    SeriesPreview,
    SeriesRequest,
)


logger = logging.getLogger(__name__)

VALUE_NOT_AVAILABLE = "Value not available."


class SeriesFunctions:
    """
    The formula layer's view of the API.

    Each call reads the credential from the store, fetches, and either returns
    a spreadsheet-ready value or raises a ``DataSetIQError`` whose message is
    shown in the cell. When the store is unsupported every call returns
    ``CONNECT_MESSAGE`` instead.
    """

    def __init__(self, store: CredentialStore, fetcher: SeriesFetcher | None = None) -> None:
        self.store = store
        self.fetcher = fetcher or SeriesFetcher()

    def _fetch(self, request: SeriesRequest) -> FetchResult:
        result = self.fetcher.fetch(request)
        if result.error:
            raise FetchError(result.error)
        try:
            self.store.add_recent(request.series_id)
        except StorageError as e:
            logger.warning(f"Could not record recent series: {e}")
        return result

    @staticmethod
    def _require_series(series_id: Any) -> str:
        series = normalize_optional_string(series_id)
        if not series:
            raise SeriesIdRequired()
        return series

    def _scalar(self, request: SeriesRequest) -> float:
        result = self._fetch(request)
        response = result.response
        if not isinstance(response, ObservationsResponse) or response.scalar is None:
            raise ValueNotAvailable(classify(None, result.status, VALUE_NOT_AVAILABLE))
        return response.scalar

    def table(
        self, series_id: Any, frequency: Any = None, start_date: DateInput = None
    ) -> list[list[Any]] | str:
        """DSIQ: full Date/Value table, most recent first."""
        series = self._require_series(series_id)
        stored = self.store.get()
        if not stored.supported:
            return CONNECT_MESSAGE

        result = self._fetch(
            SeriesRequest(
                series_id=series,
                mode=Mode.TABLE,
                api_key=stored.key,
                freq=normalize_optional_string(frequency),
                start=normalize_date_input(start_date),
            )
        )
        data = result.response.data if isinstance(result.response, ObservationsResponse) else []
        return with_truncation_notice(to_table(data), len(data), bool(stored.key))

    def latest(self, series_id: Any) -> float | str:
        """DSIQ_LATEST: most recent observation value."""
        series = self._require_series(series_id)
        stored = self.store.get()
        if not stored.supported:
            return CONNECT_MESSAGE
        return self._scalar(SeriesRequest(series, Mode.LATEST, api_key=stored.key))

    def value(self, series_id: Any, date: DateInput) -> float | str:
        """DSIQ_VALUE: observation value on (or up to) a date."""
        normalized_date = normalize_date_input(date)
        if not normalized_date:
            raise DateRequired()
        series = self._require_series(series_id)
        stored = self.store.get()
        if not stored.supported:
            return CONNECT_MESSAGE
        return self._scalar(
            SeriesRequest(series, Mode.VALUE, api_key=stored.key, date=normalized_date)
        )

    def yoy(self, series_id: Any) -> float | str:
        """DSIQ_YOY: year-over-year change, computed upstream."""
        series = self._require_series(series_id)
        stored = self.store.get()
        if not stored.supported:
            return CONNECT_MESSAGE
        return self._scalar(SeriesRequest(series, Mode.YOY, api_key=stored.key))

    def meta(self, series_id: Any, field_name: Any) -> str:
        """DSIQ_META: one metadata field, e.g. ``title`` or ``units``."""
        series = normalize_optional_string(series_id)
        normalized_field = normalize_optional_string(field_name)
        if not series:
            raise SeriesIdRequired()
        if not normalized_field:
            raise FieldRequired()
        stored = self.store.get()
        if not stored.supported:
            return CONNECT_MESSAGE

        result = self._fetch(SeriesRequest(series, Mode.META, api_key=stored.key))
        meta = result.response.meta if isinstance(result.response, MetadataResponse) else {}
        if normalized_field not in meta:
            raise MetadataNotFound(normalized_field)
        value = meta[normalized_field]
        return "" if value is None else str(value)

    # ------------------------------------------------------------------ #
    # Sidebar helpers
    # ------------------------------------------------------------------ #

    def preview(self, series_id: Any) -> SeriesPreview:
        """Latest value and metadata for a series; failures are reported, not raised."""
        series = self._require_series(series_id)
        stored = self.store.get()
        if not stored.supported:
            return SeriesPreview(series_id=series, error=CONNECT_MESSAGE)

        latest = self.fetcher.fetch(SeriesRequest(series, Mode.LATEST, api_key=stored.key))
        meta = self.fetcher.fetch(SeriesRequest(series, Mode.META, api_key=stored.key))

        preview = SeriesPreview(series_id=series, error=latest.error or meta.error)
        if isinstance(latest.response, ObservationsResponse):
            preview.latest = latest.response.scalar
            preview.is_metadata_only = latest.response.status == "metadata_only"
            preview.is_pending = latest.response.status == "ingestion_pending"
            preview.status_message = latest.response.message
        if isinstance(meta.response, MetadataResponse):
            preview.meta = dict(meta.response.meta)
        return preview

    def connect(self, api_key: Any) -> tuple[bool, str | None]:
        """Store a credential and verify it against the API."""
        key = normalize_optional_string(api_key)
        if not key:
            raise ApiKeyRequired()
        self.store.set(key)
        valid, error = self.fetcher.check_api_key(key)
        if not valid:
            return False, error or "Invalid API key. Please re-enter your API key."
        logger.info("API key verified")
        return True, None

    def disconnect(self) -> None:
        self.store.clear()
