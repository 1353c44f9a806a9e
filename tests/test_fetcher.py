"""Tests for the series fetcher: URLs, retry policy, and response normalisation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import pytest

from conftest import BASE_URL, json_response, observations
from datasetiq_bridge.data.errors import RATE_LIMITED_MESSAGE, SERVER_UNAVAILABLE_MESSAGE
from datasetiq_bridge.data.fetcher import SeriesFetcher, compute_retry_delay
from datasetiq_bridge.models import (
    MetadataResponse,
    Mode,
    ObservationsResponse,
    RawResponse,
    SeriesRequest,
)


def _req(mode: Mode = Mode.TABLE, **kwargs) -> SeriesRequest:
    return SeriesRequest(series_id=kwargs.pop("series_id", "GDP"), mode=mode, **kwargs)


# -----------------------------------------------------------------------
# URL construction
# -----------------------------------------------------------------------


class TestBuildUrl:
    def test_data_request_without_key(self, fetcher: SeriesFetcher) -> None:
        url, params = fetcher.build_url(_req(start="2020-01-01", date="2021-01-01"))
        assert url == f"{BASE_URL}/api/public/series/GDP/data"
        assert params == {"start": "2020-01-01", "end": "2021-01-01", "limit": "100"}

    def test_data_request_with_key_gets_larger_limit(self, fetcher: SeriesFetcher) -> None:
        _, params = fetcher.build_url(_req(api_key="k"))
        assert params == {"limit": "1000"}

    def test_meta_request_has_no_params(self, fetcher: SeriesFetcher) -> None:
        url, params = fetcher.build_url(_req(Mode.META, api_key="k", start="2020-01-01"))
        assert url == f"{BASE_URL}/api/public/series/GDP"
        assert params == {}

    def test_series_id_is_escaped(self, fetcher: SeriesFetcher) -> None:
        url, _ = fetcher.build_url(_req(series_id="A/B C"))
        assert url == f"{BASE_URL}/api/public/series/A%2FB%20C/data"

    def test_bearer_header_only_with_key(self, fetcher: SeriesFetcher, upstream) -> None:
        upstream.queue(json_response(body={"data": []}), json_response(body={"data": []}))
        fetcher.fetch(_req(api_key="secret"))
        fetcher.fetch(_req())
        assert upstream.requests[0].headers["Authorization"] == "Bearer secret"
        assert "Authorization" not in upstream.requests[1].headers
        assert upstream.requests[1].url.params["limit"] == "100"


# -----------------------------------------------------------------------
# Retry policy
# -----------------------------------------------------------------------


class TestRetry:
    def test_success_is_not_retried(self, fetcher, upstream, sleeps) -> None:
        upstream.queue(json_response(body={"data": observations(3)}))
        result = fetcher.fetch(_req())
        assert result.ok
        assert upstream.calls == 1
        assert sleeps == []

    def test_503_then_200_succeeds_after_two_calls(self, fetcher, upstream, sleeps) -> None:
        upstream.queue(
            json_response(503),
            json_response(body={"data": observations(2)}),
        )
        result = fetcher.fetch(_req(Mode.LATEST))
        assert result.error is None
        assert result.status == 200
        assert result.response.scalar == 1.0
        assert upstream.calls == 2
        assert sleeps == [0.5]

    def test_503_twice_is_server_unavailable_and_never_three_calls(self, fetcher, upstream) -> None:
        upstream.queue(json_response(503), json_response(503), json_response(200))
        result = fetcher.fetch(_req())
        assert result.error == SERVER_UNAVAILABLE_MESSAGE
        assert result.response is None
        assert result.status == 503
        assert upstream.calls == 2

    def test_429_then_400_returns_classified_400(self, fetcher, upstream) -> None:
        upstream.queue(
            json_response(429),
            json_response(400, {"error": {"code": "BAD_REQUEST", "message": "Bad start date"}}),
        )
        result = fetcher.fetch(_req())
        assert result.error == "Bad start date"
        assert upstream.calls == 2

    def test_429_twice_is_rate_limited(self, fetcher, upstream) -> None:
        upstream.queue(json_response(429), json_response(429))
        assert fetcher.fetch(_req()).error == RATE_LIMITED_MESSAGE

    def test_non_retryable_fails_immediately(self, fetcher, upstream, sleeps) -> None:
        upstream.queue(json_response(401, {"error": {"code": "INVALID_KEY", "message": "nope"}}))
        result = fetcher.fetch(_req(api_key="bad"))
        assert result.error.startswith("Invalid API Key")
        assert result.status == 401
        assert result.headers is not None
        assert upstream.calls == 1
        assert sleeps == []

    def test_retry_after_seconds_honoured(self, fetcher, upstream, sleeps) -> None:
        upstream.queue(
            json_response(429, headers={"Retry-After": "3"}),
            json_response(body={"data": []}),
        )
        fetcher.fetch(_req())
        assert sleeps == [3.0]

    def test_network_error_retried_once(self, fetcher, upstream, sleeps) -> None:
        upstream.queue(
            httpx.ConnectError("connection refused"),
            json_response(body={"data": observations(1)}),
        )
        result = fetcher.fetch(_req())
        assert result.ok
        assert upstream.calls == 2
        assert sleeps == [0.5]

    def test_network_error_twice_returns_error(self, fetcher, upstream) -> None:
        upstream.queue(httpx.ConnectError("connection refused"), httpx.ReadTimeout("timed out"))
        result = fetcher.fetch(_req())
        assert result.error == "timed out"
        assert result.status == 0
        assert upstream.calls == 2

    def test_network_error_without_message_uses_generic(self, fetcher, upstream) -> None:
        upstream.queue(httpx.ConnectError(""), httpx.ConnectError(""))
        assert fetcher.fetch(_req()).error == "Unable to fetch data."

    def test_credential_that_cannot_be_sent_is_a_network_failure(self, fetcher, upstream, sleeps) -> None:
        result = fetcher.fetch(_req(api_key="kéy"))
        assert not result.ok
        assert result.error
        assert result.status == 0
        assert sleeps == [0.5]
        assert upstream.calls == 0

    def test_error_after_network_failure_not_retried_again(self, fetcher, upstream) -> None:
        upstream.queue(httpx.ConnectError("down"), json_response(503), json_response(200))
        result = fetcher.fetch(_req())
        assert result.error == SERVER_UNAVAILABLE_MESSAGE
        assert upstream.calls == 2

    def test_embedded_error_in_2xx_is_a_failure(self, fetcher, upstream) -> None:
        upstream.queue(json_response(200, {"error": {"code": "FREE_LIMIT", "message": "x"}}))
        result = fetcher.fetch(_req())
        assert result.error.startswith("Free plan limit reached")
        assert upstream.calls == 1


class TestComputeRetryDelay:
    NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def test_no_header_backs_off_exponentially(self) -> None:
        assert compute_retry_delay({}, 0) == 0.5
        assert compute_retry_delay(None, 1) == 1.0

    def test_numeric_header(self) -> None:
        assert compute_retry_delay({"retry-after": "2"}, 0) == 2.0
        assert compute_retry_delay({"Retry-After": "0"}, 0) == 0.0

    def test_future_http_date(self) -> None:
        when = format_datetime(self.NOW + timedelta(seconds=10), usegmt=True)
        assert compute_retry_delay({"Retry-After": when}, 0, now=self.NOW) == 10.0

    def test_past_http_date_falls_back(self) -> None:
        when = format_datetime(self.NOW - timedelta(seconds=10), usegmt=True)
        assert compute_retry_delay({"Retry-After": when}, 0, now=self.NOW) == 0.5

    @pytest.mark.parametrize("value", ["soon", "nan", ""])
    def test_garbage_falls_back(self, value) -> None:
        assert compute_retry_delay({"Retry-After": value}, 0) == 0.5


# -----------------------------------------------------------------------
# Response transformation
# -----------------------------------------------------------------------


class TestTransform:
    def test_table_keeps_upstream_order_without_scalar(self) -> None:
        body = {"seriesId": "GDP", "data": observations(3)}
        response = SeriesFetcher.transform(Mode.TABLE, body)
        assert isinstance(response, ObservationsResponse)
        assert response.data == [("2000-01-01", 0.0), ("2000-02-01", 1.0), ("2000-03-01", 2.0)]
        assert response.series_id == "GDP"
        assert response.scalar is None

    def test_latest_takes_last(self) -> None:
        assert SeriesFetcher.transform(Mode.LATEST, {"data": observations(3)}).scalar == 2.0

    def test_value_takes_first(self) -> None:
        assert SeriesFetcher.transform(Mode.VALUE, {"data": observations(3)}).scalar == 0.0

    def test_yoy_has_no_scalar(self) -> None:
        assert SeriesFetcher.transform(Mode.YOY, {"data": observations(3)}).scalar is None

    def test_upstream_scalar_without_observations(self) -> None:
        response = SeriesFetcher.transform(Mode.YOY, {"seriesId": "GDP", "scalar": 2.1})
        assert response == ObservationsResponse(data=[], series_id="GDP", scalar=2.1)

    def test_empty_list_has_no_scalar(self) -> None:
        assert SeriesFetcher.transform(Mode.LATEST, {"data": []}).scalar is None

    @pytest.mark.parametrize("mode", [Mode.LATEST, Mode.VALUE])
    def test_upstream_scalar_ignored_for_latest_and_value(self, mode) -> None:
        assert SeriesFetcher.transform(mode, {"data": [], "scalar": 5}).scalar is None
        assert SeriesFetcher.transform(mode, {"scalar": 5}).scalar is None

    def test_status_fields_echoed(self) -> None:
        body = {"data": [], "status": "ingestion_pending", "message": "Queued"}
        response = SeriesFetcher.transform(Mode.LATEST, body)
        assert response.status == "ingestion_pending"
        assert response.message == "Queued"

    def test_meta_surfaces_dataset(self) -> None:
        response = SeriesFetcher.transform(Mode.META, {"dataset": {"title": "GDP"}})
        assert response == MetadataResponse(meta={"title": "GDP"})

    def test_dataset_ignored_outside_meta_mode(self) -> None:
        response = SeriesFetcher.transform(Mode.TABLE, {"dataset": {"title": "GDP"}})
        assert isinstance(response, RawResponse)

    def test_unknown_shapes_pass_through(self) -> None:
        assert SeriesFetcher.transform(Mode.META, {"hello": 1}) == RawResponse({"hello": 1})
        assert SeriesFetcher.transform(Mode.TABLE, [1, 2]) == RawResponse([1, 2])

    def test_non_json_success_body(self, fetcher, upstream) -> None:
        upstream.queue(httpx.Response(200, content=b"<html>"))
        result = fetcher.fetch(_req())
        assert result.response == RawResponse({})


# -----------------------------------------------------------------------
# Search, browse, key check, ingestion
# -----------------------------------------------------------------------


class TestSearchAndBrowse:
    RESULTS = {
        "results": [
            {"id": "GDP", "title": "Gross Domestic Product", "frequency": "Q", "source": "FRED"},
            "junk",
        ]
    }

    def test_search(self, fetcher, upstream) -> None:
        upstream.queue(json_response(body=self.RESULTS))
        results = fetcher.search("gdp", api_key="k", source="fred")
        assert [r.id for r in results] == ["GDP"]
        assert results[0].frequency == "Q"
        request = upstream.requests[0]
        assert request.url.path == "/api/public/search"
        assert request.url.params["q"] == "gdp"
        assert request.url.params["source"] == "FRED"
        assert request.headers["Authorization"] == "Bearer k"

    def test_empty_query_makes_no_call(self, fetcher, upstream) -> None:
        assert fetcher.search("") == []
        assert upstream.calls == 0

    def test_browse_normalises_source_alias(self, fetcher, upstream) -> None:
        upstream.queue(json_response(body={"results": []}))
        assert fetcher.browse("world-bank") == []
        assert upstream.requests[0].url.params["source"] == "WORLDBANK"
        assert upstream.requests[0].url.params["limit"] == "50"

    def test_failures_return_empty_without_retry(self, fetcher, upstream, sleeps) -> None:
        upstream.queue(json_response(503), httpx.ConnectError("down"), json_response(body={}))
        assert fetcher.search("gdp") == []
        assert fetcher.search("gdp") == []
        assert fetcher.search("gdp") == []
        assert upstream.calls == 3
        assert sleeps == []

    def test_unsendable_credential_returns_empty(self, fetcher, upstream) -> None:
        assert fetcher.search("gdp", api_key="kéy") == []
        assert fetcher.browse("FRED", api_key="kéy") == []
        assert upstream.calls == 0


class TestCheckApiKey:
    def test_missing_key(self, fetcher, upstream) -> None:
        assert fetcher.check_api_key(None) == (False, "No API key provided")
        assert upstream.calls == 0

    @pytest.mark.parametrize("status", [401, 403])
    def test_rejected(self, fetcher, upstream, status) -> None:
        upstream.queue(json_response(status))
        assert fetcher.check_api_key("k") == (False, "Invalid API Key")

    def test_valid(self, fetcher, upstream) -> None:
        upstream.queue(json_response(body={"results": []}))
        assert fetcher.check_api_key("k") == (True, None)
        assert upstream.requests[0].url.params["limit"] == "1"

    def test_network_failure(self, fetcher, upstream) -> None:
        upstream.queue(httpx.ConnectError("down"))
        assert fetcher.check_api_key("k") == (False, "down")

    def test_unsendable_credential_is_invalid(self, fetcher, upstream) -> None:
        valid, message = fetcher.check_api_key("kéy")
        assert not valid
        assert message
        assert upstream.calls == 0


class TestRequestIngestion:
    def test_queued(self, fetcher, upstream) -> None:
        upstream.queue(json_response(202, {"ok": True}))
        result = fetcher.request_ingestion("GDP", api_key="k")
        assert result.queued
        request = upstream.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/datasets/GDP/fetch"

    def test_auth_required(self, fetcher, upstream) -> None:
        upstream.queue(json_response(200, {"requiresAuth": True}))
        result = fetcher.request_ingestion("GDP")
        assert not result.queued
        assert "Authentication required" in result.message

    def test_monthly_limit(self, fetcher, upstream) -> None:
        upstream.queue(json_response(429, {"remaining": 0, "limit": 5}))
        assert "(0/5)" in fetcher.request_ingestion("GDP").message

    def test_other_failure(self, fetcher, upstream) -> None:
        upstream.queue(json_response(500, {"error": "boom"}))
        assert fetcher.request_ingestion("GDP").message == "⚠️ boom"

    def test_unsendable_credential_is_not_queued(self, fetcher, upstream) -> None:
        result = fetcher.request_ingestion("GDP", api_key="kéy")
        assert not result.queued
        assert result.message.startswith("⚠️")
        assert upstream.calls == 0
