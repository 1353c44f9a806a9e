"""Shared fixtures: a mock HTTP upstream and fetchers wired to it."""

from __future__ import annotations

from typing import Callable

import httpx
import pytest

from datasetiq_bridge.config import Settings
from datasetiq_bridge.data.fetcher import SeriesFetcher
from datasetiq_bridge.data.store import MemoryStore
from datasetiq_bridge.functions import SeriesFunctions

BASE_URL = "https://api.test"

Handler = Callable[[httpx.Request], httpx.Response]


class Upstream:
    """Replays scripted responses and records every request it receives."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._responses: list[httpx.Response | Exception] = []
        self.handler: Handler | None = None

    def queue(self, *responses: httpx.Response | Exception) -> "Upstream":
        self._responses.extend(responses)
        return self

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.handler is not None:
            return self.handler(request)
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def calls(self) -> int:
        return len(self.requests)


def json_response(status_code: int = 200, body=None, headers=None) -> httpx.Response:
    return httpx.Response(status_code=status_code, json=body if body is not None else {}, headers=headers)


def observations(n: int, start_year: int = 2000) -> list[dict]:
    """``n`` monthly observations in ascending order."""
    return [
        {"date": f"{start_year + i // 12}-{i % 12 + 1:02d}-01", "value": float(i)}
        for i in range(n)
    ]


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(base_url=BASE_URL, api_key="", store_dir=tmp_path)


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fetcher(settings: Settings, upstream: Upstream, sleeps: list[float]) -> SeriesFetcher:
    client = httpx.Client(transport=httpx.MockTransport(upstream))
    with SeriesFetcher(settings, client=client, sleep=sleeps.append) as f:
        yield f
    client.close()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def functions(store: MemoryStore, fetcher: SeriesFetcher) -> SeriesFunctions:
    return SeriesFunctions(store, fetcher)
