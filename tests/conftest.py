"""Pytest configuration and fixtures."""

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from qbo_client.client import QuickBooksClient
from qbo_client.config import Settings
from qbo_client.models import RequestContext

REALM_ID = "9130355"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingHandler:
    """MockTransport handler that records requests and delegates the response."""

    def __init__(self, respond: Callable[[httpx.Request], Any]) -> None:
        self.respond = respond
        self.requests: list[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.respond(request)
        if not isinstance(response, httpx.Response):
            response = await response
        return response

    @property
    def calls(self) -> int:
        return len(self.requests)

    def json_bodies(self) -> list[Any]:
        return [json.loads(r.content) for r in self.requests]


def json_response(data: Any, status_code: int = 200, **kwargs: Any) -> httpx.Response:
    return httpx.Response(status_code, json=data, **kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Settings with roomy throughput so tests only hit the limit they target."""
    return Settings(
        global_burst=100,
        realm_burst=100,
        global_max_concurrent=10,
        realm_max_concurrent=10,
    )


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext(realm_id=REALM_ID, token="test-access-token")


@pytest.fixture
def make_client(
    settings: Settings, clock: FakeClock
) -> Callable[..., tuple[QuickBooksClient, RecordingHandler]]:
    """Factory building a client whose transport is a recording MockTransport."""
    def factory(
        respond: Callable[[httpx.Request], Any],
        client_settings: Settings | None = None,
        client_clock: Callable[[], float] | None = None,
    ) -> tuple[QuickBooksClient, RecordingHandler]:
        handler = RecordingHandler(respond)
        client = QuickBooksClient(
            settings=client_settings or settings,
            transport=httpx.MockTransport(handler),
            clock=client_clock or clock,
        )
        return client, handler

    return factory

