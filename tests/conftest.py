"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import json
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from wabridge.cache import CacheStore
from wabridge.config import DispatcherConfig
from wabridge.events import EventBus
from wabridge.security import SecretStore
from wabridge.storage import InMemoryStore
from wabridge.vendors import InMemoryVendorDirectory, VendorSessionStore, VendorWhatsAppService
from wabridge.webhooks import WebhookDispatcher

# Add tests directory to path so helpers can be imported from conftest
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

N8N_BASE_URL = "https://n8n.example/webhook"
SHARED_SECRET = "test_shared_secret"
AUTH_TOKEN = "n8n_token_123"


class FakeClock:
    """Controllable time source for stores, cache and tokens."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class N8nStub:
    """Records outbound requests and answers them like n8n would.

    By default every request gets `200 {"data": {}}`. Set `response` to a
    dict (JSON body), a str (raw body), an httpx.Response or an exception
    instance to raise.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.response: Any = {"data": {}}
        self.status_code = 200

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        if isinstance(self.response, httpx.Response):
            return self.response
        if isinstance(self.response, str):
            return httpx.Response(self.status_code, text=self.response)
        return httpx.Response(self.status_code, json=self.response)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def last_json(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)


class EventRecorder:
    """Subscribes to events and keeps what they carried."""

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self.received: list[tuple[str, Any]] = []

    def listen(self, *events: str) -> EventRecorder:
        for event in events:
            self._bus.add_observer(event, self._make_callback(event))
        return self

    def _make_callback(self, event: str) -> Callable[[Any], None]:
        def callback(data: Any) -> None:
            self.received.append((event, data))

        return callback

    def names(self) -> list[str]:
        return [name for name, _ in self.received]

    def data_for(self, event: str) -> list[Any]:
        return [data for name, data in self.received if name == event]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture
def cache(store: InMemoryStore, clock: FakeClock) -> CacheStore:
    return CacheStore(store, prefix="wabridge_", default_ttl=3600, clock=clock)


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(events: EventBus) -> EventRecorder:
    return EventRecorder(events)


@pytest.fixture
def secret_store(store: InMemoryStore, cache: CacheStore, clock: FakeClock) -> SecretStore:
    return SecretStore(store, cache, salt="test_salt", clock=clock)


@pytest.fixture
def dispatcher_config() -> DispatcherConfig:
    return DispatcherConfig(
        base_url=N8N_BASE_URL,
        auth_token=AUTH_TOKEN,
        shared_secret=SHARED_SECRET,
    )


@pytest.fixture
def n8n() -> N8nStub:
    return N8nStub()


@pytest.fixture
def dispatcher(
    dispatcher_config: DispatcherConfig, cache: CacheStore, events: EventBus, n8n: N8nStub
) -> WebhookDispatcher:
    return WebhookDispatcher(dispatcher_config, cache, events, transport=n8n.transport)


@pytest.fixture
def sessions(store: InMemoryStore, clock: FakeClock) -> VendorSessionStore:
    return VendorSessionStore(store, clock=clock)


@pytest.fixture
def directory() -> InMemoryVendorDirectory:
    return InMemoryVendorDirectory([42, 7])


@pytest.fixture
def service(
    dispatcher: WebhookDispatcher,
    sessions: VendorSessionStore,
    events: EventBus,
    directory: InMemoryVendorDirectory,
) -> VendorWhatsAppService:
    return VendorWhatsAppService(dispatcher, sessions, events, directory, status_cache_ttl=60)
