"""Unit tests for the n8n webhook dispatcher."""

from __future__ import annotations

import json

import httpx
import pytest

from conftest import AUTH_TOKEN, N8N_BASE_URL, SHARED_SECRET, EventRecorder, FakeClock, N8nStub
from wabridge.cache import CacheStore
from wabridge.config import DispatcherConfig
from wabridge.events import EventBus
from wabridge.exceptions import (
    ConfigurationError,
    ParseWarning,
    ResponseError,
    TransportError,
    ValidationError,
)
from wabridge.webhooks import (
    DispatchResult,
    WebhookDispatcher,
    build_cache_key,
    compute_signature,
    default_is_write_operation,
    slugify_event_type,
    verify_signature,
)


class TestSignatures:
    """HMAC helpers."""

    def test_compute_signature_format(self) -> None:
        signature = compute_signature('{"a":1}', "secret")
        assert signature.startswith("sha256=")
        assert len(signature) == len("sha256=") + 64

    def test_verify_signature(self) -> None:
        signature = compute_signature("payload", "secret")
        assert verify_signature("payload", "secret", signature) is True
        assert verify_signature("payload", "other", signature) is False
        assert verify_signature("tampered", "secret", signature) is False
        assert verify_signature("payload", "secret", "") is False


class TestWriteClassification:
    """default_is_write_operation and the injectable predicate."""

    @pytest.mark.parametrize(
        "event_type",
        ["send_message", "create_instance", "update_settings", "restart", "group_leave", "set_presence", "modify_x"],
    )
    def test_writes(self, event_type: str) -> None:
        assert default_is_write_operation(event_type, {}) is True

    @pytest.mark.parametrize(
        "event_type", ["get_status", "get_qr_code", "session_status", "qr_generation", "message_send"]
    )
    def test_reads(self, event_type: str) -> None:
        assert default_is_write_operation(event_type, {}) is False

    def test_predicate_override(
        self, dispatcher_config: DispatcherConfig, cache: CacheStore, events: EventBus
    ) -> None:
        def predicate(event_type: str, payload: dict) -> bool:
            return event_type == "get_status" or payload.get("mutates", False)

        dispatcher = WebhookDispatcher(dispatcher_config, cache, events, is_write_operation=predicate)

        assert dispatcher.is_write_operation("get_status") is True
        assert dispatcher.is_write_operation("send_message") is False
        assert dispatcher.is_write_operation("anything", {"mutates": True}) is True


class TestCacheKey:
    """Deterministic cache keys."""

    def test_deterministic(self) -> None:
        payload = {"sessionName": "vendor_42", "vendorId": 42}
        assert build_cache_key("get_status", payload) == build_cache_key("get_status", dict(payload))

    def test_key_order_irrelevant(self) -> None:
        assert build_cache_key("e", {"a": 1, "b": 2}) == build_cache_key("e", {"b": 2, "a": 1})

    def test_payload_changes_key(self) -> None:
        assert build_cache_key("e", {"vendorId": 1}) != build_cache_key("e", {"vendorId": 2})

    def test_event_type_changes_key(self) -> None:
        assert build_cache_key("a", {}) != build_cache_key("b", {})

    def test_format(self) -> None:
        key = build_cache_key("Get Status", {})
        prefix, digest = key.rsplit("_", 1)
        assert prefix == "event_getstatus"
        assert len(digest) == 64


class TestSlugify:
    def test_plain(self) -> None:
        assert slugify_event_type("qr_generation") == "qr_generation"

    def test_spaces_and_case(self) -> None:
        assert slugify_event_type("  Get  Status ") == "get-status"

    def test_strips_unsafe(self) -> None:
        assert slugify_event_type("../admin?x=1") == "adminx1"


class TestSendEvent:
    """send_event request construction and outcomes."""

    @pytest.mark.asyncio
    async def test_request_shape(self, dispatcher: WebhookDispatcher, n8n: N8nStub) -> None:
        """POST to <base>/<event> with JSON body and all headers."""
        payload = {"eventType": "qr_generation", "sessionName": "vendor_42", "vendorId": 42}
        await dispatcher.send_event("qr_generation", payload)

        request = n8n.requests[0]
        assert request.method == "POST"
        assert str(request.url) == f"{N8N_BASE_URL}/qr_generation"
        assert json.loads(request.content) == payload
        assert request.headers["content-type"] == "application/json"
        assert request.headers["authorization"] == f"Bearer {AUTH_TOKEN}"
        assert request.headers["x-wwea-secret"] == SHARED_SECRET
        assert request.headers["x-wwea-event"] == "qr_generation"
        assert verify_signature(
            request.content.decode(), SHARED_SECRET, request.headers["x-wwea-signature"]
        )

    @pytest.mark.asyncio
    async def test_trailing_slash_in_base_url(
        self, cache: CacheStore, events: EventBus, n8n: N8nStub
    ) -> None:
        config = DispatcherConfig(base_url=N8N_BASE_URL + "/")
        dispatcher = WebhookDispatcher(config, cache, events, transport=n8n.transport)
        await dispatcher.send_event("get_status", {})
        assert str(n8n.requests[0].url) == f"{N8N_BASE_URL}/get_status"

    @pytest.mark.asyncio
    async def test_optional_headers_omitted(
        self, cache: CacheStore, events: EventBus, n8n: N8nStub
    ) -> None:
        """Without token or secret, only the basic headers should be sent."""
        dispatcher = WebhookDispatcher(
            DispatcherConfig(base_url=N8N_BASE_URL), cache, events, transport=n8n.transport
        )
        await dispatcher.send_event("get_status", {})

        headers = n8n.requests[0].headers
        assert "authorization" not in headers
        assert "x-wwea-secret" not in headers
        assert "x-wwea-signature" not in headers

    @pytest.mark.asyncio
    async def test_success(self, dispatcher: WebhookDispatcher, n8n: N8nStub, recorder: EventRecorder) -> None:
        recorder.listen("before_send", "request_success")
        n8n.response = {"data": {"status": "connected"}}

        result = await dispatcher.send_event("get_status", {"vendorId": 1})

        assert isinstance(result, DispatchResult)
        assert result.success is True
        assert result.data == {"data": {"status": "connected"}}
        assert result.from_cache is False
        assert result.raw is False
        assert result.unwrap() == {"data": {"status": "connected"}}
        assert recorder.names() == ["before_send", "request_success"]
        assert recorder.data_for("before_send")[0] == {
            "event_type": "get_status",
            "payload": {"vendorId": 1},
            "url": f"{N8N_BASE_URL}/get_status",
        }
        assert recorder.data_for("request_success")[0]["response"] == result.data

    @pytest.mark.asyncio
    async def test_not_configured(
        self, cache: CacheStore, events: EventBus, n8n: N8nStub, recorder: EventRecorder
    ) -> None:
        """A missing base URL should fail before any event or network call."""
        recorder.listen("before_send", "request_error")
        dispatcher = WebhookDispatcher(DispatcherConfig(), cache, events, transport=n8n.transport)

        result = await dispatcher.send_event("get_status", {})

        assert result.success is False
        assert isinstance(result.error, ConfigurationError)
        assert n8n.calls == 0
        assert recorder.received == []
        with pytest.raises(ConfigurationError):
            result.unwrap()

    @pytest.mark.asyncio
    async def test_unserializable_payload(self, dispatcher: WebhookDispatcher, n8n: N8nStub) -> None:
        result = await dispatcher.send_event("get_status", {"bad": object()})
        assert isinstance(result.error, ValidationError)
        assert n8n.calls == 0

    @pytest.mark.asyncio
    async def test_transport_error(
        self, dispatcher: WebhookDispatcher, n8n: N8nStub, recorder: EventRecorder
    ) -> None:
        recorder.listen("request_error")
        n8n.response = httpx.ConnectError("connection refused")

        result = await dispatcher.send_event("get_status", {})

        assert result.success is False
        assert isinstance(result.error, TransportError)
        assert result.error.event_type == "get_status"
        assert len(recorder.data_for("request_error")) == 1

    @pytest.mark.asyncio
    async def test_timeout_is_transport_error(self, dispatcher: WebhookDispatcher, n8n: N8nStub) -> None:
        n8n.response = httpx.ReadTimeout("timed out")
        result = await dispatcher.send_event("get_status", {})
        assert isinstance(result.error, TransportError)

    @pytest.mark.asyncio
    async def test_http_error(
        self, dispatcher: WebhookDispatcher, n8n: N8nStub, recorder: EventRecorder
    ) -> None:
        recorder.listen("http_error", "request_success")
        n8n.status_code = 500
        n8n.response = "Internal Server Error"

        result = await dispatcher.send_event("get_status", {})

        assert result.success is False
        assert isinstance(result.error, ResponseError)
        assert result.error.http_code == 500
        assert result.error.body == "Internal Server Error"
        assert recorder.names() == ["http_error"]
        assert recorder.data_for("http_error")[0]["http_code"] == 500

    @pytest.mark.asyncio
    async def test_non_json_success_returns_raw_body(
        self, dispatcher: WebhookDispatcher, n8n: N8nStub, recorder: EventRecorder
    ) -> None:
        """A 2xx non-JSON body should be a success carrying the raw string."""
        recorder.listen("invalid_response", "request_success")
        n8n.response = "Workflow was started"

        result = await dispatcher.send_event("get_status", {})

        assert result.success is True
        assert result.raw is True
        assert result.data == "Workflow was started"
        assert isinstance(result.warning, ParseWarning)
        assert result.error is None
        assert recorder.names() == ["invalid_response"]

    @pytest.mark.asyncio
    async def test_non_json_never_cached(self, dispatcher: WebhookDispatcher, n8n: N8nStub) -> None:
        n8n.response = "plain text"
        await dispatcher.send_event("get_status", {}, use_cache=True)
        await dispatcher.send_event("get_status", {}, use_cache=True)
        assert n8n.calls == 2


class TestCaching:
    """Read caching in send_event."""

    @pytest.mark.asyncio
    async def test_cached_read_single_network_call(
        self, dispatcher: WebhookDispatcher, n8n: N8nStub, recorder: EventRecorder
    ) -> None:
        """Two identical cached reads within the TTL should hit n8n once."""
        recorder.listen("cache_miss", "cache_set", "cache_hit")
        n8n.response = {"data": {"status": "open"}}
        payload = {"sessionName": "vendor_42"}

        first = await dispatcher.send_event("get_status", payload, use_cache=True)
        second = await dispatcher.send_event("get_status", payload, use_cache=True)

        assert n8n.calls == 1
        assert first.data == second.data
        assert first.from_cache is False
        assert second.from_cache is True
        assert recorder.names() == ["cache_miss", "cache_set", "cache_hit"]

    @pytest.mark.asyncio
    async def test_cache_expires(
        self, dispatcher: WebhookDispatcher, n8n: N8nStub, clock: FakeClock
    ) -> None:
        await dispatcher.send_event("get_status", {}, use_cache=True, cache_ttl=30)
        clock.advance(31)
        await dispatcher.send_event("get_status", {}, use_cache=True, cache_ttl=30)
        assert n8n.calls == 2

    @pytest.mark.asyncio
    async def test_different_payload_not_shared(self, dispatcher: WebhookDispatcher, n8n: N8nStub) -> None:
        await dispatcher.send_event("get_status", {"vendorId": 1}, use_cache=True)
        await dispatcher.send_event("get_status", {"vendorId": 2}, use_cache=True)
        assert n8n.calls == 2

    @pytest.mark.asyncio
    async def test_write_operations_never_cached(self, dispatcher: WebhookDispatcher, n8n: N8nStub) -> None:
        await dispatcher.send_event("send_message", {"to": "1"}, use_cache=True)
        await dispatcher.send_event("send_message", {"to": "1"}, use_cache=True)
        assert n8n.calls == 2

    @pytest.mark.asyncio
    async def test_without_use_cache(self, dispatcher: WebhookDispatcher, n8n: N8nStub) -> None:
        await dispatcher.send_event("get_status", {})
        await dispatcher.send_event("get_status", {})
        assert n8n.calls == 2

    @pytest.mark.asyncio
    async def test_errors_not_cached(self, dispatcher: WebhookDispatcher, n8n: N8nStub) -> None:
        n8n.status_code = 503
        await dispatcher.send_event("get_status", {}, use_cache=True)
        n8n.status_code = 200
        result = await dispatcher.send_event("get_status", {}, use_cache=True)
        assert n8n.calls == 2
        assert result.success is True

    @pytest.mark.asyncio
    async def test_auto_cache_ttls(
        self, dispatcher: WebhookDispatcher, n8n: N8nStub, clock: FakeClock
    ) -> None:
        """Allowlisted reads keep 900s, other reads 300s."""
        await dispatcher.send_event_with_auto_cache("get_status", {})
        await dispatcher.send_event_with_auto_cache("list_groups", {})
        assert n8n.calls == 2

        clock.advance(301)
        await dispatcher.send_event_with_auto_cache("get_status", {})
        await dispatcher.send_event_with_auto_cache("list_groups", {})
        assert n8n.calls == 3

        clock.advance(600)
        await dispatcher.send_event_with_auto_cache("get_status", {})
        assert n8n.calls == 4

    @pytest.mark.asyncio
    async def test_auto_cache_skips_writes(self, dispatcher: WebhookDispatcher, n8n: N8nStub) -> None:
        await dispatcher.send_event_with_auto_cache("create_instance", {})
        await dispatcher.send_event_with_auto_cache("create_instance", {})
        assert n8n.calls == 2


class TestInvalidateCache:
    """invalidate_cache."""

    @pytest.mark.asyncio
    async def test_by_event_type(
        self, dispatcher: WebhookDispatcher, n8n: N8nStub, recorder: EventRecorder
    ) -> None:
        recorder.listen("cache_cleared")
        await dispatcher.send_event("qr_generation", {"v": 1}, use_cache=True)
        await dispatcher.send_event("qr_generation", {"v": 2}, use_cache=True)
        await dispatcher.send_event("session_status", {"v": 1}, use_cache=True)

        assert dispatcher.invalidate_cache("qr_generation") == 2

        await dispatcher.send_event("session_status", {"v": 1}, use_cache=True)
        assert n8n.calls == 3
        assert recorder.data_for("cache_cleared") == [{"event_type": "qr_generation", "count": 2}]

    @pytest.mark.asyncio
    async def test_all(self, dispatcher: WebhookDispatcher, cache: CacheStore) -> None:
        cache.set("unrelated", 1)
        await dispatcher.send_event("get_status", {}, use_cache=True)
        await dispatcher.send_event("session_status", {}, use_cache=True)

        assert dispatcher.invalidate_cache() == 2
        assert cache.get("unrelated") == 1
