"""Outbound n8n webhook dispatch with read caching and lifecycle events.

Every call is a POST of the JSON payload to `<base_url>/<event_type>`.
Read-type events can be served from the CacheStore; write-type events
(sending messages, creating instances, ...) always go to the network.

Transport, HTTP and parse problems are logged, announced on the EventBus
and returned on the DispatchResult. Nothing is raised past send_event().
"""

from __future__ import annotations

import hashlib
import hmac
import json
import re
from collections.abc import Callable, Mapping
from typing import Any

import httpx

from wabridge.cache import CacheStore, sanitize_key
from wabridge.config import DispatcherConfig
from wabridge.events import EventBus
from wabridge.exceptions import (
    ConfigurationError,
    ParseWarning,
    ResponseError,
    TransportError,
    ValidationError,
)
from wabridge.logging import get_logger

from .result import DispatchResult

logger = get_logger(__name__)

WritePredicate = Callable[[str, Mapping[str, Any]], bool]

CACHE_NAMESPACE = "event_"
DEFAULT_CACHE_TTL = 300
LONG_CACHE_TTL = 900

WRITE_OPERATIONS: frozenset[str] = frozenset(
    {
        "send_message",
        "create_instance",
        "delete_instance",
        "logout_instance",
        "update_profile",
        "group_create",
        "group_update",
        "group_leave",
        "restart",
        "update_settings",
    }
)
WRITE_PREFIXES: tuple[str, ...] = ("send_", "create_", "update_", "delete_", "modify_", "set_")

# Reads whose answers change slowly enough for the long TTL
AUTO_CACHE_LONG_EVENTS: frozenset[str] = frozenset({"get_status", "get_instance_info", "get_qr_code"})

_SLUG_SPACES = re.compile(r"\s+")
_SLUG_DISALLOWED = re.compile(r"[^a-z0-9_\-]")
_SLUG_DASHES = re.compile(r"-+")


def compute_signature(payload: str, secret: str) -> str:
    """Compute HMAC-SHA256 signature for a webhook payload.

    Args:
        payload: JSON string payload to sign.
        secret: Shared secret for HMAC.

    Returns:
        Signature in format "sha256=<hex_digest>".
    """
    signature = hmac.new(
        key=secret.encode("utf-8"),
        msg=payload.encode("utf-8"),
        digestmod=hashlib.sha256,
    ).hexdigest()
    return f"sha256={signature}"


def verify_signature(payload: str, secret: str, signature: str) -> bool:
    """Check a "sha256=<hex>" signature in constant time."""
    expected = compute_signature(payload, secret)
    return hmac.compare_digest(expected, signature or "")


def default_is_write_operation(event_type: str, payload: Mapping[str, Any] | None = None) -> bool:
    """Default read/write classification of an event type.

    The payload is accepted so custom predicates share the signature; the
    default rule only looks at the name.
    """
    return event_type in WRITE_OPERATIONS or event_type.startswith(WRITE_PREFIXES)


def slugify_event_type(event_type: str) -> str:
    """URL path segment for an event type ("Get Status" -> "get-status")."""
    slug = _SLUG_SPACES.sub("-", event_type.strip().lower())
    slug = _SLUG_DISALLOWED.sub("", slug)
    return _SLUG_DASHES.sub("-", slug).strip("-")


def canonical_json(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def build_cache_key(event_type: str, payload: Mapping[str, Any]) -> str:
    """Deterministic cache key: event_<event type>_<sha256 of canonical payload>."""
    digest = hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()
    return f"{CACHE_NAMESPACE}{sanitize_key(event_type)}_{digest}"


class WebhookDispatcher:
    """Sends events to n8n.

    Example:
        ```python
        dispatcher = WebhookDispatcher(config, cache, events)

        result = await dispatcher.send_event("get_status", {"sessionName": "vendor_42"}, use_cache=True)
        if result.success:
            print(result.data)

        dispatcher.invalidate_cache("get_status")
        ```

    Args:
        config: n8n connection settings.
        cache: Cache for read-type responses.
        events: Bus receiving lifecycle events.
        is_write_operation: Replaces the default read/write classification.
        transport: httpx transport override (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        config: DispatcherConfig,
        cache: CacheStore,
        events: EventBus,
        is_write_operation: WritePredicate | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._cache = cache
        self._events = events
        self._is_write = is_write_operation or default_is_write_operation
        self._transport = transport

    @property
    def config(self) -> DispatcherConfig:
        return self._config

    def is_write_operation(self, event_type: str, payload: Mapping[str, Any] | None = None) -> bool:
        return bool(self._is_write(event_type, payload or {}))

    def build_url(self, event_type: str) -> str:
        return self._config.base_url.rstrip("/") + "/" + slugify_event_type(event_type)

    def build_headers(self, event_type: str, body: str) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "X-WWEA-Event": event_type,
        }
        if self._config.auth_token:
            headers["Authorization"] = f"Bearer {self._config.auth_token}"
        if self._config.shared_secret:
            headers["X-WWEA-SECRET"] = self._config.shared_secret
            headers["X-WWEA-Signature"] = compute_signature(body, self._config.shared_secret)
        return headers

    async def send_event(
        self,
        event_type: str,
        payload: Mapping[str, Any] | None = None,
        use_cache: bool = False,
        cache_ttl: int = DEFAULT_CACHE_TTL,
    ) -> DispatchResult:
        """Dispatch one event to n8n.

        Args:
            event_type: Event name, also the URL path segment.
            payload: JSON-serializable body.
            use_cache: Serve and store the response in the cache. Ignored
                for write operations.
            cache_ttl: Lifetime of a cached response in seconds.

        Returns:
            DispatchResult describing the outcome.
        """
        payload = dict(payload or {})

        if not self._config.is_configured:
            error = ConfigurationError("n8n base URL is not configured")
            logger.error("Webhook dispatch skipped", event_type=event_type, error=error.message)
            return DispatchResult.failure(event_type, error)

        try:
            body = json.dumps(payload)
        except (TypeError, ValueError) as e:
            logger.error("Payload is not JSON-serializable", event_type=event_type, error=str(e))
            return DispatchResult.failure(event_type, ValidationError("payload", str(e)))

        url = self.build_url(event_type)
        self._events.trigger_event(
            "before_send", {"event_type": event_type, "payload": payload, "url": url}
        )

        cache_key: str | None = None
        if use_cache and not self.is_write_operation(event_type, payload):
            cache_key = build_cache_key(event_type, payload)
            sentinel = object()
            cached = self._cache.get(cache_key, sentinel)
            if cached is not sentinel:
                logger.debug("Webhook response served from cache", event_type=event_type, cache_key=cache_key)
                self._events.trigger_event("cache_hit", {"event_type": event_type, "cache_key": cache_key})
                return DispatchResult(event_type=event_type, success=True, data=cached, from_cache=True)
            self._events.trigger_event("cache_miss", {"event_type": event_type, "cache_key": cache_key})

        logger.info("Sending webhook", event_type=event_type, url=url)

        try:
            async with httpx.AsyncClient(
                timeout=self._config.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(
                    url,
                    content=body,
                    headers=self.build_headers(event_type, body),
                )
        except (httpx.RequestError, httpx.InvalidURL) as e:
            error = TransportError(f"Request to n8n failed: {e}", event_type=event_type)
            logger.error("Webhook request failed", event_type=event_type, url=url, error=str(e))
            self._events.trigger_event("request_error", {"event_type": event_type, "error": str(e)})
            return DispatchResult.failure(event_type, error)

        if not response.is_success:
            response_error = ResponseError(response.status_code, response.text)
            logger.warning(
                "Webhook rejected",
                event_type=event_type,
                url=url,
                status_code=response.status_code,
                body=response.text[:200],
            )
            self._events.trigger_event(
                "http_error",
                {"event_type": event_type, "http_code": response.status_code, "body": response.text},
            )
            return DispatchResult.failure(event_type, response_error)

        try:
            data = response.json()
        except ValueError:
            warning = ParseWarning("n8n response is not valid JSON")
            logger.warning(
                "Webhook response is not JSON",
                event_type=event_type,
                status_code=response.status_code,
                body=response.text[:200],
            )
            self._events.trigger_event(
                "invalid_response", {"event_type": event_type, "body": response.text}
            )
            return DispatchResult(
                event_type=event_type, success=True, data=response.text, raw=True, warning=warning
            )

        if cache_key is not None and self._cache.set(cache_key, data, cache_ttl):
            self._events.trigger_event(
                "cache_set", {"event_type": event_type, "cache_key": cache_key, "ttl": cache_ttl}
            )

        logger.info("Webhook delivered", event_type=event_type, status_code=response.status_code)
        self._events.trigger_event("request_success", {"event_type": event_type, "response": data})
        return DispatchResult(event_type=event_type, success=True, data=data)

    async def send_event_with_auto_cache(
        self, event_type: str, payload: Mapping[str, Any] | None = None
    ) -> DispatchResult:
        """send_event() with caching decided by the read/write classification."""
        use_cache = not self.is_write_operation(event_type, payload)
        ttl = LONG_CACHE_TTL if event_type in AUTO_CACHE_LONG_EVENTS else DEFAULT_CACHE_TTL
        return await self.send_event(event_type, payload, use_cache=use_cache, cache_ttl=ttl)

    def invalidate_cache(self, event_type: str = "") -> int:
        """Drop cached responses of one event type, or all of them."""
        prefix = CACHE_NAMESPACE
        if event_type:
            prefix += sanitize_key(event_type) + "_"
        count = self._cache.delete_by_prefix(prefix)
        self._events.trigger_event("cache_cleared", {"event_type": event_type, "count": count})
        return count
