"""Outbound webhook dispatch to n8n.

Provides HMAC-signed POSTs with read-response caching and lifecycle events.

Example:
    ```python
    from wabridge.webhooks import WebhookDispatcher

    dispatcher = WebhookDispatcher(config, cache, events)
    result = await dispatcher.send_event_with_auto_cache("get_status", {"sessionName": "vendor_42"})
    data = result.unwrap()
    ```
"""

from .dispatcher import (
    AUTO_CACHE_LONG_EVENTS,
    WRITE_OPERATIONS,
    WRITE_PREFIXES,
    WebhookDispatcher,
    WritePredicate,
    build_cache_key,
    canonical_json,
    compute_signature,
    default_is_write_operation,
    slugify_event_type,
    verify_signature,
)
from .result import DispatchResult

__all__ = [
    "AUTO_CACHE_LONG_EVENTS",
    "DispatchResult",
    "WRITE_OPERATIONS",
    "WRITE_PREFIXES",
    "WebhookDispatcher",
    "WritePredicate",
    "build_cache_key",
    "canonical_json",
    "compute_signature",
    "default_is_write_operation",
    "slugify_event_type",
    "verify_signature",
]
