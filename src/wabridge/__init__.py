"""wabridge: WhatsApp sessions for marketplace vendors, through n8n.

Vendors generate QR codes, check their connection status and send test
messages; n8n talks to the WhatsApp gateway and pushes status updates
back. Outbound calls go through a caching webhook dispatcher, state lives
in a pluggable key-value store.

Quick Start:
    from wabridge import Settings, build_container

    container = build_container(Settings())

    result = await container.service.request_qr_code(42)
    print(result.qr_code_data)

    session = container.sessions.get_vendor_settings(42)
    print(session.connection_status)

Components:
    - CacheStore: expiring cache with registry-based bulk invalidation
    - EventBus: priority-ordered observers for named events
    - SecretStore: per-context encryption of secrets at rest, tokens
    - WebhookDispatcher: outbound n8n calls with read caching
    - VendorWhatsAppService: vendor operations and inbound webhooks
"""

__version__ = "0.1.0"

# Configuration
from .config import DispatcherConfig, Settings, resolve_dispatcher_config, settings

# Components
from .cache import CacheCleanupScheduler, CacheStats, CacheStore
from .container import Container, build_container
from .events import STANDARD_EVENTS, EventBus

# Exceptions
from .exceptions import (
    AuthenticationError,
    AuthError,
    AuthorizationError,
    ConfigError,
    ConfigurationError,
    NotFoundError,
    ParseWarning,
    ResponseError,
    StorageError,
    TransportError,
    ValidationError,
    WABridgeError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)
from .security import SecretStore, TokenData
from .storage import InMemoryStore, KeyValueStore, SQLiteStore
from .vendors import (
    ConnectionStatus,
    InMemoryVendorDirectory,
    VendorSession,
    VendorSessionStore,
    VendorWhatsAppService,
)
from .webhooks import DispatchResult, WebhookDispatcher

__all__ = [
    # Version
    "__version__",
    # Configuration
    "DispatcherConfig",
    "Settings",
    "resolve_dispatcher_config",
    "settings",
    # Components
    "CacheCleanupScheduler",
    "CacheStats",
    "CacheStore",
    "ConnectionStatus",
    "Container",
    "DispatchResult",
    "EventBus",
    "InMemoryStore",
    "InMemoryVendorDirectory",
    "KeyValueStore",
    "SQLiteStore",
    "STANDARD_EVENTS",
    "SecretStore",
    "TokenData",
    "VendorSession",
    "VendorSessionStore",
    "VendorWhatsAppService",
    "WebhookDispatcher",
    "build_container",
    # Exceptions
    "AuthError",
    "AuthenticationError",
    "AuthorizationError",
    "ConfigError",
    "ConfigurationError",
    "NotFoundError",
    "ParseWarning",
    "ResponseError",
    "StorageError",
    "TransportError",
    "ValidationError",
    "WABridgeError",
    # Logging
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "unbind_context",
]
