"""Wiring of the wabridge components.

Every component takes its collaborators through its constructor; this
module is the one place that builds them from Settings.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from wabridge.cache import CacheCleanupScheduler, CacheStore
from wabridge.config import Settings, resolve_dispatcher_config
from wabridge.events import EventBus
from wabridge.logging import get_logger
from wabridge.security import SecretStore
from wabridge.storage import KeyValueStore, create_store
from wabridge.vendors import (
    InMemoryVendorDirectory,
    VendorDirectory,
    VendorSessionStore,
    VendorWhatsAppService,
)
from wabridge.webhooks import WebhookDispatcher

logger = get_logger(__name__)


@dataclass
class Container:
    """All long-lived components of one wabridge process."""

    settings: Settings
    store: KeyValueStore
    cache: CacheStore
    events: EventBus
    secrets: SecretStore
    dispatcher: WebhookDispatcher
    sessions: VendorSessionStore
    directory: VendorDirectory
    service: VendorWhatsAppService
    scheduler: CacheCleanupScheduler

    def close(self) -> None:
        close = getattr(self.store, "close", None)
        if callable(close):
            close()


def build_container(
    settings: Settings,
    store: KeyValueStore | None = None,
    directory: VendorDirectory | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Container:
    """Build every component from settings.

    Args:
        settings: Process settings.
        store: Key-value store override. Built from settings when None.
        directory: Vendor lookup override. Seeded from settings.vendor_ids when None.
        transport: httpx transport for the dispatcher (tests).
    """
    store = store if store is not None else create_store(settings)
    cache = CacheStore(store, prefix=settings.cache_prefix, default_ttl=settings.cache_default_ttl)
    events = EventBus()
    secrets = SecretStore(
        store,
        cache,
        master_key=settings.master_key,
        salt=settings.effective_secret_salt,
    )
    dispatcher = WebhookDispatcher(
        resolve_dispatcher_config(settings, secrets),
        cache,
        events,
        transport=transport,
    )
    sessions = VendorSessionStore(store)
    directory = directory if directory is not None else InMemoryVendorDirectory(settings.vendor_ids)
    service = VendorWhatsAppService(
        dispatcher,
        sessions,
        events,
        directory,
        status_cache_ttl=settings.status_cache_ttl,
    )
    scheduler = CacheCleanupScheduler(cache, settings.cache_cleanup_interval_seconds)

    logger.info(
        "Components initialized",
        storage_backend=settings.storage_backend,
        dispatcher_configured=dispatcher.config.is_configured,
    )
    return Container(
        settings=settings,
        store=store,
        cache=cache,
        events=events,
        secrets=secrets,
        dispatcher=dispatcher,
        sessions=sessions,
        directory=directory,
        service=service,
        scheduler=scheduler,
    )
