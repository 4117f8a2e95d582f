"""Vendor WhatsApp sessions.

Example:
    ```python
    from wabridge.vendors import VendorSessionStore, VendorWhatsAppService

    sessions = VendorSessionStore(store)
    service = VendorWhatsAppService(dispatcher, sessions, events, directory)

    await service.request_qr_code(42)
    sessions.get_vendor_settings(42).qr_code_data
    ```
"""

from .directory import InMemoryVendorDirectory, VendorDirectory
from .models import (
    PHONE_PATTERN,
    ConnectionStatus,
    MessageResult,
    QrCodeResult,
    SessionStatusResult,
    StatusUpdateResult,
    VendorSession,
    normalize_status,
    validate_phone_number,
)
from .service import VendorWhatsAppService
from .sessions import (
    VendorSessionStore,
    get_instance_name,
    get_session_name,
    vendor_id_from_instance_name,
)

__all__ = [
    "PHONE_PATTERN",
    "ConnectionStatus",
    "InMemoryVendorDirectory",
    "MessageResult",
    "QrCodeResult",
    "SessionStatusResult",
    "StatusUpdateResult",
    "VendorDirectory",
    "VendorSession",
    "VendorSessionStore",
    "VendorWhatsAppService",
    "get_instance_name",
    "get_session_name",
    "normalize_status",
    "validate_phone_number",
    "vendor_id_from_instance_name",
]
