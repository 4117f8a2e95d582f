"""Vendor session models.

Contains:
- ConnectionStatus: last known WhatsApp connection state
- VendorSession: everything persisted for one vendor
- Result models returned by VendorWhatsAppService operations
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from wabridge.exceptions import ValidationError

PHONE_PATTERN = re.compile(r"^\+?\d{7,}$")


class ConnectionStatus(str, Enum):
    """WhatsApp connection state of a vendor session."""

    DISCONNECTED = "disconnected"
    PENDING_QR_SCAN = "pending_qr_scan"  # QR requested, waiting for n8n
    QRCODE = "qrcode"  # Gateway is showing a QR to scan
    CONNECTED = "connected"
    ERROR = "error"
    UNKNOWN = "unknown"


def normalize_status(value: Any) -> ConnectionStatus:
    """Map a gateway status ("CONNECTED", "qrcode", ...) onto ConnectionStatus.

    Anything unrecognized becomes UNKNOWN.
    """
    if isinstance(value, ConnectionStatus):
        return value
    try:
        return ConnectionStatus(str(value or "").strip().lower())
    except ValueError:
        return ConnectionStatus.UNKNOWN


def validate_phone_number(value: str, field: str = "to") -> str:
    """Return the stripped number or raise ValidationError."""
    phone = (value or "").strip()
    if not PHONE_PATTERN.match(phone):
        raise ValidationError(field, "must be digits with an optional leading '+', at least 7 digits")
    return phone


class VendorSession(BaseModel):
    """Persisted WhatsApp state of one vendor.

    Attributes:
        vendor_id: Marketplace user ID of the vendor.
        session_name: Gateway session name derived from vendor_id.
        connection_status: Last known connection state.
        qr_code_data: QR code URL or base64 image, empty when none.
        whatsapp_number: Number the vendor registered.
        connection_info: Details reported by n8n.
        last_update_timestamp: Unix time of the last inbound status update.
    """

    model_config = ConfigDict(extra="forbid")

    vendor_id: int
    session_name: str
    connection_status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    qr_code_data: str = ""
    whatsapp_number: str = ""
    connection_info: dict[str, Any] = Field(default_factory=dict)
    last_update_timestamp: int = 0

    @property
    def is_connected(self) -> bool:
        return self.connection_status == ConnectionStatus.CONNECTED


class QrCodeResult(BaseModel):
    """Outcome of a QR code request."""

    model_config = ConfigDict(extra="forbid")

    vendor_id: int
    status: ConnectionStatus
    qr_code_data: str = ""
    data: Any = None


class SessionStatusResult(BaseModel):
    """Outcome of a session status check."""

    model_config = ConfigDict(extra="forbid")

    vendor_id: int
    status: ConnectionStatus
    qr_code_data: str = ""
    from_cache: bool = False
    data: Any = None


class MessageResult(BaseModel):
    """Outcome of a message send request."""

    model_config = ConfigDict(extra="forbid")

    vendor_id: int
    to: str
    data: Any = None


class StatusUpdateResult(BaseModel):
    """Outcome of an inbound status webhook."""

    model_config = ConfigDict(extra="forbid")

    success: bool = True
    vendor_id: int
    new_status: ConnectionStatus
