"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from wabridge.cache import CacheStats
from wabridge.vendors import ConnectionStatus


class StatusUpdateRequest(BaseModel):
    """Status pushed by n8n for a gateway instance.

    Attributes:
        instance_name: Gateway instance, "vendor_<id>_whatsapp_instance".
        status: New connection status (connected, disconnected, qrcode, ...).
        connection_info: Extra details from the gateway.
    """

    # n8n flows may forward more fields than we use
    model_config = ConfigDict(extra="ignore")

    instance_name: str = Field(min_length=1, description="Gateway instance name")
    status: str = Field(min_length=1, description="New connection status")
    connection_info: dict[str, Any] = Field(default_factory=dict)


class StatusUpdateResponse(BaseModel):
    """Response for an accepted status update."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    vendor_id: int
    new_status: ConnectionStatus


class NonceResponse(BaseModel):
    """Anti-forgery token to send back as X-WP-Nonce."""

    model_config = ConfigDict(extra="forbid")

    nonce: str
    expiry: int = Field(description="Unix time after which the nonce is rejected")


class QrCodeResponse(BaseModel):
    """Response for a QR code request.

    Attributes:
        success: Always True; failures are reported through error responses.
        status: Vendor status after the request (pending_qr_scan).
        qr_code_data: QR code URL or base64 image, empty if n8n sent none.
        data: Full n8n response.
    """

    model_config = ConfigDict(extra="forbid")

    success: bool = True
    status: ConnectionStatus
    qr_code_data: str = ""
    data: Any = None


class SessionStatusResponse(BaseModel):
    """Response for a session status check."""

    model_config = ConfigDict(extra="forbid")

    success: bool = True
    current_status: ConnectionStatus
    qr_code_data: str = ""
    from_cache: bool = False
    data: Any = None


class SendMessageRequest(BaseModel):
    """Request body for sending a test message."""

    model_config = ConfigDict(extra="forbid")

    to: str = Field(min_length=1, description="Recipient phone number, e.g. +5491112345678")
    message: str = Field(min_length=1, description="Message text")


class SendMessageResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool = True
    to: str
    data: Any = None


class WhatsAppNumberRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    whatsapp_number: str = Field(min_length=1)


class WhatsAppNumberResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool = True
    whatsapp_number: str


class HealthResponse(BaseModel):
    """Response for health check endpoint.

    Attributes:
        status: Service status (healthy, degraded, unhealthy).
        version: API version.
        dispatcher_configured: Whether an n8n base URL is configured.
        cache: Cache registry statistics, when available.
    """

    model_config = ConfigDict(extra="forbid")

    status: Literal["healthy", "degraded", "unhealthy"]
    version: str
    dispatcher_configured: bool = False
    cache: CacheStats | None = None
