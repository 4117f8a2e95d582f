"""FastAPI router for wabridge API endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from wabridge import __version__
from wabridge.logging import get_logger

from .auth import ContainerDep, CurrentVendor, VerifiedVendor, nonce_action, verify_shared_secret
from .deps import current_container
from .schemas import (
    HealthResponse,
    NonceResponse,
    QrCodeResponse,
    SendMessageRequest,
    SendMessageResponse,
    SessionStatusResponse,
    StatusUpdateRequest,
    StatusUpdateResponse,
    WhatsAppNumberRequest,
    WhatsAppNumberResponse,
)

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Check service health.

    Degraded means the service runs but no n8n base URL is configured,
    so every outbound call would fail.
    """
    container = current_container()
    if container is None:
        return HealthResponse(status="unhealthy", version=__version__)

    configured = container.dispatcher.config.is_configured
    return HealthResponse(
        status="healthy" if configured else "degraded",
        version=__version__,
        dispatcher_configured=configured,
        cache=container.cache.get_stats(),
    )


@router.post(
    "/status-update",
    response_model=StatusUpdateResponse,
    dependencies=[Depends(verify_shared_secret)],
    tags=["webhooks"],
)
async def status_update(request: StatusUpdateRequest, container: ContainerDep) -> StatusUpdateResponse:
    """Receive a connection status update from n8n.

    Authenticated with the X-WWEA-SECRET header. Returns 400 for an
    instance name that does not follow vendor_<id>_whatsapp_instance and
    404 when the ID is not a vendor.
    """
    result = container.service.handle_status_update(
        request.instance_name, request.status, request.connection_info
    )
    return StatusUpdateResponse(
        success=result.success, vendor_id=result.vendor_id, new_status=result.new_status
    )


@router.get("/vendor/nonce", response_model=NonceResponse, tags=["vendor"])
async def issue_nonce(vendor: CurrentVendor, container: ContainerDep) -> NonceResponse:
    """Issue an anti-forgery token for the vendor's next requests."""
    token = container.secrets.generate_token(
        nonce_action(vendor.vendor_id), container.settings.token_ttl_seconds
    )
    logger.debug("Nonce issued", vendor_id=vendor.vendor_id)
    return NonceResponse(nonce=token.token, expiry=token.expiry)


@router.get("/vendor/qr", response_model=QrCodeResponse, tags=["vendor"])
async def request_qr_code(vendor: VerifiedVendor, container: ContainerDep) -> QrCodeResponse:
    """Request a new QR code for the vendor's WhatsApp session."""
    result = await container.service.request_qr_code(vendor.vendor_id)
    return QrCodeResponse(status=result.status, qr_code_data=result.qr_code_data, data=result.data)


@router.get("/vendor/estado-sesion", response_model=SessionStatusResponse, tags=["vendor"])
async def session_status(
    vendor: VerifiedVendor,
    container: ContainerDep,
    refresh: Annotated[bool, Query(description="Bypass the status cache")] = False,
) -> SessionStatusResponse:
    """Current WhatsApp session status of the vendor."""
    result = await container.service.check_session_status(vendor.vendor_id, force_refresh=refresh)
    return SessionStatusResponse(
        current_status=result.status,
        qr_code_data=result.qr_code_data,
        from_cache=result.from_cache,
        data=result.data,
    )


@router.post("/vendor/enviar-mensaje", response_model=SendMessageResponse, tags=["vendor"])
async def send_message(
    request: SendMessageRequest, vendor: VerifiedVendor, container: ContainerDep
) -> SendMessageResponse:
    """Send a WhatsApp message from the vendor's session."""
    result = await container.service.send_message(vendor.vendor_id, request.to, request.message)
    return SendMessageResponse(to=result.to, data=result.data)


@router.post("/vendor/whatsapp-number", response_model=WhatsAppNumberResponse, tags=["vendor"])
async def save_whatsapp_number(
    request: WhatsAppNumberRequest, vendor: VerifiedVendor, container: ContainerDep
) -> WhatsAppNumberResponse:
    """Store the vendor's WhatsApp number."""
    number = container.service.save_whatsapp_number(vendor.vendor_id, request.whatsapp_number)
    return WhatsAppNumberResponse(whatsapp_number=number)
