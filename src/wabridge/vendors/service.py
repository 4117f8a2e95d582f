"""Vendor-facing WhatsApp operations.

VendorWhatsAppService ties the dispatcher, the session store and the event
bus together for the four things a vendor can do (request a QR code, check
the session, send a test message, save a number) and for the inbound
status webhook coming back from n8n.

Dispatch failures are announced on the event bus and then raised as the
carried WABridgeError so the REST layer can turn them into responses.
"""

from __future__ import annotations

from typing import Any, NoReturn

from wabridge.events import EventBus
from wabridge.exceptions import NotFoundError, StorageError, ValidationError, WABridgeError
from wabridge.logging import get_logger
from wabridge.security import sanitize_phone_number
from wabridge.webhooks import DispatchResult, WebhookDispatcher

from .directory import VendorDirectory
from .models import (
    ConnectionStatus,
    MessageResult,
    QrCodeResult,
    SessionStatusResult,
    StatusUpdateResult,
    normalize_status,
    validate_phone_number,
)
from .sessions import VendorSessionStore, get_session_name, vendor_id_from_instance_name

logger = get_logger(__name__)

QR_GENERATION_EVENT = "qr_generation"
SESSION_STATUS_EVENT = "session_status"
MESSAGE_SEND_EVENT = "message_send"


def _response_data(result: DispatchResult) -> dict[str, Any]:
    """The `data` object of an n8n response, {} for raw or odd bodies."""
    if not isinstance(result.data, dict):
        return {}
    data = result.data.get("data")
    return data if isinstance(data, dict) else {}


def _qr_from(data: dict[str, Any], field: str) -> str:
    """A QR payload field, "" unless it is a non-empty string."""
    value = data.get(field)
    if value and not isinstance(value, str):
        logger.warning("Ignoring non-string QR code", field=field, type=type(value).__name__)
        return ""
    return value or ""


class VendorWhatsAppService:
    """WhatsApp session operations for marketplace vendors.

    Args:
        dispatcher: Outbound n8n dispatcher.
        sessions: Persisted vendor state.
        events: Event bus for lifecycle notifications.
        directory: Vendor role lookup for inbound webhooks.
        status_cache_ttl: Seconds a session status answer is reused (0 disables).
    """

    def __init__(
        self,
        dispatcher: WebhookDispatcher,
        sessions: VendorSessionStore,
        events: EventBus,
        directory: VendorDirectory,
        status_cache_ttl: int = 60,
    ) -> None:
        self._dispatcher = dispatcher
        self._sessions = sessions
        self._events = events
        self._directory = directory
        self._status_cache_ttl = status_cache_ttl

    @property
    def sessions(self) -> VendorSessionStore:
        return self._sessions

    def _base_payload(self, event_type: str, vendor_id: int) -> dict[str, Any]:
        return {
            "eventType": event_type,
            "sessionName": get_session_name(vendor_id),
            "vendorId": vendor_id,
        }

    def _fail(self, event: str, vendor_id: int, result: DispatchResult) -> NoReturn:
        error = result.error or WABridgeError("dispatch failed")
        logger.error(
            "n8n request failed",
            vendor_id=vendor_id,
            event_type=result.event_type,
            error=error.message,
        )
        self._events.trigger_event(event, {"vendor_id": vendor_id, "error": error.message})
        raise error

    def _announce_transition(
        self, vendor_id: int, previous: ConnectionStatus, current: ConnectionStatus
    ) -> None:
        if previous == current:
            return
        data = {"vendor_id": vendor_id, "previous": previous.value, "status": current.value}
        if current == ConnectionStatus.CONNECTED:
            self._events.trigger_event("session_connected", data)
        elif previous == ConnectionStatus.CONNECTED:
            self._events.trigger_event("session_disconnected", data)

    async def request_qr_code(self, vendor_id: int) -> QrCodeResult:
        """Ask n8n for a new QR code and store it.

        The status moves to pending_qr_scan and any previous QR is cleared
        before the request is sent.
        """
        payload = self._base_payload(QR_GENERATION_EVENT, vendor_id)
        logger.info("QR code requested", vendor_id=vendor_id, session_name=payload["sessionName"])

        self._events.trigger_event("before_qr_generation", {"vendor_id": vendor_id, "payload": payload})
        self._events.trigger_event("before_session_connect", {"vendor_id": vendor_id})
        self._sessions.update_setting(vendor_id, "connection_status", ConnectionStatus.PENDING_QR_SCAN)
        self._sessions.update_setting(vendor_id, "qr_code_data", "")

        result = await self._dispatcher.send_event(QR_GENERATION_EVENT, payload)
        if not result.success:
            self._fail("qr_generation_error", vendor_id, result)

        data = _response_data(result)
        qr_code = _qr_from(data, "qrCodeUrl") or _qr_from(data, "qrCodeImageBase64")
        if qr_code:
            self._sessions.update_setting(vendor_id, "qr_code_data", qr_code)
            logger.info("QR code stored", vendor_id=vendor_id, qr_data_length=len(qr_code))
        else:
            logger.warning("No QR code in n8n response", vendor_id=vendor_id, raw=result.raw)

        self._events.trigger_event("qr_generated", {"vendor_id": vendor_id, "qr_code_data": qr_code})
        return QrCodeResult(
            vendor_id=vendor_id,
            status=ConnectionStatus.PENDING_QR_SCAN,
            qr_code_data=qr_code,
            data=result.data,
        )

    async def check_session_status(
        self, vendor_id: int, force_refresh: bool = False
    ) -> SessionStatusResult:
        """Fetch the session state from n8n and persist it.

        Answers are cached for status_cache_ttl seconds unless
        force_refresh is set. The QR code is only kept while the gateway
        reports the qrcode state.
        """
        payload = self._base_payload(SESSION_STATUS_EVENT, vendor_id)
        previous = self._sessions.get_vendor_settings(vendor_id).connection_status
        self._events.trigger_event("before_status_check", {"vendor_id": vendor_id, "payload": payload})

        use_cache = not force_refresh and self._status_cache_ttl > 0
        result = await self._dispatcher.send_event(
            SESSION_STATUS_EVENT,
            payload,
            use_cache=use_cache,
            cache_ttl=self._status_cache_ttl or 1,
        )
        if not result.success:
            self._fail("status_check_error", vendor_id, result)

        data = _response_data(result)
        status = normalize_status(data.get("status"))
        self._sessions.update_setting(vendor_id, "connection_status", status)

        qr_code = _qr_from(data, "qrCodeUrl") if status == ConnectionStatus.QRCODE else ""
        self._sessions.update_setting(vendor_id, "qr_code_data", qr_code)

        logger.info(
            "Session status checked",
            vendor_id=vendor_id,
            status=status.value,
            from_cache=result.from_cache,
        )
        self._announce_transition(vendor_id, previous, status)
        self._events.trigger_event(
            "status_check_complete",
            {"vendor_id": vendor_id, "status": status.value, "from_cache": result.from_cache},
        )
        return SessionStatusResult(
            vendor_id=vendor_id,
            status=status,
            qr_code_data=qr_code,
            from_cache=result.from_cache,
            data=result.data,
        )

    async def send_message(self, vendor_id: int, to: str, message: str) -> MessageResult:
        """Send a WhatsApp message from the vendor's session.

        Raises:
            ValidationError: Malformed phone number or empty message. Nothing is sent.
        """
        phone = validate_phone_number(to)
        if not (message or "").strip():
            raise ValidationError("message", "must not be empty")

        payload = {
            **self._base_payload(MESSAGE_SEND_EVENT, vendor_id),
            "to": phone,
            "message": message,
        }
        logger.info("Message send requested", vendor_id=vendor_id, to=phone)
        self._events.trigger_event("before_message_send", {"vendor_id": vendor_id, "to": phone})

        result = await self._dispatcher.send_event(MESSAGE_SEND_EVENT, payload)
        if not result.success:
            self._fail("message_send_error", vendor_id, result)

        self._events.trigger_event(
            "message_sent", {"vendor_id": vendor_id, "to": phone, "response": result.data}
        )
        return MessageResult(vendor_id=vendor_id, to=phone, data=result.data)

    def save_whatsapp_number(self, vendor_id: int, number: str) -> str:
        """Validate and store the vendor's WhatsApp number."""
        phone = validate_phone_number(sanitize_phone_number(number), field="whatsapp_number")
        if not self._sessions.update_setting(vendor_id, "whatsapp_number", phone):
            raise StorageError(f"could not store whatsapp_number for vendor {vendor_id}")
        logger.info("WhatsApp number saved", vendor_id=vendor_id)
        return phone

    def handle_status_update(
        self,
        instance_name: str,
        status: str,
        connection_info: dict[str, Any] | None = None,
    ) -> StatusUpdateResult:
        """Apply a status pushed by n8n for "vendor_<id>_whatsapp_instance".

        Raises:
            ValidationError: Malformed instance name.
            NotFoundError: The ID does not belong to a vendor.
        """
        self._events.trigger_event(
            "webhook_received", {"instance_name": instance_name, "status": status}
        )

        try:
            vendor_id = vendor_id_from_instance_name(instance_name)
            if not self._directory.is_vendor(vendor_id):
                raise NotFoundError("vendor", str(vendor_id))
        except WABridgeError as e:
            logger.warning("Rejected status update", instance_name=instance_name, error=e.message)
            self._events.trigger_event(
                "webhook_error", {"instance_name": instance_name, "error": e.message}
            )
            raise

        previous = self._sessions.get_vendor_settings(vendor_id).connection_status
        session = self._sessions.apply_status_update(vendor_id, status, connection_info)
        self._dispatcher.invalidate_cache(SESSION_STATUS_EVENT)

        self._announce_transition(vendor_id, previous, session.connection_status)
        self._events.trigger_event(
            "webhook_processed",
            {"vendor_id": vendor_id, "status": session.connection_status.value},
        )
        return StatusUpdateResult(vendor_id=vendor_id, new_status=session.connection_status)
