"""Per-vendor WhatsApp state in the key-value store.

Each field lives under its own key (`vendor_meta:<id>:<field>`), so a
multi-field update is several independent writes with no transaction.
"""

from __future__ import annotations

import re
import time
from typing import Any

from wabridge.exceptions import StorageError, ValidationError
from wabridge.logging import get_logger
from wabridge.storage import Clock, KeyValueStore

from .models import ConnectionStatus, VendorSession, normalize_status

logger = get_logger(__name__)

INSTANCE_NAME_PATTERN = re.compile(r"vendor_([0-9]+)_whatsapp_instance")

# Field name -> default
SESSION_FIELDS: dict[str, Any] = {
    "connection_status": ConnectionStatus.DISCONNECTED.value,
    "qr_code_data": "",
    "whatsapp_number": "",
    "connection_info": {},
    "last_update_timestamp": 0,
}


def get_session_name(vendor_id: int) -> str:
    return f"vendor_{vendor_id}"


def get_instance_name(vendor_id: int) -> str:
    return f"vendor_{vendor_id}_whatsapp_instance"


def vendor_id_from_instance_name(instance_name: str) -> int:
    """Parse the vendor ID out of "vendor_<id>_whatsapp_instance".

    Raises:
        ValidationError: If the name does not follow the pattern.
    """
    match = INSTANCE_NAME_PATTERN.fullmatch(instance_name or "")
    if match is None:
        raise ValidationError("instance_name", f"invalid instance name format: {instance_name!r}")
    return int(match.group(1))


class VendorSessionStore:
    """Reads and writes VendorSession fields."""

    def __init__(self, store: KeyValueStore, clock: Clock = time.time) -> None:
        self._store = store
        self._clock = clock

    get_session_name = staticmethod(get_session_name)
    get_instance_name = staticmethod(get_instance_name)
    vendor_id_from_instance_name = staticmethod(vendor_id_from_instance_name)

    @staticmethod
    def _field_key(vendor_id: int, field: str) -> str:
        return f"vendor_meta:{vendor_id}:{field}"

    def get_vendor_settings(self, vendor_id: int) -> VendorSession:
        """Current state of a vendor.

        Fields never written, or stored with the wrong type, read as their
        defaults.
        """
        values: dict[str, Any] = {}
        for field, default in SESSION_FIELDS.items():
            value = self._store.get(self._field_key(vendor_id, field), default)
            # bool is an int subclass but never a valid timestamp
            if not isinstance(value, type(default)) or isinstance(value, bool):
                logger.warning(
                    "Discarding mistyped vendor setting", vendor_id=vendor_id, field=field
                )
                value = default
            values[field] = value
        values["connection_status"] = normalize_status(values["connection_status"])
        return VendorSession(vendor_id=vendor_id, session_name=get_session_name(vendor_id), **values)

    def update_setting(self, vendor_id: int, field: str, value: Any) -> bool:
        """Write a single field.

        Returns:
            False for unknown fields or a failed store write.
        """
        if field not in SESSION_FIELDS:
            logger.warning("Unknown vendor setting", vendor_id=vendor_id, field=field)
            return False
        if isinstance(value, ConnectionStatus):
            value = value.value

        if not self._store.set(self._field_key(vendor_id, field), value):
            logger.error("Failed to store vendor setting", vendor_id=vendor_id, field=field)
            return False
        logger.debug("Vendor setting updated", vendor_id=vendor_id, field=field)
        return True

    def _require(self, vendor_id: int, field: str, value: Any) -> None:
        if not self.update_setting(vendor_id, field, value):
            raise StorageError(f"could not store {field} for vendor {vendor_id}")

    def apply_status_update(
        self,
        vendor_id: int,
        status: Any,
        connection_info: dict[str, Any] | None = None,
    ) -> VendorSession:
        """Record a status reported by n8n.

        Writes status, connection info and timestamp; the QR code is
        cleared once the session is connected.

        Raises:
            StorageError: If any write fails. Earlier writes are not rolled back.
        """
        new_status = normalize_status(status)
        self._require(vendor_id, "connection_status", new_status)
        self._require(vendor_id, "connection_info", dict(connection_info or {}))
        self._require(vendor_id, "last_update_timestamp", int(self._clock()))
        if new_status == ConnectionStatus.CONNECTED:
            self._require(vendor_id, "qr_code_data", "")

        logger.info("Vendor status updated", vendor_id=vendor_id, status=new_status.value)
        return self.get_vendor_settings(vendor_id)
