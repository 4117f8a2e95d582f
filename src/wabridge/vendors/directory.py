"""Lookup of which users are marketplace vendors."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, runtime_checkable


@runtime_checkable
class VendorDirectory(Protocol):
    """Answers whether a user exists and has the vendor role."""

    def is_vendor(self, vendor_id: int) -> bool: ...


class InMemoryVendorDirectory:
    """VendorDirectory backed by a set of vendor IDs."""

    def __init__(self, vendor_ids: Iterable[int] = ()) -> None:
        self._vendor_ids = set(vendor_ids)

    def add(self, vendor_id: int) -> None:
        self._vendor_ids.add(vendor_id)

    def remove(self, vendor_id: int) -> None:
        self._vendor_ids.discard(vendor_id)

    def is_vendor(self, vendor_id: int) -> bool:
        return vendor_id in self._vendor_ids
