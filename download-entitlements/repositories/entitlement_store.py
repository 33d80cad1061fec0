"""
Entitlement Store interface.

The store is the single source of truth for Purchase Records. Every backend
provides the same four primitives; the services never combine a read and a
write across two round trips to enforce the download quota.

- put_if_absent: create the record only if no record exists for its purchase_id.
- get: primary-key read (read-your-write consistent).
- conditional_increment: atomically add 1 to quantity_downloaded only while it
  is strictly below quantity_purchased.
- get_by_secondary_index: purchase ids for a customer contact (best-effort,
  may be stale; never used on the authorization path).
"""

from __future__ import annotations

from typing import List, Optional, Protocol, runtime_checkable

from domain.purchase import PurchaseRecord


class TransientStoreError(Exception):
    """
    Raised when the store could not be reached or did not answer in time.

    Retryable by the caller. Never interpreted as a grant or a denial.
    """

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"Entitlement store {operation} failed: {message}")


@runtime_checkable
class EntitlementStore(Protocol):
    def put_if_absent(self, record: PurchaseRecord) -> bool:
        """Persist `record` in a single atomic write. True if this call created it."""
        ...

    def get(self, purchase_id: str) -> Optional[PurchaseRecord]:
        ...

    def conditional_increment(self, purchase_id: str, product_id: str) -> bool:
        """
        Increment quantity_downloaded by 1 only if it is below quantity_purchased.

        Returns False when the line item is already at its ceiling, or when the
        purchase or the product does not exist.
        """
        ...

    def get_by_secondary_index(self, customer_contact: str) -> List[str]:
        ...


__all__ = ["EntitlementStore", "TransientStoreError"]
