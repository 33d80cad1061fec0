"""
In-process Entitlement Store.

Holds Purchase Records in dictionaries guarded by a single lock, which makes
every primitive linearizable within one process. Used by the test suite and by
local development (STORE_BACKEND=memory). Not shared between worker processes.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Tuple

from domain.purchase import LineItem, PurchaseRecord, normalize_contact


class InMemoryEntitlementStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[str, PurchaseRecord] = {}
        self._contact_index: Dict[str, List[str]] = {}

    def put_if_absent(self, record: PurchaseRecord) -> bool:
        with self._lock:
            if record.purchase_id in self._records:
                return False
            self._records[record.purchase_id] = record
            self._contact_index.setdefault(record.customer_contact, []).append(record.purchase_id)
            return True

    def get(self, purchase_id: str) -> Optional[PurchaseRecord]:
        with self._lock:
            return self._records.get(purchase_id)

    def conditional_increment(self, purchase_id: str, product_id: str) -> bool:
        with self._lock:
            record = self._records.get(purchase_id)
            if record is None:
                return False

            position, item = self._find(record, product_id)
            if item is None or item.quantity_downloaded >= item.quantity_purchased:
                return False

            items = list(record.line_items)
            items[position] = item.with_downloaded(item.quantity_downloaded + 1)
            self._records[purchase_id] = PurchaseRecord(
                purchase_id=record.purchase_id,
                customer_contact=record.customer_contact,
                line_items=tuple(items),
                created_at=record.created_at,
                status=record.status,
                payment_status=record.payment_status,
            )
            return True

    def get_by_secondary_index(self, customer_contact: str) -> List[str]:
        with self._lock:
            return list(self._contact_index.get(normalize_contact(customer_contact), []))

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    @staticmethod
    def _find(record: PurchaseRecord, product_id: str) -> Tuple[int, Optional[LineItem]]:
        for position, item in enumerate(record.line_items):
            if item.product_id == product_id:
                return position, item
        return -1, None


__all__ = ["InMemoryEntitlementStore"]
