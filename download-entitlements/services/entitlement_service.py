"""
Entitlement lookup service.

Read path used by the storefront to answer "what can this customer download
right now". Lookups are single, fast reads with no internal waiting; polling
while the payment webhook is still in flight is the caller's job
(wait_for_entitlements).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Tuple
from urllib.parse import quote

from domain.purchase import LineItem, PurchaseRecord, normalize_contact
from repositories.entitlement_store import EntitlementStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EntitlementView:
    """
    What the storefront may show for one line item.

    download_ref is an opaque reference the download endpoint consumes; it is
    only present while copies remain. File locations are never exposed.
    """
    product_id: str
    title: Optional[str]
    quantity_purchased: int
    quantity_downloaded: int
    remaining: int
    can_download: bool
    download_ref: Optional[str]


@dataclass(frozen=True, slots=True)
class PurchaseEntitlements:
    purchase_id: str
    customer_contact: str
    created_at: datetime
    payment_status: Optional[str]
    items: Tuple[EntitlementView, ...]

    @property
    def total_remaining(self) -> int:
        return sum(item.remaining for item in self.items)


@dataclass(frozen=True, slots=True)
class LookupOutcome:
    """Result of caller-side polling: entitlements, or still processing."""
    entitlements: Optional[PurchaseEntitlements]
    attempts: int

    @property
    def still_processing(self) -> bool:
        return self.entitlements is None


def download_ref(purchase_id: str, product_id: str) -> str:
    """URL path fragment identifying one line item: "{purchase_id}/{product_id}"."""

    return f"{quote(purchase_id, safe='')}/{quote(product_id, safe='')}"


def _item_view(purchase_id: str, item: LineItem) -> EntitlementView:
    return EntitlementView(
        product_id=item.product_id,
        title=item.title,
        quantity_purchased=item.quantity_purchased,
        quantity_downloaded=item.quantity_downloaded,
        remaining=item.remaining,
        can_download=item.can_download,
        download_ref=download_ref(purchase_id, item.product_id) if item.can_download else None,
    )


def to_entitlements(record: PurchaseRecord) -> PurchaseEntitlements:
    return PurchaseEntitlements(
        purchase_id=record.purchase_id,
        customer_contact=record.customer_contact,
        created_at=record.created_at,
        payment_status=record.payment_status,
        items=tuple(_item_view(record.purchase_id, item) for item in record.line_items),
    )


def get_entitlements(store: EntitlementStore, purchase_id: str) -> Optional[PurchaseEntitlements]:
    """
    Primary lookup by purchase identifier.

    Returns:
        PurchaseEntitlements, or None when no record exists (yet)
    """

    record = store.get(purchase_id)
    if record is None:
        return None
    return to_entitlements(record)


def get_entitlements_by_contact(
    store: EntitlementStore,
    customer_contact: str,
) -> Optional[PurchaseEntitlements]:
    """
    Fallback lookup by customer contact address.

    When several purchases share the contact, the most recently created one
    wins; equal creation times fall back to the larger purchase_id so the
    answer is deterministic. Index entries whose record cannot be read any
    more are skipped.
    """

    contact = normalize_contact(customer_contact)
    if not contact:
        return None

    candidates: List[PurchaseRecord] = []
    for purchase_id in store.get_by_secondary_index(contact):
        record = store.get(purchase_id)
        if record is None:
            logger.debug("Stale contact index entry", extra={"purchase_id": purchase_id})
            continue
        candidates.append(record)

    if not candidates:
        return None

    if len(candidates) > 1:
        logger.info(
            "Contact has several purchases; returning the most recent",
            extra={"purchases_count": len(candidates)},
        )

    latest = max(candidates, key=lambda r: (r.created_at, r.purchase_id))
    return to_entitlements(latest)


def wait_for_entitlements(
    lookup: Callable[[], Optional[PurchaseEntitlements]],
    *,
    attempts: int,
    delay_seconds: float,
    sleep: Callable[[float], None] = time.sleep,
) -> LookupOutcome:
    """
    Poll a lookup a bounded number of times with a fixed delay.

    Covers the window between the customer's redirect back to the storefront
    and the payment event reaching ingestion. Exceptions from the lookup
    (e.g. TransientStoreError) propagate unchanged.

    Example:
        outcome = wait_for_entitlements(
            lambda: get_entitlements(store, purchase_id),
            attempts=5,
            delay_seconds=2,
        )
        if outcome.still_processing:
            # show "still processing" instead of an error
    """

    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    for attempt in range(1, attempts + 1):
        entitlements = lookup()
        if entitlements is not None:
            return LookupOutcome(entitlements=entitlements, attempts=attempt)
        if attempt < attempts:
            sleep(delay_seconds)

    return LookupOutcome(entitlements=None, attempts=attempts)


__all__ = [
    "EntitlementView",
    "LookupOutcome",
    "PurchaseEntitlements",
    "download_ref",
    "get_entitlements",
    "get_entitlements_by_contact",
    "to_entitlements",
    "wait_for_entitlements",
]
