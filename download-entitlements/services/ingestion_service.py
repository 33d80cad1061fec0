"""
Purchase ingestion service.

Consumes completed-payment events and creates Purchase Records idempotently.

Handles:
- One Line Item per purchased product, quantity_downloaded starting at 0
- A single put_if_absent write per event (no read-then-write), so concurrent
  or repeated deliveries of the same event converge on one record
- Best-effort notification after the record is persisted
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from domain.purchase import PaymentCompletedEvent, PurchaseRecord
from domain.time import utc_now
from repositories.entitlement_store import EntitlementStore
from services.notification_service import PurchaseNotifier
from services.payment_events import (
    LineItemSource,
    parse_payment_completed,
    verify_payment_event,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IngestionResult:
    """
    Result of ingesting one completed-payment event.

    created: True if this call created the Purchase Record, False when the
        record already existed (duplicate delivery, not an error)
    """
    purchase_id: str
    created: bool
    items_count: int

    @property
    def duplicate(self) -> bool:
        return not self.created


def ingest_purchase(
    store: EntitlementStore,
    event: PaymentCompletedEvent,
    *,
    now: Optional[datetime] = None,
    notifier: Optional[PurchaseNotifier] = None,
) -> IngestionResult:
    """
    Persist the Purchase Record described by a verified completed-payment event.

    Args:
        store: Entitlement Store to write to
        event: Verified event (see services.payment_events)
        now: Creation timestamp (UTC); defaults to the current time
        notifier: Informed once, after a record is created

    Returns:
        IngestionResult; created=False for an already ingested purchase_id

    Raises:
        TransientStoreError: the write could not be confirmed. The gateway
            re-delivers the event, and the retry is idempotent.
    """

    record: PurchaseRecord = event.to_purchase_record(created_at=now or utc_now())

    if not record.line_items:
        logger.warning(
            "Completed payment without purchased items",
            extra={"purchase_id": record.purchase_id},
        )

    created = store.put_if_absent(record)

    if not created:
        logger.info(
            "Duplicate payment event ignored",
            extra={"purchase_id": record.purchase_id},
        )
        return IngestionResult(purchase_id=record.purchase_id, created=False, items_count=len(record.line_items))

    logger.info(
        "Purchase recorded",
        extra={
            "purchase_id": record.purchase_id,
            "items_count": len(record.line_items),
            "total_purchased": record.total_purchased,
        },
    )

    if notifier is not None:
        try:
            notifier.purchase_completed(record)
        except Exception:
            logger.exception(
                "Purchase notification failed",
                extra={"purchase_id": record.purchase_id},
            )

    return IngestionResult(purchase_id=record.purchase_id, created=True, items_count=len(record.line_items))


def process_payment_webhook(
    store: EntitlementStore,
    payload: bytes,
    signature: Optional[str],
    secret: str,
    *,
    tolerance: int = 300,
    line_item_source: Optional[LineItemSource] = None,
    notifier: Optional[PurchaseNotifier] = None,
) -> Optional[IngestionResult]:
    """
    Verify, parse and ingest one webhook delivery.

    Returns None when the event is authentic but does not confirm a payment.

    Raises:
        WebhookAuthenticationError: before any parsing or store access
        InvalidPaymentEventError, PaymentGatewayError: before any store write
        TransientStoreError: from the store write
    """

    event = verify_payment_event(payload, signature, secret, tolerance=tolerance)
    completed = parse_payment_completed(event, line_item_source=line_item_source)
    if completed is None:
        return None
    return ingest_purchase(store, completed, notifier=notifier)


__all__ = [
    "IngestionResult",
    "ingest_purchase",
    "process_payment_webhook",
]
