"""
Purchase notifications.

Email delivery is an external collaborator. Ingestion calls a notifier after a
purchase has been persisted; notifier failures never undo the purchase.
"""

from __future__ import annotations

import logging
from typing import Protocol

from domain.purchase import PurchaseRecord

logger = logging.getLogger(__name__)


class PurchaseNotifier(Protocol):
    def purchase_completed(self, record: PurchaseRecord) -> None:
        ...


class LoggingNotifier:
    """Default notifier: records the completed purchase in the application log."""

    def purchase_completed(self, record: PurchaseRecord) -> None:
        logger.info(
            "Purchase completed",
            extra={
                "purchase_id": record.purchase_id,
                "customer_contact": record.customer_contact,
                "items_count": len(record.line_items),
                "total_purchased": record.total_purchased,
            },
        )


__all__ = ["LoggingNotifier", "PurchaseNotifier"]
