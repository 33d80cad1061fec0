"""
Download authorization service.

Decides, per request, whether one more copy of a purchased product may be
released, and consumes that copy before any bytes leave the server.

Handles:
- Unknown purchase -> Denied(NOT_FOUND)
- Product not in the purchase -> Denied(NOT_PURCHASED)
- Quota enforcement through one atomic conditional increment in the store
- Fail-closed: a unit is consumed once granted, even if delivery later fails
"""

from __future__ import annotations

import logging

from domain.download import DenialReason, DownloadDecision
from repositories.entitlement_store import EntitlementStore

logger = logging.getLogger(__name__)


def authorize_download(store: EntitlementStore, purchase_id: str, product_id: str) -> DownloadDecision:
    """
    Authorize one download of `product_id` from purchase `purchase_id`.

    The first read only resolves NOT_FOUND / NOT_PURCHASED. The quota itself
    is enforced solely by store.conditional_increment(); the read after a
    refused increment only reports counts for the denial.

    Returns:
        DownloadDecision (granted, or denied with a reason and counts)

    Raises:
        TransientStoreError: the store did not answer. Not a grant and not a
            denial; the caller may retry.

    Example:
        decision = authorize_download(store, "cs_test_123", "sunset-bay")
        if decision.granted:
            # stream exactly one copy
        else:
            print(decision.reason.message)
    """

    record = store.get(purchase_id)
    if record is None:
        logger.info(
            "Download denied: purchase not found",
            extra={"purchase_id": purchase_id, "product_id": product_id},
        )
        return DownloadDecision.deny(purchase_id, product_id, DenialReason.NOT_FOUND)

    item = record.find_item(product_id)
    if item is None:
        logger.info(
            "Download denied: product not purchased",
            extra={"purchase_id": purchase_id, "product_id": product_id},
        )
        return DownloadDecision.deny(purchase_id, product_id, DenialReason.NOT_PURCHASED)

    if store.conditional_increment(purchase_id, product_id):
        # Counts are reconstructed from the snapshot for display only; the
        # store holds the authoritative value.
        downloaded = min(item.quantity_downloaded + 1, item.quantity_purchased)
        logger.info(
            "Download granted",
            extra={
                "purchase_id": purchase_id,
                "product_id": product_id,
                "quantity_purchased": item.quantity_purchased,
            },
        )
        return DownloadDecision.grant(
            purchase_id,
            product_id,
            quantity_purchased=item.quantity_purchased,
            quantity_downloaded=downloaded,
        )

    current = store.get(purchase_id)
    current_item = current.find_item(product_id) if current is not None else None
    if current_item is None:
        return DownloadDecision.deny(purchase_id, product_id, DenialReason.NOT_FOUND)

    logger.info(
        "Download denied: limit reached",
        extra={
            "purchase_id": purchase_id,
            "product_id": product_id,
            "quantity_purchased": current_item.quantity_purchased,
            "quantity_downloaded": current_item.quantity_downloaded,
        },
    )
    return DownloadDecision.deny(
        purchase_id,
        product_id,
        DenialReason.LIMIT_REACHED,
        quantity_purchased=current_item.quantity_purchased,
        quantity_downloaded=current_item.quantity_downloaded,
    )


__all__ = ["authorize_download"]
