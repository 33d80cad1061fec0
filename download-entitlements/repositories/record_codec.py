"""
Purchase document codec.

Maps PurchaseRecord to and from the plain-JSON document stored by key-value
backends, and translates the legacy purchase documents written by the previous
storefront into the canonical shape.

Legacy documents carried several names for the same concept:
- line items under `products` or `purchased_items`
- ceiling under `quantityPurchased`, `quantity`, `maxDownloads` or `max_downloads`
- contact under `email` or `customer_email`
- consumption in a `download_count` map, a `quantity_downloaded` map, or a
  boolean `downloaded` map (true meant every purchased copy was delivered)
- creation time under `createdAt` or `timestamp`

Legacy names are handled here only; nothing past the store boundary sees them.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from domain.purchase import LineItem, PurchaseRecord, PurchaseStatus
from domain.time import parse_utc_datetime, to_iso_utc, utc_now

_LEGACY_QUANTITY_FIELDS = ("quantityPurchased", "quantity", "maxDownloads", "max_downloads")


def purchase_to_document(record: PurchaseRecord) -> Dict[str, Any]:
    return {
        "purchase_id": record.purchase_id,
        "customer_contact": record.customer_contact,
        "created_at_utc": to_iso_utc(record.created_at, name="created_at"),
        "status": record.status.value,
        "payment_status": record.payment_status,
        "line_items": [
            {
                "product_id": item.product_id,
                "title": item.title,
                "quantity_purchased": item.quantity_purchased,
                "quantity_downloaded": item.quantity_downloaded,
            }
            for item in record.line_items
        ],
    }


def is_legacy_document(document: Mapping[str, Any]) -> bool:
    return "line_items" not in document and (
        "products" in document or "purchased_items" in document or "session_id" in document
    )


def document_to_purchase(
    document: Mapping[str, Any],
    purchase_id: Optional[str] = None,
) -> PurchaseRecord:
    """
    Build a PurchaseRecord from a canonical or legacy document.

    Raises:
        ValueError: if the document cannot describe a valid purchase.
    """

    if is_legacy_document(document):
        return _legacy_to_purchase(document, purchase_id)

    try:
        return PurchaseRecord(
            purchase_id=str(purchase_id or document["purchase_id"]),
            customer_contact=str(document.get("customer_contact") or ""),
            line_items=tuple(
                LineItem(
                    product_id=str(row["product_id"]),
                    quantity_purchased=int(row["quantity_purchased"]),
                    quantity_downloaded=int(row.get("quantity_downloaded") or 0),
                    title=row.get("title"),
                )
                for row in document.get("line_items") or []
            ),
            created_at=parse_utc_datetime(document["created_at_utc"]),
            status=PurchaseStatus(document.get("status") or PurchaseStatus.FINALIZED.value),
            payment_status=document.get("payment_status"),
        )
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed purchase document: {e}") from e


def _legacy_quantity(item: Mapping[str, Any]) -> int:
    for name in _LEGACY_QUANTITY_FIELDS:
        value = item.get(name)
        if value:
            return int(value)
    return 1


def _legacy_downloaded(document: Mapping[str, Any], product_id: str, purchased: int) -> int:
    counts: List[int] = []
    for map_name in ("download_count", "quantity_downloaded"):
        mapping = document.get(map_name)
        if isinstance(mapping, Mapping) and mapping.get(product_id) is not None:
            counts.append(int(mapping[product_id]))

    flags = document.get("downloaded")
    if isinstance(flags, Mapping) and flags.get(product_id) in (True, "true"):
        counts.append(purchased)

    return min(max(counts, default=0), purchased)


def _legacy_to_purchase(document: Mapping[str, Any], purchase_id: Optional[str]) -> PurchaseRecord:
    resolved_id = purchase_id or document.get("session_id")
    if not resolved_id:
        raise ValueError("Legacy purchase document has no session_id")

    raw_items = document.get("products") or document.get("purchased_items") or []
    line_items: Dict[str, LineItem] = {}
    for raw in raw_items:
        product_id = raw.get("productId") or raw.get("id")
        if not product_id:
            raise ValueError(f"Legacy line item without productId in {resolved_id}")
        product_id = str(product_id)
        if product_id in line_items:
            continue

        purchased = _legacy_quantity(raw)
        line_items[product_id] = LineItem(
            product_id=product_id,
            quantity_purchased=purchased,
            quantity_downloaded=_legacy_downloaded(document, product_id, purchased),
            title=raw.get("title") or raw.get("name"),
        )

    created_raw = document.get("createdAt") or document.get("timestamp")
    return PurchaseRecord(
        purchase_id=str(resolved_id),
        customer_contact=str(document.get("email") or document.get("customer_email") or ""),
        line_items=tuple(line_items.values()),
        created_at=parse_utc_datetime(created_raw) if created_raw else utc_now(),
        payment_status=document.get("payment_status"),
    )


__all__ = [
    "document_to_purchase",
    "is_legacy_document",
    "purchase_to_document",
]
