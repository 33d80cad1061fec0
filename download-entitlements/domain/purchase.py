"""
Domain: Purchase records and their line items.

Contract excerpts implemented here:
- A Purchase Record exists once per completed transaction, keyed by the
  payment gateway's transaction identifier (purchase_id).
- A Purchase Record is only ever created after payment is confirmed, so the
  only status it can carry is FINALIZED.
- Each Line Item carries its own ceiling (quantity_purchased, set once at
  ingestion) and its own consumption counter (quantity_downloaded).
- For every Line Item: 0 <= quantity_downloaded <= quantity_purchased.
- At most one Line Item per product_id; insertion order is the order placed.

This module contains only pure domain entities/value objects: no I/O, no database, no frameworks.
All timestamps must be passed explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional, Tuple

from .time import require_utc_timestamp


class PurchaseStatus(str, Enum):
    FINALIZED = "Finalized"


def normalize_contact(value: str) -> str:
    """Canonical form of a customer contact address used as the secondary key."""

    return value.strip().lower()


@dataclass(frozen=True, slots=True)
class LineItem:
    """
    One purchased product within a purchase.

    quantity_purchased is the number of entitled downloads; quantity_downloaded
    is how many of them have been consumed.
    """

    product_id: str
    quantity_purchased: int
    quantity_downloaded: int = 0
    title: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.product_id, str) or not self.product_id.strip():
            raise ValueError("product_id must be a non-empty string")
        if isinstance(self.quantity_purchased, bool) or not isinstance(self.quantity_purchased, int):
            raise ValueError("quantity_purchased must be an integer")
        if isinstance(self.quantity_downloaded, bool) or not isinstance(self.quantity_downloaded, int):
            raise ValueError("quantity_downloaded must be an integer")
        if self.quantity_purchased < 1:
            raise ValueError("quantity_purchased must be a positive integer")
        if self.quantity_downloaded < 0:
            raise ValueError("quantity_downloaded must not be negative")
        if self.quantity_downloaded > self.quantity_purchased:
            raise ValueError("quantity_downloaded must not exceed quantity_purchased")

    @property
    def remaining(self) -> int:
        return self.quantity_purchased - self.quantity_downloaded

    @property
    def can_download(self) -> bool:
        return self.remaining > 0

    def with_downloaded(self, quantity_downloaded: int) -> "LineItem":
        """Return a copy with a new consumption counter (ceiling is unchanged)."""

        return LineItem(
            product_id=self.product_id,
            quantity_purchased=self.quantity_purchased,
            quantity_downloaded=quantity_downloaded,
            title=self.title,
        )


@dataclass(frozen=True, slots=True)
class PurchaseRecord:
    """
    Immutable snapshot of one completed transaction and its entitlements.

    Snapshots are read from the Entitlement Store; the store is the single source
    of truth and the only place consumption counters change.
    """

    purchase_id: str
    customer_contact: str
    line_items: Tuple[LineItem, ...]
    created_at: datetime
    status: PurchaseStatus = PurchaseStatus.FINALIZED
    payment_status: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.purchase_id, str) or not self.purchase_id.strip():
            raise ValueError("purchase_id must be a non-empty string")
        require_utc_timestamp("created_at", self.created_at)

        # Accept any iterable but always hold a tuple.
        object.__setattr__(self, "line_items", tuple(self.line_items))
        object.__setattr__(self, "customer_contact", normalize_contact(self.customer_contact or ""))

        seen = set()
        for item in self.line_items:
            if not isinstance(item, LineItem):
                raise TypeError(f"line_items must contain LineItem, got {type(item)!r}")
            if item.product_id in seen:
                raise ValueError(f"Duplicate line item for product_id {item.product_id!r}")
            seen.add(item.product_id)

    def find_item(self, product_id: str) -> Optional[LineItem]:
        for item in self.line_items:
            if item.product_id == product_id:
                return item
        return None

    @property
    def total_purchased(self) -> int:
        return sum(item.quantity_purchased for item in self.line_items)

    @property
    def total_downloaded(self) -> int:
        return sum(item.quantity_downloaded for item in self.line_items)


@dataclass(frozen=True, slots=True)
class PurchasedProduct:
    """A (product_id, quantity) pair as reported by the payment gateway."""

    product_id: str
    quantity: int
    title: Optional[str] = None


def merge_purchased_products(products: Iterable[PurchasedProduct]) -> Tuple[PurchasedProduct, ...]:
    """
    Collapse repeated product ids into one entry, summing quantities.

    The first occurrence fixes the position and the title.
    """

    merged: dict[str, PurchasedProduct] = {}
    for product in products:
        existing = merged.get(product.product_id)
        if existing is None:
            merged[product.product_id] = product
        else:
            merged[product.product_id] = PurchasedProduct(
                product_id=existing.product_id,
                quantity=existing.quantity + product.quantity,
                title=existing.title or product.title,
            )
    return tuple(merged.values())


@dataclass(frozen=True, slots=True)
class PaymentCompletedEvent:
    """
    A verified "payment completed" notification, reduced to what ingestion needs.
    """

    purchase_id: str
    customer_contact: str
    products: Tuple[PurchasedProduct, ...] = field(default_factory=tuple)
    payment_status: Optional[str] = "paid"

    def to_purchase_record(self, created_at: datetime) -> PurchaseRecord:
        """Build the initial record: one Line Item per product, nothing downloaded."""

        return PurchaseRecord(
            purchase_id=self.purchase_id,
            customer_contact=self.customer_contact,
            line_items=tuple(
                LineItem(
                    product_id=product.product_id,
                    quantity_purchased=product.quantity,
                    quantity_downloaded=0,
                    title=product.title,
                )
                for product in merge_purchased_products(self.products)
            ),
            created_at=created_at,
            payment_status=self.payment_status,
        )


__all__ = [
    "LineItem",
    "PaymentCompletedEvent",
    "PurchaseRecord",
    "PurchaseStatus",
    "PurchasedProduct",
    "merge_purchased_products",
    "normalize_contact",
]
