"""
Tests for `domain/purchase.py` and `domain/download.py`.

Covers contract rules:
- Line item counters stay within 0 <= downloaded <= purchased.
- PurchaseRecord.created_at is required and must be a UTC timestamp.
- Customer contacts are normalized; duplicate products are rejected.
- Completed-payment events become records with nothing downloaded.
- Download decisions are either grants or denials with a reason.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone

import pytest

from domain.download import DenialReason, DownloadDecision
from domain.purchase import (
    LineItem,
    PaymentCompletedEvent,
    PurchaseRecord,
    PurchaseStatus,
    PurchasedProduct,
    merge_purchased_products,
)

from conftest import CREATED_AT, make_record


def test_line_item_rejects_invalid_quantities() -> None:
    """Verify the ceiling is positive and the counter never leaves [0, ceiling]."""

    with pytest.raises(ValueError):
        LineItem(product_id="p1", quantity_purchased=0)
    with pytest.raises(ValueError):
        LineItem(product_id="p1", quantity_purchased=2, quantity_downloaded=-1)
    with pytest.raises(ValueError):
        LineItem(product_id="p1", quantity_purchased=2, quantity_downloaded=3)
    with pytest.raises(ValueError):
        LineItem(product_id="p1", quantity_purchased=True)  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        LineItem(product_id="  ", quantity_purchased=1)


def test_line_item_remaining_and_can_download() -> None:
    item = LineItem(product_id="p1", quantity_purchased=3, quantity_downloaded=1)

    assert item.remaining == 2
    assert item.can_download is True

    exhausted = item.with_downloaded(3)
    assert exhausted.remaining == 0
    assert exhausted.can_download is False
    assert exhausted.quantity_purchased == 3


def test_purchase_record_created_at_must_be_utc() -> None:
    """Verify created_at enforces UTC timezone-aware timestamp."""

    with pytest.raises(ValueError):
        make_record(created_at=datetime(2025, 1, 1, 0, 0, 0))

    with pytest.raises(ValueError):
        make_record(created_at=datetime(2025, 1, 1, tzinfo=timezone(timedelta(hours=2))))


def test_purchase_record_normalizes_contact_and_holds_tuple() -> None:
    record = PurchaseRecord(
        purchase_id="cs_test_1",
        customer_contact="  Buyer@Example.COM ",
        line_items=[LineItem(product_id="p1", quantity_purchased=1)],
        created_at=CREATED_AT,
    )

    assert record.customer_contact == "buyer@example.com"
    assert isinstance(record.line_items, tuple)
    assert record.status is PurchaseStatus.FINALIZED


def test_purchase_record_rejects_duplicate_products() -> None:
    with pytest.raises(ValueError):
        make_record(items=(("p1", 1, 0), ("p1", 2, 0)))


def test_purchase_record_is_immutable() -> None:
    """Verify PurchaseRecord cannot be mutated after creation (frozen entity)."""

    record = make_record()

    with pytest.raises(FrozenInstanceError):
        record.customer_contact = "other@example.com"  # type: ignore[misc]


def test_find_item_and_totals() -> None:
    record = make_record(items=(("p1", 3, 1), ("p2", 2, 2)))

    assert record.find_item("p2").quantity_downloaded == 2
    assert record.find_item("missing") is None
    assert record.total_purchased == 5
    assert record.total_downloaded == 3


def test_merge_purchased_products_sums_repeated_ids() -> None:
    merged = merge_purchased_products(
        [
            PurchasedProduct("p1", 1, "Sunset"),
            PurchasedProduct("p2", 2),
            PurchasedProduct("p1", 2),
        ]
    )

    assert merged == (PurchasedProduct("p1", 3, "Sunset"), PurchasedProduct("p2", 2))


def test_event_to_purchase_record_starts_with_nothing_downloaded() -> None:
    event = PaymentCompletedEvent(
        purchase_id="cs_test_1",
        customer_contact="a@example.com",
        products=(PurchasedProduct("p1", 3), PurchasedProduct("p2", 1)),
    )

    record = event.to_purchase_record(created_at=CREATED_AT)

    assert [(i.product_id, i.quantity_purchased, i.quantity_downloaded) for i in record.line_items] == [
        ("p1", 3, 0),
        ("p2", 1, 0),
    ]
    assert record.payment_status == "paid"


def test_download_decision_requires_consistent_reason() -> None:
    with pytest.raises(ValueError):
        DownloadDecision(granted=True, purchase_id="cs_1", product_id="p1", reason=DenialReason.NOT_FOUND)
    with pytest.raises(ValueError):
        DownloadDecision(granted=False, purchase_id="cs_1", product_id="p1")


def test_denial_reason_http_status() -> None:
    assert DenialReason.NOT_FOUND.http_status == 404
    assert DenialReason.NOT_PURCHASED.http_status == 404
    assert DenialReason.LIMIT_REACHED.http_status == 403


def test_decision_remaining() -> None:
    granted = DownloadDecision.grant("cs_1", "p1", quantity_purchased=3, quantity_downloaded=1)
    denied = DownloadDecision.deny("cs_1", "p1", DenialReason.NOT_FOUND)

    assert granted.remaining == 2
    assert denied.remaining is None
