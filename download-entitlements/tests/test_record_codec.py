"""
Tests for `repositories/record_codec.py`.

Covers the canonical document and the translation of legacy documents
written by the previous storefront.
"""

from __future__ import annotations

import pytest

from repositories.record_codec import document_to_purchase, is_legacy_document, purchase_to_document

from conftest import CREATED_AT, make_record


def test_canonical_document_round_trip() -> None:
    record = make_record(items=(("p1", 3, 1), ("p2", 1, 0)))

    document = purchase_to_document(record)

    assert document["created_at_utc"] == "2025-01-01T12:00:00+00:00"
    assert document["status"] == "Finalized"
    assert not is_legacy_document(document)
    assert document_to_purchase(document) == record


def test_legacy_document_field_names() -> None:
    document = {
        "session_id": "cs_live_1",
        "customer_email": "Old@Example.com",
        "purchased_items": [
            {"productId": "p1", "quantityPurchased": 3, "title": "Sunset"},
            {"id": "p2", "maxDownloads": 2},
            {"productId": "p3"},
        ],
        "download_count": {"p1": 1},
        "timestamp": "2024-06-01T10:00:00Z",
    }

    record = document_to_purchase(document)

    assert record.purchase_id == "cs_live_1"
    assert record.customer_contact == "old@example.com"
    assert record.created_at.isoformat() == "2024-06-01T10:00:00+00:00"
    assert [(i.product_id, i.quantity_purchased, i.quantity_downloaded) for i in record.line_items] == [
        ("p1", 3, 1),
        ("p2", 2, 0),
        ("p3", 1, 0),
    ]
    assert record.find_item("p1").title == "Sunset"


def test_legacy_downloaded_flag_means_all_copies_used() -> None:
    document = {
        "email": "a@example.com",
        "products": [{"productId": "p1", "quantity": 2}, {"productId": "p2", "quantity": 2}],
        "downloaded": {"p1": True, "p2": False},
        "createdAt": "2024-06-01T10:00:00Z",
    }

    record = document_to_purchase(document, purchase_id="cs_live_2")

    assert record.find_item("p1").quantity_downloaded == 2
    assert record.find_item("p2").quantity_downloaded == 0


def test_legacy_counts_are_capped_and_take_the_maximum() -> None:
    document = {
        "session_id": "cs_live_3",
        "email": "a@example.com",
        "products": [{"productId": "p1", "quantity": 2}],
        "download_count": {"p1": 1},
        "quantity_downloaded": {"p1": 5},
        "createdAt": "2024-06-01T10:00:00Z",
    }

    assert document_to_purchase(document).find_item("p1").quantity_downloaded == 2


def test_legacy_duplicate_products_keep_first() -> None:
    document = {
        "session_id": "cs_live_4",
        "email": "a@example.com",
        "products": [{"productId": "p1", "quantity": 2}, {"productId": "p1", "quantity": 5}],
        "createdAt": "2024-06-01T10:00:00Z",
    }

    record = document_to_purchase(document)

    assert len(record.line_items) == 1
    assert record.find_item("p1").quantity_purchased == 2


def test_legacy_document_without_id_is_rejected() -> None:
    with pytest.raises(ValueError):
        document_to_purchase({"products": [{"productId": "p1"}], "email": "a@example.com"})


def test_malformed_canonical_document_is_rejected() -> None:
    with pytest.raises(ValueError):
        document_to_purchase({"purchase_id": "cs_1", "line_items": [{"product_id": "p1"}]})


def test_created_at_is_preserved() -> None:
    assert document_to_purchase(purchase_to_document(make_record())).created_at == CREATED_AT
