"""
Tests for `services/entitlement_service.py`.

Covers:
- Lookups report remaining copies and a download reference only while copies remain.
- Contact lookups return the most recent purchase.
- Caller-side polling while the payment event is still in flight.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from services.entitlement_service import (
    download_ref,
    get_entitlements,
    get_entitlements_by_contact,
    wait_for_entitlements,
)

from conftest import CREATED_AT, make_record


def test_get_entitlements_reports_remaining(store) -> None:
    store.put_if_absent(make_record(items=(("p1", 3, 1), ("p2", 1, 1))))

    entitlements = get_entitlements(store, "cs_test_abc")

    p1, p2 = entitlements.items
    assert (p1.remaining, p1.can_download, p1.download_ref) == (2, True, "cs_test_abc/p1")
    assert (p2.remaining, p2.can_download, p2.download_ref) == (0, False, None)
    assert entitlements.total_remaining == 2


def test_get_entitlements_unknown_purchase(store) -> None:
    assert get_entitlements(store, "cs_missing") is None


def test_download_ref_quotes_components() -> None:
    assert download_ref("cs_1", "a/b c") == "cs_1/a%2Fb%20c"


def test_contact_lookup_returns_most_recent(store) -> None:
    store.put_if_absent(make_record(purchase_id="cs_old", contact="a@example.com", created_at=CREATED_AT))
    store.put_if_absent(
        make_record(purchase_id="cs_new", contact="a@example.com", created_at=CREATED_AT + timedelta(hours=1))
    )

    entitlements = get_entitlements_by_contact(store, " A@Example.com ")

    assert entitlements.purchase_id == "cs_new"


def test_contact_lookup_breaks_ties_on_purchase_id(store) -> None:
    store.put_if_absent(make_record(purchase_id="cs_b", contact="a@example.com"))
    store.put_if_absent(make_record(purchase_id="cs_a", contact="a@example.com"))

    assert get_entitlements_by_contact(store, "a@example.com").purchase_id == "cs_b"


def test_contact_lookup_unknown_or_blank(store) -> None:
    assert get_entitlements_by_contact(store, "nobody@example.com") is None
    assert get_entitlements_by_contact(store, "   ") is None


def test_wait_returns_as_soon_as_purchase_appears(store) -> None:
    """The payment event lands while the customer is already polling."""

    sleeps = []

    def sleep(seconds: float) -> None:
        sleeps.append(seconds)
        if len(sleeps) == 2:
            store.put_if_absent(make_record())

    outcome = wait_for_entitlements(
        lambda: get_entitlements(store, "cs_test_abc"),
        attempts=5,
        delay_seconds=2,
        sleep=sleep,
    )

    assert outcome.still_processing is False
    assert outcome.attempts == 3
    assert sleeps == [2, 2]


def test_wait_gives_up_after_attempts(store) -> None:
    sleeps = []

    outcome = wait_for_entitlements(
        lambda: get_entitlements(store, "cs_test_abc"),
        attempts=3,
        delay_seconds=0.5,
        sleep=sleeps.append,
    )

    assert outcome.still_processing is True
    assert outcome.attempts == 3
    assert sleeps == [0.5, 0.5]


def test_wait_requires_at_least_one_attempt() -> None:
    with pytest.raises(ValueError):
        wait_for_entitlements(lambda: None, attempts=0, delay_seconds=1)
