"""
Tests for `repositories/memory_store.py`.

Covers the Entitlement Store primitives:
- put_if_absent creates once and never overwrites.
- conditional_increment never exceeds the ceiling, even under contention.
- The contact index lists every purchase for a contact.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from repositories.entitlement_store import EntitlementStore
from repositories.memory_store import InMemoryEntitlementStore

from conftest import make_record


def test_memory_store_satisfies_protocol(store) -> None:
    assert isinstance(store, EntitlementStore)


def test_put_if_absent_creates_once(store) -> None:
    assert store.put_if_absent(make_record()) is True
    store.conditional_increment("cs_test_abc", "sunset-bay")

    # A second create with fresh counters must not reset consumption.
    assert store.put_if_absent(make_record()) is False
    assert store.get("cs_test_abc").find_item("sunset-bay").quantity_downloaded == 1
    assert store.count() == 1


def test_get_unknown_returns_none(store) -> None:
    assert store.get("cs_missing") is None


def test_conditional_increment_stops_at_ceiling(store) -> None:
    store.put_if_absent(make_record(items=(("p1", 2, 0),)))

    assert store.conditional_increment("cs_test_abc", "p1") is True
    assert store.conditional_increment("cs_test_abc", "p1") is True
    assert store.conditional_increment("cs_test_abc", "p1") is False
    assert store.get("cs_test_abc").find_item("p1").quantity_downloaded == 2


def test_conditional_increment_unknown_purchase_or_product(store) -> None:
    store.put_if_absent(make_record())

    assert store.conditional_increment("cs_missing", "sunset-bay") is False
    assert store.conditional_increment("cs_test_abc", "missing") is False


def test_conditional_increment_only_touches_one_item(store) -> None:
    store.put_if_absent(make_record(items=(("p1", 2, 0), ("p2", 2, 0))))

    store.conditional_increment("cs_test_abc", "p2")

    record = store.get("cs_test_abc")
    assert record.find_item("p1").quantity_downloaded == 0
    assert record.find_item("p2").quantity_downloaded == 1


def test_concurrent_increments_never_exceed_quantity() -> None:
    """Quantity + 50 concurrent increments grant exactly `quantity` times."""

    store = InMemoryEntitlementStore()
    store.put_if_absent(make_record(items=(("p1", 7, 0),)))

    with ThreadPoolExecutor(max_workers=16) as pool:
        results = list(pool.map(lambda _: store.conditional_increment("cs_test_abc", "p1"), range(57)))

    assert results.count(True) == 7
    assert store.get("cs_test_abc").find_item("p1").quantity_downloaded == 7


def test_secondary_index_lists_purchases_for_contact(store) -> None:
    store.put_if_absent(make_record(purchase_id="cs_1", contact="a@example.com"))
    store.put_if_absent(make_record(purchase_id="cs_2", contact="A@Example.com"))
    store.put_if_absent(make_record(purchase_id="cs_3", contact="b@example.com"))

    assert sorted(store.get_by_secondary_index("a@example.com")) == ["cs_1", "cs_2"]
    assert store.get_by_secondary_index("nobody@example.com") == []
