"""
Tests for `repositories/supabase_store.py` with a stub Supabase client.

The PostgreSQL functions themselves live in migrations/; these tests pin down
how the store calls them and interprets their JSON results.
"""

from __future__ import annotations

from datetime import timedelta

import httpx
import pytest
from postgrest.exceptions import APIError

from domain.time import utc_now
from repositories.entitlement_store import TransientStoreError
from repositories.supabase_store import SupabaseEntitlementStore

from conftest import make_record


class FakeResponse:
    def __init__(self, data) -> None:
        self.data = data


class FakeQuery:
    def __init__(self, result) -> None:
        self._result = result
        self.calls = []

    def __getattr__(self, name):
        def method(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return method

    def execute(self):
        if isinstance(self._result, Exception):
            raise self._result
        return FakeResponse(self._result)


class FakeSupabase:
    def __init__(self, rpc_results=None, table_result=None) -> None:
        self.rpc_results = rpc_results or {}
        self.table_result = table_result if table_result is not None else []
        self.rpc_calls = []
        self.queries = []

    def rpc(self, function, params):
        self.rpc_calls.append((function, params))
        return FakeQuery(self.rpc_results[function])

    def table(self, name):
        query = FakeQuery(self.table_result)
        self.queries.append((name, query))
        return query


def _purchase_row(expires_at=None) -> dict:
    return {
        "purchase_id": "cs_test_abc",
        "customer_contact": "buyer@example.com",
        "created_at_utc": "2025-01-01T12:00:00+00:00",
        "status": "Finalized",
        "payment_status": "paid",
        "expires_at_utc": expires_at,
        "purchase_line_items": [
            {"product_id": "p2", "position": 1, "quantity_purchased": 1, "quantity_downloaded": 0, "title": None},
            {"product_id": "p1", "position": 0, "quantity_purchased": 3, "quantity_downloaded": 2, "title": "One"},
        ],
    }


def test_put_if_absent_calls_create_function() -> None:
    client = FakeSupabase(rpc_results={"create_purchase_if_absent": {"success": True, "created": True}})
    store = SupabaseEntitlementStore(client, retention_seconds=86400)

    assert store.put_if_absent(make_record(items=(("p1", 3, 0),))) is True

    function, params = client.rpc_calls[0]
    assert function == "create_purchase_if_absent"
    assert params["p_purchase_id"] == "cs_test_abc"
    assert params["p_created_at"] == "2025-01-01T12:00:00+00:00"
    assert params["p_expires_at"] == "2025-01-02T12:00:00+00:00"
    assert params["p_line_items"] == [
        {"product_id": "p1", "title": None, "quantity_purchased": 3, "quantity_downloaded": 0}
    ]


def test_put_if_absent_existing_record() -> None:
    client = FakeSupabase(rpc_results={"create_purchase_if_absent": [{"success": True, "created": False}]})

    assert SupabaseEntitlementStore(client).put_if_absent(make_record()) is False
    assert client.rpc_calls[0][1]["p_expires_at"] is None


def test_success_payload_wrapped_in_api_error() -> None:
    """Supabase-py can raise APIError for a successful JSON result."""

    wrapped = APIError({"success": True, "created": True})
    client = FakeSupabase(rpc_results={"create_purchase_if_absent": wrapped})

    assert SupabaseEntitlementStore(client).put_if_absent(make_record()) is True


def test_real_api_error_is_transient() -> None:
    error = APIError({"message": "connection terminated", "code": "08006", "hint": None, "details": None})
    client = FakeSupabase(rpc_results={"increment_download_if_below": error})

    with pytest.raises(TransientStoreError):
        SupabaseEntitlementStore(client).conditional_increment("cs_test_abc", "p1")


def test_http_failure_is_transient() -> None:
    client = FakeSupabase(rpc_results={"increment_download_if_below": httpx.ReadTimeout("timed out")})

    with pytest.raises(TransientStoreError):
        SupabaseEntitlementStore(client).conditional_increment("cs_test_abc", "p1")


def test_conditional_increment_result() -> None:
    client = FakeSupabase(
        rpc_results={"increment_download_if_below": {"success": True, "quantity_downloaded": 1}}
    )
    store = SupabaseEntitlementStore(client)

    assert store.conditional_increment("cs_test_abc", "p1") is True
    assert client.rpc_calls[0] == (
        "increment_download_if_below",
        {"p_purchase_id": "cs_test_abc", "p_product_id": "p1"},
    )

    client.rpc_results["increment_download_if_below"] = {"success": False, "error": "limit_reached"}
    assert store.conditional_increment("cs_test_abc", "p1") is False


def test_get_builds_record_in_position_order() -> None:
    client = FakeSupabase(table_result=[_purchase_row()])

    record = SupabaseEntitlementStore(client).get("cs_test_abc")

    assert [i.product_id for i in record.line_items] == ["p1", "p2"]
    assert record.find_item("p1").quantity_downloaded == 2
    assert record.find_item("p1").title == "One"
    assert client.queries[0][0] == "purchases"


def test_get_unknown_or_expired() -> None:
    assert SupabaseEntitlementStore(FakeSupabase(table_result=[])).get("cs_missing") is None

    expired = (utc_now() - timedelta(minutes=1)).isoformat()
    client = FakeSupabase(table_result=[_purchase_row(expires_at=expired)])
    assert SupabaseEntitlementStore(client).get("cs_test_abc") is None


def test_get_by_secondary_index_normalizes_contact() -> None:
    client = FakeSupabase(table_result=[{"purchase_id": "cs_2"}, {"purchase_id": "cs_1"}])

    ids = SupabaseEntitlementStore(client).get_by_secondary_index(" Buyer@Example.com ")

    assert ids == ["cs_2", "cs_1"]
    query = client.queries[0][1]
    assert ("eq", ("customer_contact", "buyer@example.com"), {}) in query.calls
