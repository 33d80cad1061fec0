"""
Supabase-backed Entitlement Store.

Tables (see migrations/001_purchase_entitlements.sql):
- purchases: one row per purchase_id
- purchase_line_items: one row per (purchase_id, product_id), ordered by position

Both writes that must be atomic run as PostgreSQL functions through `rpc`, so
each one is a single transaction on the database side:
- create_purchase_if_absent(): INSERT ... ON CONFLICT DO NOTHING for the
  purchase row plus all of its line items
- increment_download_if_below(): a single guarded UPDATE
  (quantity_downloaded < quantity_purchased), row-locked by PostgreSQL

Reads go through PostgREST selects with the line items embedded.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, List, Mapping, Optional

import httpx
from postgrest.exceptions import APIError

from domain.purchase import LineItem, PurchaseRecord, PurchaseStatus, normalize_contact
from domain.time import parse_utc_datetime, to_iso_utc, utc_now
from repositories.entitlement_store import TransientStoreError

logger = logging.getLogger(__name__)

# Keep these aligned with your database schema.
_PURCHASES_TABLE: str = "purchases"
_LINE_ITEMS_TABLE: str = "purchase_line_items"
_CREATE_FUNCTION: str = "create_purchase_if_absent"
_INCREMENT_FUNCTION: str = "increment_download_if_below"


def _row_to_purchase(row: Mapping[str, Any]) -> PurchaseRecord:
    """Convert a purchases row (with embedded line items) into a PurchaseRecord."""

    item_rows = sorted(row.get(_LINE_ITEMS_TABLE) or [], key=lambda r: int(r.get("position") or 0))
    return PurchaseRecord(
        purchase_id=str(row["purchase_id"]),
        customer_contact=str(row.get("customer_contact") or ""),
        line_items=tuple(
            LineItem(
                product_id=str(item["product_id"]),
                quantity_purchased=int(item["quantity_purchased"]),
                quantity_downloaded=int(item["quantity_downloaded"]),
                title=item.get("title"),
            )
            for item in item_rows
        ),
        created_at=parse_utc_datetime(row["created_at_utc"]),
        status=PurchaseStatus(row.get("status") or PurchaseStatus.FINALIZED.value),
        payment_status=row.get("payment_status"),
    )


class SupabaseEntitlementStore:
    def __init__(self, client, retention_seconds: int = 0) -> None:
        self._client = client
        self._retention_seconds = retention_seconds

    def _rpc(self, function: str, params: Mapping[str, Any]) -> Mapping[str, Any]:
        """
        Call a PostgreSQL function returning a JSON object.

        Supabase-py may raise APIError for JSON responses from RPC functions,
        success included, so the payload is recovered from the exception first.
        """

        try:
            response = self._client.rpc(function, dict(params)).execute()
        except APIError as e:
            try:
                payload = e.json() if callable(getattr(e, "json", None)) else {}
            except ValueError:
                payload = {}
            if isinstance(payload, Mapping) and "success" in payload:
                return payload
            raise TransientStoreError(function, str(e)) from e
        except httpx.HTTPError as e:
            raise TransientStoreError(function, str(e)) from e

        error = getattr(response, "error", None)
        if error:
            raise TransientStoreError(function, str(error))

        data = response.data
        if isinstance(data, list):
            data = data[0] if data else {}
        if not isinstance(data, Mapping):
            raise TransientStoreError(function, f"unexpected response {data!r}")
        return data

    def _select(self, operation: str, query) -> List[Mapping[str, Any]]:
        try:
            response = query.execute()
        except (APIError, httpx.HTTPError) as e:
            raise TransientStoreError(operation, str(e)) from e

        error = getattr(response, "error", None)
        if error:
            raise TransientStoreError(operation, str(error))
        return getattr(response, "data", None) or []

    def put_if_absent(self, record: PurchaseRecord) -> bool:
        expires_at = None
        if self._retention_seconds > 0:
            expires_at = to_iso_utc(
                record.created_at + timedelta(seconds=self._retention_seconds), name="expires_at"
            )

        result = self._rpc(
            _CREATE_FUNCTION,
            {
                "p_purchase_id": record.purchase_id,
                "p_customer_contact": record.customer_contact,
                "p_created_at": to_iso_utc(record.created_at, name="created_at"),
                "p_status": record.status.value,
                "p_payment_status": record.payment_status,
                "p_expires_at": expires_at,
                "p_line_items": [
                    {
                        "product_id": item.product_id,
                        "title": item.title,
                        "quantity_purchased": item.quantity_purchased,
                        "quantity_downloaded": item.quantity_downloaded,
                    }
                    for item in record.line_items
                ],
            },
        )
        if not result.get("success"):
            raise TransientStoreError(_CREATE_FUNCTION, str(result.get("message") or result))
        return bool(result.get("created"))

    def get(self, purchase_id: str) -> Optional[PurchaseRecord]:
        query = (
            self._client.table(_PURCHASES_TABLE)
            .select(f"*, {_LINE_ITEMS_TABLE}(*)")
            .eq("purchase_id", purchase_id)
            .limit(1)
        )
        rows = self._select("get", query)
        if not rows:
            return None

        row = rows[0]
        expires_at = row.get("expires_at_utc")
        if expires_at and parse_utc_datetime(expires_at) <= utc_now():
            return None
        return _row_to_purchase(row)

    def conditional_increment(self, purchase_id: str, product_id: str) -> bool:
        result = self._rpc(
            _INCREMENT_FUNCTION,
            {"p_purchase_id": purchase_id, "p_product_id": product_id},
        )
        incremented = bool(result.get("success"))
        if not incremented:
            logger.debug(
                "Conditional increment refused",
                extra={"purchase_id": purchase_id, "product_id": product_id, "error": result.get("error")},
            )
        return incremented

    def get_by_secondary_index(self, customer_contact: str) -> List[str]:
        query = (
            self._client.table(_PURCHASES_TABLE)
            .select("purchase_id, created_at_utc")
            .eq("customer_contact", normalize_contact(customer_contact))
            .order("created_at_utc", desc=True)
        )
        return [str(row["purchase_id"]) for row in self._select("get_by_secondary_index", query)]


__all__ = ["SupabaseEntitlementStore"]
