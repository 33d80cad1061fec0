"""
Pytest configuration.

Adds the download-entitlements directory to the Python path so that tests can
import domain, repositories, services and api, and provides shared fixtures.
"""

import hashlib
import hmac
import json
import sys
import time
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add the download-entitlements directory to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.purchase import LineItem, PurchaseRecord  # noqa: E402
from repositories.memory_store import InMemoryEntitlementStore  # noqa: E402

WEBHOOK_SECRET = "whsec_test_secret"
CREATED_AT = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header value for `payload`."""

    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def checkout_event(
    session_id: str = "cs_test_abc",
    email: str = "Buyer@Example.com",
    line_items=None,
    payment_status: str = "paid",
    event_type: str = "checkout.session.completed",
    metadata=None,
) -> dict:
    session = {
        "id": session_id,
        "object": "checkout.session",
        "customer_details": {"email": email},
        "payment_status": payment_status,
        "metadata": metadata or {},
    }
    if line_items is not None:
        session["line_items"] = {"object": "list", "data": line_items}
    return {
        "id": "evt_test_1",
        "object": "event",
        "type": event_type,
        "data": {"object": session},
    }


def stripe_line_item(product_id: str, quantity=1, name: str | None = None) -> dict:
    return {
        "id": f"li_{product_id}",
        "object": "item",
        "quantity": quantity,
        "description": name,
        "price": {
            "id": f"price_{product_id}",
            "product": {"id": f"prod_{product_id}", "name": name, "metadata": {"productId": product_id}},
        },
    }


def encode_event(event: dict) -> bytes:
    return json.dumps(event).encode("utf-8")


def make_record(
    purchase_id: str = "cs_test_abc",
    contact: str = "buyer@example.com",
    items=(("sunset-bay", 3, 0),),
    created_at: datetime = CREATED_AT,
) -> PurchaseRecord:
    return PurchaseRecord(
        purchase_id=purchase_id,
        customer_contact=contact,
        line_items=tuple(
            LineItem(product_id=product_id, quantity_purchased=purchased, quantity_downloaded=downloaded)
            for product_id, purchased, downloaded in items
        ),
        created_at=created_at,
        payment_status="paid",
    )


@pytest.fixture
def store() -> InMemoryEntitlementStore:
    return InMemoryEntitlementStore()
