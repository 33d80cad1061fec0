"""
Payment gateway events.

Turns a raw Stripe webhook delivery into a PaymentCompletedEvent:

1. verify_payment_event(): signature check with the Stripe SDK. Nothing is
   parsed, let alone persisted, before this passes.
2. parse_payment_completed(): picks the completed-payment events, extracts
   the checkout session id (the purchase_id), the customer contact and the
   purchased (product_id, quantity) pairs.

Line items are taken from the first source that yields any:
- line items embedded in the session object
- line items fetched from Stripe for the session (StripeLineItemSource)
- the `cart_items` JSON in the session metadata

When the metadata carries the storefront cart, each Stripe line item takes its
product_id from the matching cart entry (by name/title or metadata.productId).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

import stripe

from domain.purchase import PaymentCompletedEvent, PurchasedProduct

logger = logging.getLogger(__name__)

HANDLED_EVENT_TYPES = (
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
)

# Delayed payment methods report "unpaid" on checkout.session.completed and
# confirm later with checkout.session.async_payment_succeeded.
PAID_STATUSES = ("paid", "no_payment_required")

LineItemSource = Callable[[str], List[Mapping[str, Any]]]


class WebhookAuthenticationError(Exception):
    """Raised when an inbound event cannot be verified as coming from the gateway."""
    pass


class InvalidPaymentEventError(Exception):
    """Raised when a verified completed-payment event cannot describe a purchase."""
    pass


class PaymentGatewayError(Exception):
    """Raised when the gateway could not be queried (retryable)."""
    pass


def verify_payment_event(
    payload: bytes,
    signature: Optional[str],
    secret: str,
    tolerance: int = 300,
) -> Dict[str, Any]:
    """
    Verify a webhook delivery and return the decoded event.

    Raises:
        WebhookAuthenticationError: missing or invalid signature, stale
            timestamp, or a body that is not a JSON event.
    """

    if not secret:
        raise WebhookAuthenticationError("Webhook secret is not configured")
    if not signature:
        raise WebhookAuthenticationError("Missing Stripe-Signature header")

    try:
        stripe.Webhook.construct_event(payload, signature, secret, tolerance=tolerance)
    except stripe.SignatureVerificationError as e:
        raise WebhookAuthenticationError(f"Webhook signature verification failed: {e}") from e
    except ValueError as e:
        raise WebhookAuthenticationError(f"Webhook payload is not valid JSON: {e}") from e

    event = json.loads(payload)
    if not isinstance(event, dict):
        raise WebhookAuthenticationError("Webhook payload is not an event object")
    return event


def _to_plain(obj: Any) -> Dict[str, Any]:
    """Plain-dict copy of a Stripe API object (or pass a mapping through)."""

    if isinstance(obj, Mapping):
        return dict(obj)
    # StripeObject renders itself as its JSON representation.
    try:
        plain = json.loads(str(obj))
    except ValueError as e:
        raise InvalidPaymentEventError(f"Line item is not an object: {obj!r}") from e
    if not isinstance(plain, dict):
        raise InvalidPaymentEventError(f"Line item is not an object: {obj!r}")
    return plain


def _mapping(value: Any, what: str) -> Mapping[str, Any]:
    """Treat a missing value as empty; reject anything that is not an object."""

    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise InvalidPaymentEventError(f"{what} must be an object, got {type(value).__name__}")
    return value


def _parse_quantity(raw: Any, product_id: str) -> int:
    if raw is None:
        return 1
    if isinstance(raw, int) and not isinstance(raw, bool):
        quantity = raw
    elif isinstance(raw, str) and raw.strip().isdigit():
        quantity = int(raw)
    else:
        raise InvalidPaymentEventError(f"Invalid quantity {raw!r} for product {product_id!r}")
    if quantity < 1:
        raise InvalidPaymentEventError(f"Invalid quantity {raw!r} for product {product_id!r}")
    return quantity


def _cart_entries(metadata: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    """Storefront cart snapshot from the session metadata (`cart_items` JSON)."""

    raw = metadata.get("cart_items")
    if not raw:
        return []
    try:
        cart_items = json.loads(raw) if isinstance(raw, str) else raw
    except ValueError as e:
        raise InvalidPaymentEventError(f"cart_items metadata is not valid JSON: {e}") from e
    if not isinstance(cart_items, list):
        raise InvalidPaymentEventError("cart_items metadata must be a list")
    for entry in cart_items:
        if not isinstance(entry, Mapping):
            raise InvalidPaymentEventError(f"cart_items entry must be an object, got {entry!r}")
    return cart_items


def _cart_product_id(entry: Mapping[str, Any]) -> Optional[str]:
    product_id = entry.get("productId") or entry.get("id")
    return str(product_id) if product_id else None


def _match_cart_entry(
    cart_entries: List[Mapping[str, Any]],
    name: Optional[str],
    metadata_product_id: Optional[str],
) -> Optional[Mapping[str, Any]]:
    """
    Find the cart entry a Stripe line item was created from.

    Checkout sessions are built from ad-hoc price_data, so Stripe products only
    carry the display name; the cart entry holds the catalog product id.
    """

    for entry in cart_entries:
        if name and (entry.get("name") == name or entry.get("title") == name):
            return entry
        if metadata_product_id and _cart_product_id(entry) == metadata_product_id:
            return entry
    return None


def _product_from_line_item(
    line_item: Mapping[str, Any],
    cart_entries: List[Mapping[str, Any]],
) -> PurchasedProduct:
    price = _mapping(line_item.get("price"), "price")
    product = price.get("product")

    stripe_product_id = None
    metadata_product_id = None
    title = line_item.get("description")
    if isinstance(product, Mapping):
        metadata_product_id = _mapping(product.get("metadata"), "product metadata").get("productId")
        stripe_product_id = product.get("id")
        title = product.get("name") or title
    elif isinstance(product, str):
        stripe_product_id = product

    entry = _match_cart_entry(cart_entries, title, metadata_product_id)
    product_id = (
        (_cart_product_id(entry) if entry is not None else None)
        or metadata_product_id
        or stripe_product_id
        or line_item.get("id")
    )

    if not product_id or not str(product_id).strip():
        raise InvalidPaymentEventError("Line item without a product identifier")

    product_id = str(product_id)
    return PurchasedProduct(
        product_id=product_id,
        quantity=_parse_quantity(line_item.get("quantity"), product_id),
        title=title,
    )


def _products_from_cart(cart_entries: List[Mapping[str, Any]]) -> List[PurchasedProduct]:
    products = []
    for entry in cart_entries:
        product_id = _cart_product_id(entry)
        if not product_id:
            raise InvalidPaymentEventError("cart_items entry without productId")
        products.append(
            PurchasedProduct(
                product_id=product_id,
                quantity=_parse_quantity(entry.get("quantity"), product_id),
                title=entry.get("title") or entry.get("name"),
            )
        )
    return products


def parse_payment_completed(
    event: Mapping[str, Any],
    line_item_source: Optional[LineItemSource] = None,
) -> Optional[PaymentCompletedEvent]:
    """
    Extract the purchase from a verified event.

    Returns None for events that do not (yet) confirm a payment.

    Line items are matched to the storefront cart (by name/title, or by the
    product's metadata.productId) so the stored product id is the catalog id;
    Stripe ids are used only for line items with no matching cart entry.

    Raises:
        InvalidPaymentEventError: the event confirms a payment but cannot be
            turned into a purchase (no session id, no contact, bad line items,
            malformed nested objects).
        PaymentGatewayError: fetching line items from the gateway failed.
    """

    event_type = event.get("type")
    if event_type not in HANDLED_EVENT_TYPES:
        logger.info("Ignoring unhandled payment event", extra={"event_type": event_type})
        return None

    session = _mapping(_mapping(event.get("data"), "event data").get("object"), "checkout session")
    session_id = session.get("id")
    if not session_id:
        raise InvalidPaymentEventError("Checkout session id missing from event")

    payment_status = session.get("payment_status")
    if payment_status not in PAID_STATUSES:
        logger.info(
            "Checkout session not paid yet; waiting for confirmation",
            extra={"purchase_id": session_id, "payment_status": payment_status},
        )
        return None

    customer_details = _mapping(session.get("customer_details"), "customer_details")
    customer_contact = session.get("customer_email") or customer_details.get("email")
    if not customer_contact:
        raise InvalidPaymentEventError(f"Customer email not found in checkout session {session_id}")

    cart_entries = _cart_entries(_mapping(session.get("metadata"), "metadata"))

    embedded = _mapping(session.get("line_items"), "line_items").get("data") or []
    if not isinstance(embedded, list):
        raise InvalidPaymentEventError("line_items.data must be a list")
    line_items = [_to_plain(item) for item in embedded]
    if not line_items and line_item_source is not None:
        line_items = [_to_plain(item) for item in line_item_source(session_id)]

    if line_items:
        products = [_product_from_line_item(item, cart_entries) for item in line_items]
    else:
        products = _products_from_cart(cart_entries)

    return PaymentCompletedEvent(
        purchase_id=str(session_id),
        customer_contact=str(customer_contact),
        products=tuple(products),
        payment_status=payment_status,
    )


class StripeLineItemSource:
    """Fetches a checkout session's line items, with products expanded."""

    def __init__(self, api_key: str) -> None:
        self._api_key = api_key

    def __call__(self, session_id: str) -> List[Mapping[str, Any]]:
        try:
            line_items = stripe.checkout.Session.list_line_items(
                session_id,
                api_key=self._api_key,
                expand=["data.price.product"],
                limit=100,
            )
            return [_to_plain(item) for item in line_items.auto_paging_iter()]
        except stripe.StripeError as e:
            logger.warning(
                "Failed to fetch line items from Stripe",
                extra={"purchase_id": session_id, "error": str(e)},
            )
            raise PaymentGatewayError(f"Could not fetch line items for {session_id}: {e}") from e


__all__ = [
    "HANDLED_EVENT_TYPES",
    "InvalidPaymentEventError",
    "LineItemSource",
    "PaymentGatewayError",
    "StripeLineItemSource",
    "WebhookAuthenticationError",
    "parse_payment_completed",
    "verify_payment_event",
]
