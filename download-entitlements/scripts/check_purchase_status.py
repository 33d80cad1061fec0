#!/usr/bin/env python3
"""
Check purchase status - what a customer has bought and how much is left.

Usage:
    python check_purchase_status.py cs_live_a1b2c3
    python check_purchase_status.py --contact customer@example.com
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from repositories.store_factory import build_store
from services.entitlement_service import (
    PurchaseEntitlements,
    get_entitlements,
    get_entitlements_by_contact,
    wait_for_entitlements,
)
from settings import load_settings


def print_entitlements(entitlements: PurchaseEntitlements) -> None:
    print("=" * 60)
    print(f"PURCHASE {entitlements.purchase_id}")
    print("=" * 60)
    print(f"Customer:         {entitlements.customer_contact}")
    print(f"Created (UTC):    {entitlements.created_at.isoformat()}")
    print(f"Payment status:   {entitlements.payment_status or 'N/A'}")
    print()
    print(f"{'Product':<30} {'Bought':>7} {'Used':>7} {'Left':>7}")
    print("-" * 60)
    for item in entitlements.items:
        print(f"{item.product_id:<30} {item.quantity_purchased:>7} {item.quantity_downloaded:>7} {item.remaining:>7}")
    print("-" * 60)
    print(f"{'Total remaining':<46} {entitlements.total_remaining:>7}")
    print("=" * 60)


def main() -> int:
    parser = argparse.ArgumentParser(description="Show download entitlements for a purchase")
    parser.add_argument("purchase_id", nargs="?", help="Checkout session id")
    parser.add_argument("--contact", help="Look up the most recent purchase for this contact instead")
    parser.add_argument(
        "--wait",
        action="store_true",
        help="Keep polling (LOOKUP_RETRY_ATTEMPTS x LOOKUP_RETRY_DELAY_SECONDS) while the webhook is in flight"
    )
    args = parser.parse_args()

    if not args.purchase_id and not args.contact:
        parser.error("a purchase_id or --contact is required")

    settings = load_settings()
    store = build_store(settings)

    def lookup():
        if args.purchase_id:
            return get_entitlements(store, args.purchase_id)
        return get_entitlements_by_contact(store, args.contact)

    attempts = settings.lookup_retry_attempts if args.wait else 1
    outcome = wait_for_entitlements(
        lookup,
        attempts=attempts,
        delay_seconds=settings.lookup_retry_delay_seconds,
    )

    if outcome.still_processing:
        print(f"No purchase found after {outcome.attempts} attempt(s).")
        return 1
    entitlements = outcome.entitlements

    print_entitlements(entitlements)
    return 0


if __name__ == "__main__":
    sys.exit(main())
