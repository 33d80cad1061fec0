#!/usr/bin/env python3
"""
Legacy Purchase Import Script

Loads purchase documents exported from the previous storefront's key-value
store into the configured Entitlement Store:
- Accepts a JSON list of documents, or a JSON object of key -> document
  (keys like "purchase:cs_live_..." as produced by a KV dump)
- Translates legacy field names through the record codec
- Uses put_if_absent, so re-running the import never overwrites live counters

Usage:
    python import_legacy_purchases.py purchases.json
    python import_legacy_purchases.py purchases.json --dry-run
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Tuple

# Add parent directory to path to import modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from repositories.entitlement_store import EntitlementStore
from repositories.record_codec import document_to_purchase
from repositories.store_factory import build_store
from settings import load_settings

KEY_PREFIX = "purchase:"


@dataclass
class ImportResult:
    """Results from a legacy import run."""
    total: int = 0
    imported: int = 0
    already_present: int = 0
    failed: int = 0
    errors: list[dict] = field(default_factory=list)


def iter_documents(data: Any) -> Iterator[Tuple[Optional[str], dict]]:
    """
    Yield (purchase_id or None, document) pairs from an export.

    For keyed exports the purchase id comes from the key; for lists it comes
    from the document itself.
    """
    if isinstance(data, list):
        for document in data:
            yield None, document
    elif isinstance(data, dict):
        for key, document in data.items():
            purchase_id = key[len(KEY_PREFIX):] if key.startswith(KEY_PREFIX) else key
            yield purchase_id, document
    else:
        raise ValueError("Export must be a JSON list or object")


def import_documents(
    store: EntitlementStore,
    documents: Iterable[Tuple[Optional[str], dict]],
    dry_run: bool = False,
) -> ImportResult:
    """
    Import legacy documents into a store.

    Args:
        store: Destination Entitlement Store
        documents: (purchase_id, document) pairs, see iter_documents()
        dry_run: Translate and validate only

    Returns:
        ImportResult with per-document errors
    """
    result = ImportResult()

    for position, (purchase_id, document) in enumerate(documents, start=1):
        result.total += 1
        try:
            record = document_to_purchase(document, purchase_id=purchase_id)
        except (ValueError, TypeError) as e:
            result.failed += 1
            result.errors.append({"position": position, "purchase_id": purchase_id, "error": str(e)})
            continue

        if dry_run:
            result.imported += 1
            continue

        if store.put_if_absent(record):
            result.imported += 1
        else:
            result.already_present += 1

    return result


def print_summary(result: ImportResult, dry_run: bool) -> None:
    """Print import summary statistics."""
    print()
    print("=" * 60)
    print("IMPORT SUMMARY" + (" (DRY RUN)" if dry_run else ""))
    print("=" * 60)
    print(f"Documents:        {result.total}")
    print(f"Imported:         {result.imported}")
    print(f"Already present:  {result.already_present}")
    print(f"Failed:           {result.failed}")

    if result.errors:
        print()
        print("First 5 errors:")
        for error in result.errors[:5]:
            print(f"  - #{error['position']} ({error['purchase_id'] or 'no key'}): {error['error']}")
        if len(result.errors) > 5:
            print(f"  ... and {len(result.errors) - 5} more")

    print("=" * 60)


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Import legacy purchase documents into the Entitlement Store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Import into the store selected by STORE_BACKEND
  python import_legacy_purchases.py purchases.json

  # Validate the export without writing
  python import_legacy_purchases.py purchases.json --dry-run
        """
    )

    parser.add_argument(
        "export_path",
        help="Path to the JSON export"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Translate and validate documents without writing to the store"
    )

    args = parser.parse_args()

    settings = load_settings()
    logging.basicConfig(level=settings.log_level)

    try:
        data = json.loads(Path(args.export_path).read_text(encoding="utf-8"))
        store = build_store(settings)

        print(f"Importing {args.export_path} into the {settings.store_backend} store...")
        result = import_documents(store, iter_documents(data), dry_run=args.dry_run)
        print_summary(result, args.dry_run)

        return 1 if result.failed > 0 else 0

    except KeyboardInterrupt:
        print("\n\nImport interrupted by user")
        return 130

    except Exception as e:
        print(f"\nFATAL ERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
