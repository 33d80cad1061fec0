"""
FastAPI dependencies.

Settings, the Entitlement Store, the product catalog and the gateway helpers
are built once per process and injected into the routers; tests replace them
through `app.dependency_overrides`.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException

from repositories.entitlement_store import EntitlementStore
from repositories.store_factory import build_store
from services.file_delivery_service import ProductCatalog
from services.notification_service import LoggingNotifier, PurchaseNotifier
from services.payment_events import LineItemSource, StripeLineItemSource
from settings import Settings, load_settings


@lru_cache
def get_settings() -> Settings:
    return load_settings()


@lru_cache
def _cached_store() -> EntitlementStore:
    return build_store(get_settings())


def get_store() -> EntitlementStore:
    return _cached_store()


@lru_cache
def _cached_catalog() -> ProductCatalog:
    settings = get_settings()
    return ProductCatalog.load(settings.product_catalog_path, media_root=settings.media_root)


def get_catalog() -> ProductCatalog:
    return _cached_catalog()


def get_line_item_source(settings: Settings = Depends(get_settings)) -> Optional[LineItemSource]:
    if not settings.stripe_secret_key:
        return None
    return StripeLineItemSource(settings.stripe_secret_key)


def get_notifier() -> PurchaseNotifier:
    return LoggingNotifier()


def validate_purchase_id(purchase_id: str, settings: Settings) -> str:
    """
    Boundary validation for purchase identifiers.

    Malformed ids are rejected here and never reach the store.
    """

    purchase_id = purchase_id.strip()
    if not purchase_id:
        raise HTTPException(status_code=400, detail="purchase_id is required")
    if len(purchase_id) > settings.purchase_id_max_length:
        raise HTTPException(status_code=400, detail="Invalid purchase ID format")
    if settings.purchase_id_prefix and not purchase_id.startswith(settings.purchase_id_prefix):
        raise HTTPException(
            status_code=400,
            detail=f'Invalid purchase ID format. Purchase ID must start with "{settings.purchase_id_prefix}"',
        )
    return purchase_id


__all__ = [
    "get_catalog",
    "get_line_item_source",
    "get_notifier",
    "get_settings",
    "get_store",
    "validate_purchase_id",
]
