"""
Purchases API Endpoints.

Entitlement lookups for the storefront's post-checkout page.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from api.dependencies import get_settings, get_store, validate_purchase_id
from api.models import (
    EntitlementItemResponse,
    EntitlementsResponse,
    ProcessingResponse,
    PurchaseSummary,
)
from domain.download import DenialReason
from repositories.entitlement_store import EntitlementStore, TransientStoreError
from services.entitlement_service import (
    PurchaseEntitlements,
    get_entitlements,
    get_entitlements_by_contact,
    wait_for_entitlements,
)
from settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(entitlements: PurchaseEntitlements) -> EntitlementsResponse:
    return EntitlementsResponse(
        purchase=PurchaseSummary(
            purchase_id=entitlements.purchase_id,
            customer_contact=entitlements.customer_contact,
            created_at=entitlements.created_at,
            payment_status=entitlements.payment_status,
        ),
        downloads=[
            EntitlementItemResponse(
                product_id=item.product_id,
                title=item.title,
                quantity_purchased=item.quantity_purchased,
                quantity_downloaded=item.quantity_downloaded,
                remaining=item.remaining,
                can_download=item.can_download,
                download_url=f"/api/v1/downloads/{item.download_ref}" if item.download_ref else None,
            )
            for item in entitlements.items
        ],
        total_remaining=entitlements.total_remaining,
    )


def _processing(settings: Settings) -> JSONResponse:
    body = ProcessingResponse(
        message=DenialReason.NOT_FOUND.message,
        retry_after_seconds=settings.lookup_retry_delay_seconds,
    )
    return JSONResponse(
        status_code=404,
        content=body.model_dump(),
        headers={"Retry-After": str(max(1, round(settings.lookup_retry_delay_seconds)))},
    )


def _store_unavailable(e: TransientStoreError) -> HTTPException:
    logger.warning("Entitlement store unavailable", extra={"error": str(e)})
    return HTTPException(
        status_code=503,
        detail="Entitlement store unavailable, please retry",
        headers={"Retry-After": "2"},
    )


@router.get(
    "/purchases/{purchase_id}/entitlements",
    response_model=EntitlementsResponse,
    responses={404: {"model": ProcessingResponse}},
    summary="Get Purchase Entitlements",
    description="List the products in a purchase and how many copies of each can still be downloaded."
)
def get_purchase_entitlements(
    purchase_id: str,
    wait: bool = Query(False, description="Poll briefly while the payment is still being processed"),
    settings: Settings = Depends(get_settings),
    store: EntitlementStore = Depends(get_store),
):
    """
    Get download entitlements for a purchase.

    The payment webhook may arrive after the customer is redirected back from
    checkout. With `wait=true` the lookup is retried a few times
    (LOOKUP_RETRY_ATTEMPTS x LOOKUP_RETRY_DELAY_SECONDS) before answering.

    **Responses:**
    - 200: entitlements with a `download_url` for every item that still has copies
    - 404: purchase not visible (yet); body has `status: "processing"` and a Retry-After header
    - 400: malformed purchase id
    - 503: store unavailable
    """
    purchase_id = validate_purchase_id(purchase_id, settings)

    try:
        if wait:
            outcome = wait_for_entitlements(
                lambda: get_entitlements(store, purchase_id),
                attempts=settings.lookup_retry_attempts,
                delay_seconds=settings.lookup_retry_delay_seconds,
            )
            entitlements = outcome.entitlements
        else:
            entitlements = get_entitlements(store, purchase_id)
    except TransientStoreError as e:
        raise _store_unavailable(e)

    if entitlements is None:
        logger.info("Purchase not visible yet", extra={"purchase_id": purchase_id, "wait": wait})
        return _processing(settings)

    return _to_response(entitlements)


@router.get(
    "/entitlements",
    response_model=EntitlementsResponse,
    responses={404: {"model": ProcessingResponse}},
    summary="Find Entitlements by Contact",
    description="Fallback lookup by the customer's contact address; returns the most recent purchase."
)
def find_entitlements_by_contact(
    contact: str = Query(..., min_length=3, description="Customer contact address used at checkout"),
    settings: Settings = Depends(get_settings),
    store: EntitlementStore = Depends(get_store),
):
    """
    Find entitlements by customer contact.

    Used when the storefront lost the purchase id (e.g. the customer opened the
    confirmation link on another device). If the contact has several
    purchases, the most recent one is returned.
    """
    try:
        entitlements = get_entitlements_by_contact(store, contact)
    except TransientStoreError as e:
        raise _store_unavailable(e)

    if entitlements is None:
        return _processing(settings)

    return _to_response(entitlements)
