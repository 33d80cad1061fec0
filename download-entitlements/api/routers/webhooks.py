"""
Payment Webhook Endpoint.

Receives "payment completed" notifications from the payment gateway and hands
them to purchase ingestion.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from api.dependencies import get_line_item_source, get_notifier, get_settings, get_store
from api.models import WebhookResponse
from repositories.entitlement_store import EntitlementStore, TransientStoreError
from services.ingestion_service import process_payment_webhook
from services.notification_service import PurchaseNotifier
from services.payment_events import (
    InvalidPaymentEventError,
    LineItemSource,
    PaymentGatewayError,
    WebhookAuthenticationError,
)
from settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/webhooks/payment",
    response_model=WebhookResponse,
    summary="Payment Webhook",
    description="Verify and ingest a payment-completed event. Safe to deliver more than once."
)
async def payment_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    settings: Settings = Depends(get_settings),
    store: EntitlementStore = Depends(get_store),
    line_item_source: Optional[LineItemSource] = Depends(get_line_item_source),
    notifier: PurchaseNotifier = Depends(get_notifier),
):
    """
    Ingest a payment-completed event.

    **Process:**
    1. Verifies the `Stripe-Signature` header against the raw body
    2. Ignores events that do not confirm a payment
    3. Creates the purchase once; repeated deliveries are acknowledged as duplicates

    **Status codes:**
    - 200: processed, duplicate, or ignored
    - 401: signature could not be verified (nothing stored)
    - 422: authentic event that does not describe a valid purchase
    - 503: store or gateway unavailable; the gateway should retry
    """
    if not settings.stripe_webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET is not set")
        raise HTTPException(status_code=500, detail="Webhook secret not configured")

    payload = await request.body()

    try:
        result = await run_in_threadpool(
            process_payment_webhook,
            store,
            payload,
            stripe_signature,
            settings.stripe_webhook_secret,
            tolerance=settings.stripe_webhook_tolerance_seconds,
            line_item_source=line_item_source,
            notifier=notifier,
        )
    except WebhookAuthenticationError as e:
        logger.warning("Rejected unverifiable payment event", extra={"error": str(e)})
        raise HTTPException(status_code=401, detail="Invalid signature")
    except InvalidPaymentEventError as e:
        logger.error("Invalid payment event", extra={"error": str(e)})
        raise HTTPException(status_code=422, detail=str(e))
    except (PaymentGatewayError, TransientStoreError) as e:
        logger.warning("Payment event not processed; awaiting redelivery", extra={"error": str(e)})
        raise HTTPException(
            status_code=503,
            detail="Temporarily unable to process event",
            headers={"Retry-After": "5"},
        )

    if result is None:
        return WebhookResponse(received=True)

    return WebhookResponse(received=True, purchase_id=result.purchase_id, created=result.created)
