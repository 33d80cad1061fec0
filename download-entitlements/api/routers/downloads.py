"""
Download API Endpoint.

Releases exactly one copy of a purchased product per successful request.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse

from api.dependencies import get_catalog, get_settings, get_store, validate_purchase_id
from api.models import DownloadDeniedResponse
from repositories.entitlement_store import EntitlementStore, TransientStoreError
from services.download_service import authorize_download
from services.file_delivery_service import FileNotAvailableError, ProductCatalog
from settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter()

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
    "X-Content-Type-Options": "nosniff",
}


@router.get(
    "/downloads/{purchase_id}/{product_id}",
    responses={
        302: {"description": "Redirect to the file"},
        403: {"model": DownloadDeniedResponse},
        404: {"model": DownloadDeniedResponse},
    },
    summary="Download Purchased File",
    description="Consume one purchased copy and deliver the file."
)
def download_file(
    purchase_id: str,
    product_id: str,
    settings: Settings = Depends(get_settings),
    store: EntitlementStore = Depends(get_store),
    catalog: ProductCatalog = Depends(get_catalog),
):
    """
    Download one copy of a purchased product.

    **Process:**
    1. Resolves the file for `product_id` (unknown or missing files return 404
       without consuming a copy)
    2. Atomically consumes one copy; concurrent requests can never exceed the
       purchased quantity
    3. Redirects to remote files, streams local ones

    **Denials:**
    - 404 `NotFound`: purchase unknown (or not processed yet)
    - 404 `NotPurchased`: product is not part of the purchase
    - 403 `LimitReached`: every purchased copy was already downloaded

    A copy is counted as soon as it is granted, even if the transfer is
    interrupted afterwards.
    """
    purchase_id = validate_purchase_id(purchase_id, settings)

    try:
        location = catalog.resolve(product_id)
    except FileNotAvailableError as e:
        logger.error(
            "No deliverable file for product",
            extra={"purchase_id": purchase_id, "product_id": product_id, "reason": e.reason},
        )
        raise HTTPException(status_code=404, detail="File not available")

    try:
        decision = authorize_download(store, purchase_id, product_id)
    except TransientStoreError as e:
        logger.warning("Download not authorized: store unavailable", extra={"error": str(e)})
        raise HTTPException(
            status_code=503,
            detail="Entitlement store unavailable, please retry",
            headers={"Retry-After": "2"},
        )

    if not decision.granted:
        body = DownloadDeniedResponse(
            reason=decision.reason.value,
            message=decision.reason.message,
            quantity_purchased=decision.quantity_purchased,
            quantity_downloaded=decision.quantity_downloaded,
            remaining=decision.remaining,
        )
        return JSONResponse(
            status_code=decision.reason.http_status,
            content=body.model_dump(),
            headers=NO_CACHE_HEADERS,
        )

    if location.is_remote:
        return RedirectResponse(location.url, status_code=302, headers=NO_CACHE_HEADERS)

    return FileResponse(
        location.path,
        filename=location.file_name,
        headers=NO_CACHE_HEADERS,
    )
