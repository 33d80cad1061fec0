"""
API Request and Response Models.

Pydantic models for serializing responses.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Webhook Models
# ============================================================================

class WebhookResponse(BaseModel):
    """Acknowledgement returned to the payment gateway."""
    received: bool = True
    purchase_id: Optional[str] = None
    created: Optional[bool] = Field(
        None,
        description="True if this delivery created the purchase, False for a duplicate, null if ignored"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "received": True,
                "purchase_id": "cs_test_a1b2c3",
                "created": True
            }
        }


# ============================================================================
# Entitlement Models
# ============================================================================

class EntitlementItemResponse(BaseModel):
    """Download entitlement for one purchased product."""
    product_id: str
    title: Optional[str] = None
    quantity_purchased: int
    quantity_downloaded: int
    remaining: int
    can_download: bool
    download_url: Optional[str] = Field(
        None,
        description="Present only while copies remain"
    )


class PurchaseSummary(BaseModel):
    purchase_id: str
    customer_contact: str
    created_at: datetime
    payment_status: Optional[str] = None


class EntitlementsResponse(BaseModel):
    """What the customer can download right now."""
    purchase: PurchaseSummary
    downloads: List[EntitlementItemResponse]
    total_remaining: int

    class Config:
        json_schema_extra = {
            "example": {
                "purchase": {
                    "purchase_id": "cs_test_a1b2c3",
                    "customer_contact": "a@example.com",
                    "created_at": "2025-01-01T12:00:00Z",
                    "payment_status": "paid"
                },
                "downloads": [
                    {
                        "product_id": "sunset-bay",
                        "title": "Sunset Bay",
                        "quantity_purchased": 3,
                        "quantity_downloaded": 1,
                        "remaining": 2,
                        "can_download": True,
                        "download_url": "/api/v1/downloads/cs_test_a1b2c3/sunset-bay"
                    }
                ],
                "total_remaining": 2
            }
        }


class ProcessingResponse(BaseModel):
    """Returned while a purchase is not (yet) visible."""
    status: str = "processing"
    message: str
    retry_after_seconds: float

    class Config:
        json_schema_extra = {
            "example": {
                "status": "processing",
                "message": "Purchase not found. If you just paid, try again shortly.",
                "retry_after_seconds": 2
            }
        }


# ============================================================================
# Download Models
# ============================================================================

class DownloadDeniedResponse(BaseModel):
    """Structured denial for a download attempt."""
    reason: str
    message: str
    quantity_purchased: Optional[int] = None
    quantity_downloaded: Optional[int] = None
    remaining: Optional[int] = None

    class Config:
        json_schema_extra = {
            "example": {
                "reason": "LimitReached",
                "message": "All purchased copies have already been downloaded.",
                "quantity_purchased": 3,
                "quantity_downloaded": 3,
                "remaining": 0
            }
        }

