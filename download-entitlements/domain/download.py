"""
Domain: Download authorization decisions.

A decision is either a grant (one copy may be released) or a denial with a
reason. Denials are results, not exceptions: they are terminal, user-visible
outcomes. Transient store failures are never represented here.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class DenialReason(str, Enum):
    NOT_FOUND = "NotFound"
    NOT_PURCHASED = "NotPurchased"
    LIMIT_REACHED = "LimitReached"

    @property
    def http_status(self) -> int:
        return 403 if self is DenialReason.LIMIT_REACHED else 404

    @property
    def message(self) -> str:
        if self is DenialReason.NOT_FOUND:
            return "Purchase not found. If you just paid, try again shortly."
        if self is DenialReason.NOT_PURCHASED:
            return "This product was not part of your purchase."
        return "All purchased copies have already been downloaded."


@dataclass(frozen=True, slots=True)
class DownloadDecision:
    """
    Outcome of one authorization attempt.

    quantity_purchased / quantity_downloaded are reported when the line item is
    known (grants, and LIMIT_REACHED denials) so the caller can render
    "k of N remaining".
    """

    granted: bool
    purchase_id: str
    product_id: str
    reason: Optional[DenialReason] = None
    quantity_purchased: Optional[int] = None
    quantity_downloaded: Optional[int] = None

    def __post_init__(self) -> None:
        if self.granted and self.reason is not None:
            raise ValueError("A granted decision cannot carry a denial reason")
        if not self.granted and self.reason is None:
            raise ValueError("A denied decision requires a reason")

    @classmethod
    def grant(
        cls,
        purchase_id: str,
        product_id: str,
        quantity_purchased: Optional[int] = None,
        quantity_downloaded: Optional[int] = None,
    ) -> "DownloadDecision":
        return cls(
            granted=True,
            purchase_id=purchase_id,
            product_id=product_id,
            quantity_purchased=quantity_purchased,
            quantity_downloaded=quantity_downloaded,
        )

    @classmethod
    def deny(
        cls,
        purchase_id: str,
        product_id: str,
        reason: DenialReason,
        quantity_purchased: Optional[int] = None,
        quantity_downloaded: Optional[int] = None,
    ) -> "DownloadDecision":
        return cls(
            granted=False,
            purchase_id=purchase_id,
            product_id=product_id,
            reason=reason,
            quantity_purchased=quantity_purchased,
            quantity_downloaded=quantity_downloaded,
        )

    @property
    def remaining(self) -> Optional[int]:
        if self.quantity_purchased is None or self.quantity_downloaded is None:
            return None
        return max(0, self.quantity_purchased - self.quantity_downloaded)


__all__ = ["DenialReason", "DownloadDecision"]
