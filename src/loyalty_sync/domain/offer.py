"""Offer domain model."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from loyalty_sync.domain.tiers import TierDefinition


class OfferStatus(str, Enum):
    """Lifecycle status of an offer."""

    ACTIVE = "active"
    PAUSED = "paused"
    EXPIRED = "expired"


class BarcodeFormat(str, Enum):
    """Barcode symbologies supported on wallet passes."""

    QR_CODE = "QR_CODE"
    PDF417 = "PDF417"


@dataclass(frozen=True)
class Offer:
    """A business's stamp-card program.

    Attributes:
        offer_id: Public offer identifier
        business_id: Owning business identifier
        title: Program title shown on passes
        stamps_required: Stamps needed for one reward
        description: Reward description
        business_name: Name printed on passes
        branch: Branch scoping label ("All Branches" when unscoped)
        status: Lifecycle status
        barcode_preference: Preferred barcode symbology
        loyalty_tiers: Custom tier ladder, None for the default ladder
        background_color: Pass background color
        customers: Denormalized count of customers with progress
        redeemed: Denormalized count of claimed rewards
    """

    offer_id: str
    business_id: str
    title: str
    stamps_required: int
    description: str | None = None
    business_name: str | None = None
    branch: str = "All Branches"
    status: OfferStatus = OfferStatus.ACTIVE
    barcode_preference: BarcodeFormat = BarcodeFormat.QR_CODE
    loyalty_tiers: tuple[TierDefinition, ...] | None = None
    background_color: str = "#3B82F6"
    customers: int = 0
    redeemed: int = 0
    created_at: datetime | None = None

    def __post_init__(self):
        if self.stamps_required < 1:
            raise ValueError("stamps_required must be at least 1")

    @property
    def is_active(self) -> bool:
        return self.status == OfferStatus.ACTIVE
