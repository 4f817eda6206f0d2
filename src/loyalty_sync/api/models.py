"""Pydantic models for the scan API JSON requests/responses.

Field names are snake_case in Python and camelCase on the wire, matching
what the business scanner app already consumes.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from loyalty_sync.domain.progress import CustomerProgress
from loyalty_sync.domain.tiers import TierDefinition, TierStatus, TierUpgrade
from loyalty_sync.handlers.sync_dispatcher import SyncReport


class CamelModel(BaseModel):
    """Base model serializing to camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProgressJSON(CamelModel):
    """Stamp progress on one card."""

    current_stamps: int = Field(..., description="Stamps in the current cycle")
    max_stamps: int = Field(..., description="Stamps required for the reward")
    is_completed: bool = Field(..., description="Reward earned and not yet claimed")
    rewards_claimed: int = Field(0, description="Rewards claimed across all cycles")
    total_scans: int = Field(0, description="Stamps added across all cycles")
    progress_percentage: int = Field(0, description="Completion of the current cycle")

    @classmethod
    def from_progress(cls, progress: CustomerProgress) -> "ProgressJSON":
        return cls(
            current_stamps=progress.current_stamps,
            max_stamps=progress.max_stamps,
            is_completed=progress.is_completed,
            rewards_claimed=progress.rewards_claimed,
            total_scans=progress.total_scans,
            progress_percentage=progress.progress_percentage,
        )


class WalletUpdateJSON(CamelModel):
    """Outcome of pushing to one wallet platform."""

    platform: str = Field(..., description="Apple Wallet or Google Wallet")
    success: bool = Field(..., description="Whether the pass was updated")
    updated: bool = Field(..., description="Whether the pass content changed remotely")
    notified: bool = Field(False, description="Whether the device was notified")
    error: Optional[str] = Field(None, description="Failure reason")

    @classmethod
    def from_report(cls, report: SyncReport | None) -> list["WalletUpdateJSON"]:
        if report is None:
            return []
        return [
            cls(
                platform=u.platform,
                success=u.success,
                updated=u.success,
                notified=u.notified,
                error=u.error,
            )
            for u in report.updates
        ]


class OfferSummaryJSON(CamelModel):
    """Offer identity shown to the scanner."""

    id: str
    title: str
    stamps_required: int


class ScanDataJSON(CamelModel):
    customer_id: str
    offer: OfferSummaryJSON
    progress: ProgressJSON
    reward_earned: bool = Field(..., description="This scan completed the card")
    already_completed: bool = Field(False, description="Card was already full; no stamp added")
    wallet_updates: list[WalletUpdateJSON] = Field(default_factory=list)


class ScanResponseJSON(CamelModel):
    """Response for POST /scan/progress."""

    success: bool = True
    message: str
    data: ScanDataJSON

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "success": True,
                "message": "Stamp added successfully",
                "data": {
                    "customerId": "cust_8f2a",
                    "offer": {"id": "off_12ab", "title": "Free Coffee", "stampsRequired": 5},
                    "progress": {
                        "currentStamps": 5,
                        "maxStamps": 5,
                        "isCompleted": True,
                        "rewardsClaimed": 0,
                        "totalScans": 5,
                        "progressPercentage": 100,
                    },
                    "rewardEarned": True,
                    "alreadyCompleted": False,
                    "walletUpdates": [
                        {"platform": "Apple Wallet", "success": False, "updated": False,
                         "notified": False, "error": "Apple Wallet is not configured"},
                        {"platform": "Google Wallet", "success": True, "updated": True,
                         "notified": True},
                    ],
                },
            }
        },
    )


class CustomerJSON(CamelModel):
    id: str


class VerifyDataJSON(CamelModel):
    customer: CustomerJSON
    offer: OfferSummaryJSON
    progress: ProgressJSON
    can_scan: bool


class VerifyResponseJSON(CamelModel):
    """Response for GET /scan/verify."""

    success: bool = True
    data: VerifyDataJSON


class ConfirmPrizeRequestJSON(CamelModel):
    """Body for POST /scan/confirm-prize."""

    notes: Optional[str] = Field(None, max_length=500, description="Fulfillment notes")


class TierJSON(CamelModel):
    name: str
    icon: str
    color: str
    min_rewards: int
    max_rewards: Optional[int] = None

    @classmethod
    def from_tier(cls, tier: TierDefinition) -> "TierJSON":
        return cls(
            name=tier.name,
            icon=tier.icon,
            color=tier.color,
            min_rewards=tier.min_rewards,
            max_rewards=tier.max_rewards,
        )


class TierStatusJSON(CamelModel):
    current_tier: TierJSON
    rewards_claimed: int
    is_top_tier: bool
    next_tier: Optional[TierJSON] = None
    rewards_to_next_tier: Optional[int] = None

    @classmethod
    def from_status(cls, status: TierStatus | None) -> Optional["TierStatusJSON"]:
        if status is None:
            return None
        return cls(
            current_tier=TierJSON.from_tier(status.current_tier),
            rewards_claimed=status.rewards_claimed,
            is_top_tier=status.is_top_tier,
            next_tier=TierJSON.from_tier(status.next_tier) if status.next_tier else None,
            rewards_to_next_tier=status.rewards_to_next_tier,
        )


class TierUpgradeJSON(CamelModel):
    old_tier: str
    new_tier: str

    @classmethod
    def from_upgrade(cls, upgrade: TierUpgrade | None) -> Optional["TierUpgradeJSON"]:
        if upgrade is None:
            return None
        return cls(old_tier=upgrade.old_tier, new_tier=upgrade.new_tier)


class ConfirmPrizeDataJSON(CamelModel):
    customer_id: str
    offer_id: str
    progress: ProgressJSON
    tier: Optional[TierStatusJSON] = None
    tier_upgrade: Optional[TierUpgradeJSON] = None
    new_cycle_started: bool = True
    total_completions: int
    wallet_updates: list[WalletUpdateJSON] = Field(default_factory=list)


class ConfirmPrizeResponseJSON(CamelModel):
    """Response for POST /scan/confirm-prize."""

    success: bool = True
    message: str
    data: ConfirmPrizeDataJSON
