"""Customer progress value object and its stamp/claim state machine.

States: NEW -> ACCRUING -> COMPLETED -> CLAIMED (-> ACCRUING, next cycle).

Transitions are pure functions that return a new CustomerProgress. The
persistence layer locks the row, applies the transition and writes the
result back in one transaction.

Invariants kept by every transition:
- 0 <= current_stamps <= max_stamps
- is_completed iff current_stamps >= max_stamps
- rewards_claimed never decreases
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum

from loyalty_sync.domain.exceptions import RewardNotAvailableError


class ProgressState(str, Enum):
    """Position of a card in its accrual cycle."""

    NEW = "new"
    ACCRUING = "accruing"
    COMPLETED = "completed"
    CLAIMED = "claimed"


@dataclass(frozen=True)
class CustomerProgress:
    """Progress of one customer on one offer.

    Attributes:
        customer_id: Customer identifier
        offer_id: Offer identifier
        business_id: Owning business identifier
        current_stamps: Stamps in the current cycle
        max_stamps: Stamps required, copied from the offer at creation
        is_completed: Current cycle is full and awaiting a claim
        rewards_claimed: Durable count of claimed rewards across cycles
        completed_at: When the current cycle completed
        last_scan_date: Last stamp time
        first_scan_date: First stamp time
        total_scans: Stamps added across all cycles
        last_claimed_at: Time of the last reward claim
        last_claimed_by: Staff member or business that confirmed the claim
        last_claim_notes: Free-form notes recorded with the claim
        scheduled_expiration_at: Optional card expiry
        id: Database primary key
    """

    customer_id: str
    offer_id: str
    business_id: str
    current_stamps: int = 0
    max_stamps: int = 10
    is_completed: bool = False
    rewards_claimed: int = 0
    completed_at: datetime | None = None
    last_scan_date: datetime | None = None
    first_scan_date: datetime | None = None
    total_scans: int = 0
    last_claimed_at: datetime | None = None
    last_claimed_by: str | None = None
    last_claim_notes: str | None = None
    scheduled_expiration_at: datetime | None = None
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self):
        if self.max_stamps < 1:
            raise ValueError("max_stamps must be at least 1")
        if not 0 <= self.current_stamps <= self.max_stamps:
            raise ValueError(
                f"current_stamps must be within [0, {self.max_stamps}], got {self.current_stamps}"
            )
        if self.is_completed != (self.current_stamps >= self.max_stamps):
            raise ValueError("is_completed must match current_stamps >= max_stamps")
        if self.rewards_claimed < 0:
            raise ValueError("rewards_claimed cannot be negative")

    @property
    def state(self) -> ProgressState:
        if self.is_completed:
            return ProgressState.COMPLETED
        if self.current_stamps == 0:
            if self.last_claimed_at is not None:
                return ProgressState.CLAIMED
            if self.total_scans == 0:
                return ProgressState.NEW
        return ProgressState.ACCRUING

    @property
    def progress_percentage(self) -> int:
        return round(self.current_stamps / self.max_stamps * 100)

    @property
    def remaining_stamps(self) -> int:
        return max(0, self.max_stamps - self.current_stamps)

    @property
    def can_claim_reward(self) -> bool:
        return self.is_completed

    def days_to_complete(self, now: datetime | None = None) -> int | None:
        """
        Estimated days until the current cycle completes at the customer's pace.

        The pace is the stamps collected since the cycle started (the first
        scan, or the last claim) divided by the days elapsed. None once the
        card is completed or when there is not enough history to estimate.
        """
        cycle_start = self.last_claimed_at or self.first_scan_date
        if cycle_start is None or self.is_completed:
            return None

        days_elapsed = ((now or _utcnow()) - cycle_start).days
        if days_elapsed <= 0 or self.current_stamps <= 1:
            return None

        return math.ceil(self.remaining_stamps * days_elapsed / self.current_stamps)

    def to_dict(self) -> dict:
        return {
            "customerId": self.customer_id,
            "offerId": self.offer_id,
            "currentStamps": self.current_stamps,
            "maxStamps": self.max_stamps,
            "isCompleted": self.is_completed,
            "rewardsClaimed": self.rewards_claimed,
            "totalScans": self.total_scans,
            "progressPercentage": self.progress_percentage,
            "remainingStamps": self.remaining_stamps,
            "lastScanDate": self.last_scan_date.isoformat() if self.last_scan_date else None,
        }


@dataclass(frozen=True)
class StampResult:
    """Outcome of add_stamp()."""

    progress: CustomerProgress
    stamps_added: int
    reward_earned: bool
    already_completed: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_progress(
    customer_id: str,
    offer_id: str,
    business_id: str,
    max_stamps: int,
) -> CustomerProgress:
    """Seed an empty card for a first scan or signup."""
    return CustomerProgress(
        customer_id=customer_id,
        offer_id=offer_id,
        business_id=business_id,
        current_stamps=0,
        max_stamps=max_stamps,
    )


def add_stamp(
    progress: CustomerProgress,
    count: int = 1,
    now: datetime | None = None,
) -> StampResult:
    """Add stamps, clamping at max_stamps.

    A completed card that has not been claimed does not accrue: the same
    progress is returned with already_completed=True.

    Args:
        progress: Current progress (loaded under row lock)
        count: Stamps to add, at least 1
        now: Scan time

    Returns:
        StampResult with the new progress and whether this scan earned the reward

    Raises:
        ValueError: If count < 1
    """
    if count < 1:
        raise ValueError("count must be at least 1")

    if progress.is_completed:
        return StampResult(
            progress=progress,
            stamps_added=0,
            reward_earned=False,
            already_completed=True,
        )

    now = now or _utcnow()
    new_stamps = min(progress.current_stamps + count, progress.max_stamps)
    completed = new_stamps >= progress.max_stamps

    updated = replace(
        progress,
        current_stamps=new_stamps,
        is_completed=completed,
        completed_at=now if completed else None,
        last_scan_date=now,
        first_scan_date=progress.first_scan_date or now,
        total_scans=progress.total_scans + 1,
    )

    return StampResult(
        progress=updated,
        stamps_added=new_stamps - progress.current_stamps,
        reward_earned=completed,
    )


def claim_reward(
    progress: CustomerProgress,
    claimed_by: str | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> CustomerProgress:
    """Redeem a completed card and start a new cycle.

    Increments rewards_claimed and resets current_stamps to 0 in the same
    transition.

    Raises:
        RewardNotAvailableError: If the card is not completed
    """
    if not progress.is_completed:
        raise RewardNotAvailableError(
            f"Reward not available: {progress.current_stamps}/{progress.max_stamps} stamps"
        )

    return replace(
        progress,
        current_stamps=0,
        is_completed=False,
        completed_at=None,
        rewards_claimed=progress.rewards_claimed + 1,
        last_claimed_at=now or _utcnow(),
        last_claimed_by=claimed_by,
        last_claim_notes=notes,
    )
