"""Loyalty tier ladder: calculation and configuration-time validation.

A ladder is an ordered list of tiers keyed on the customer's durable
rewards_claimed counter. Calculation is a pure lookup; validation runs when
a business saves an offer, never during a scan.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

import structlog

logger = structlog.get_logger(__name__)

MIN_TIERS = 2
MAX_TIERS = 5

_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")


@dataclass(frozen=True)
class TierDefinition:
    """One rung of a tier ladder.

    Attributes:
        name: Display name (e.g. "Silver")
        min_rewards: Lowest rewards_claimed value in this tier
        max_rewards: Highest value, None for the unbounded top tier
        color: Hex color "#RRGGBB"
        icon: Emoji or glyph shown next to the name
        reward_boost: Optional bonus fraction in [0, 1]
    """

    name: str
    min_rewards: int
    max_rewards: int | None
    color: str
    icon: str
    reward_boost: float = 0.0

    def contains(self, rewards_claimed: int) -> bool:
        if rewards_claimed < self.min_rewards:
            return False
        return self.max_rewards is None or rewards_claimed <= self.max_rewards

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TierDefinition":
        """Build from the camelCase JSON stored on offers.loyalty_tiers."""
        max_rewards = data.get("maxRewards", data.get("max_rewards"))
        return cls(
            name=str(data["name"]),
            min_rewards=int(data.get("minRewards", data.get("min_rewards", 0))),
            max_rewards=None if max_rewards is None else int(max_rewards),
            color=str(data.get("color", "")),
            icon=str(data.get("icon", "")),
            reward_boost=float(data.get("rewardBoost", data.get("reward_boost", 0)) or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "minRewards": self.min_rewards,
            "maxRewards": self.max_rewards,
            "color": self.color,
            "icon": self.icon,
            "rewardBoost": self.reward_boost,
        }


DEFAULT_TIERS: tuple[TierDefinition, ...] = (
    TierDefinition(name="Bronze Member", min_rewards=1, max_rewards=2, color="#CD7F32", icon="🥉"),
    TierDefinition(name="Silver Member", min_rewards=3, max_rewards=5, color="#C0C0C0", icon="🥈"),
    TierDefinition(name="Gold Member", min_rewards=6, max_rewards=None, color="#FFD700", icon="🥇"),
)

NEW_MEMBER_TIER = TierDefinition(
    name="New Member", min_rewards=0, max_rewards=0, color="#6B7280", icon="👋"
)


@dataclass(frozen=True)
class TierStatus:
    """Computed tier position for one customer."""

    current_tier: TierDefinition
    rewards_claimed: int
    is_top_tier: bool
    next_tier: TierDefinition | None = None
    rewards_to_next_tier: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "currentTier": self.current_tier.to_dict(),
            "rewardsClaimed": self.rewards_claimed,
            "isTopTier": self.is_top_tier,
            "nextTier": self.next_tier.to_dict() if self.next_tier else None,
            "rewardsToNextTier": self.rewards_to_next_tier,
        }


@dataclass(frozen=True)
class TierUpgrade:
    """Tier change caused by a reward claim."""

    old_tier: str
    new_tier: str


@dataclass
class TierValidationResult:
    """Outcome of validate_tier_ladder()."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def calculate_customer_tier(
    rewards_claimed: int,
    tiers: Sequence[TierDefinition] | None = None,
) -> TierStatus | None:
    """Find the tier a customer sits in.

    Args:
        rewards_claimed: Durable count of claimed rewards
        tiers: Offer ladder; the default Bronze/Silver/Gold ladder when empty

    Returns:
        TierStatus, or None when no tier matches (misconfigured ladder)
    """
    ladder = sorted(tiers or DEFAULT_TIERS, key=lambda t: t.min_rewards)

    if rewards_claimed < 0:
        logger.warning("tier_negative_rewards", rewards_claimed=rewards_claimed)
        return None

    if rewards_claimed == 0 and ladder[0].min_rewards > 0:
        first = ladder[0]
        return TierStatus(
            current_tier=NEW_MEMBER_TIER,
            rewards_claimed=0,
            is_top_tier=False,
            next_tier=first,
            rewards_to_next_tier=first.min_rewards,
        )

    for index, tier in enumerate(ladder):
        if not tier.contains(rewards_claimed):
            continue
        next_tier = ladder[index + 1] if index + 1 < len(ladder) else None
        return TierStatus(
            current_tier=tier,
            rewards_claimed=rewards_claimed,
            is_top_tier=next_tier is None,
            next_tier=next_tier,
            rewards_to_next_tier=(next_tier.min_rewards - rewards_claimed) if next_tier else None,
        )

    logger.warning(
        "tier_not_matched",
        rewards_claimed=rewards_claimed,
        ladder=[t.name for t in ladder],
    )
    return None


def tiers_from_config(raw: Sequence[Mapping[str, Any]] | None) -> list[TierDefinition] | None:
    """Parse offers.loyalty_tiers JSON; None when the offer has no custom ladder."""
    if not raw:
        return None
    return [TierDefinition.from_dict(item) for item in raw]


def detect_tier_upgrade(before: TierStatus | None, after: TierStatus | None) -> TierUpgrade | None:
    """Report an upgrade only when both tiers are known and their names differ."""
    if before is None or after is None:
        return None
    if before.current_tier.name == after.current_tier.name:
        return None
    return TierUpgrade(old_tier=before.current_tier.name, new_tier=after.current_tier.name)


def validate_tier_ladder(tiers: Sequence[Mapping[str, Any]]) -> TierValidationResult:
    """Validate a business-supplied tier ladder.

    Rules:
    - 2 to 5 tiers, each with a name
    - first tier starts at 0 or 1 rewards, later tiers at 1 or more
    - minRewards strictly ascending
    - maxRewards >= minRewards; only the last tier is unbounded, and it must be
    - color is #RRGGBB, icon is required, rewardBoost within [0, 1]

    Gaps between one tier's maxRewards and the next tier's minRewards are
    reported as warnings.
    """
    result = TierValidationResult()

    if not isinstance(tiers, Sequence) or isinstance(tiers, (str, bytes)):
        result.errors.append("Tiers must be a list")
        return result

    if not MIN_TIERS <= len(tiers) <= MAX_TIERS:
        result.errors.append(f"Must have between {MIN_TIERS} and {MAX_TIERS} tiers")
        return result

    last_index = len(tiers) - 1
    previous_min: int | None = None
    previous_max: int | None = None

    for index, tier in enumerate(tiers):
        label = f"Tier {index + 1}"

        name = tier.get("name")
        if not name or not str(name).strip():
            result.errors.append(f"{label}: name is required")

        min_rewards = tier.get("minRewards")
        if not isinstance(min_rewards, int) or isinstance(min_rewards, bool):
            result.errors.append(f"{label}: minRewards must be an integer")
            min_rewards = None
        elif index == 0 and min_rewards not in (0, 1):
            result.errors.append(f"{label}: first tier must start at 0 or 1 rewards")
        elif index > 0 and min_rewards < 1:
            result.errors.append(f"{label}: minRewards must be at least 1")

        max_rewards = tier.get("maxRewards")
        if max_rewards is None:
            if index != last_index:
                result.errors.append(f"{label}: only the last tier can have unlimited maxRewards")
        elif not isinstance(max_rewards, int) or isinstance(max_rewards, bool):
            result.errors.append(f"{label}: maxRewards must be an integer or null")
            max_rewards = None
        else:
            if index == last_index:
                result.errors.append(f"{label}: last tier must have unlimited maxRewards (null)")
            if min_rewards is not None and max_rewards < min_rewards:
                result.errors.append(f"{label}: maxRewards must be >= minRewards")

        color = tier.get("color")
        if not color or not _HEX_COLOR.match(str(color)):
            result.errors.append(f"{label}: color must be a hex color like #RRGGBB")

        if not tier.get("icon"):
            result.errors.append(f"{label}: icon is required")

        boost = tier.get("rewardBoost")
        if boost is not None:
            if not isinstance(boost, (int, float)) or isinstance(boost, bool) or not 0 <= boost <= 1:
                result.errors.append(f"{label}: rewardBoost must be between 0 and 1")

        if min_rewards is not None and previous_min is not None:
            if min_rewards <= previous_min:
                result.errors.append(f"{label}: minRewards must be greater than the previous tier")
            elif previous_max is not None and min_rewards > previous_max + 1:
                result.warnings.append(
                    f"{label}: gap between {previous_max} and {min_rewards} rewards"
                )

        if min_rewards is not None:
            previous_min = min_rewards
        previous_max = max_rewards if isinstance(max_rewards, int) else None

    return result
