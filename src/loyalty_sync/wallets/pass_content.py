"""Human-readable pass text shared by both wallet platforms."""

from loyalty_sync.domain.offer import Offer
from loyalty_sync.domain.progress import CustomerProgress
from loyalty_sync.domain.tiers import TierStatus

EARNED_GLYPH = "⭐"
REMAINING_GLYPH = "☆"

# Above this many stamps the glyph row no longer fits on a pass
MAX_GLYPH_STAMPS = 10


def render_stamp_glyphs(current_stamps: int, max_stamps: int) -> str:
    """Render earned/required stamps, e.g. "⭐⭐⭐☆☆"."""
    if max_stamps > MAX_GLYPH_STAMPS:
        return f"{current_stamps}/{max_stamps}"
    current = max(0, min(current_stamps, max_stamps))
    return EARNED_GLYPH * current + REMAINING_GLYPH * (max_stamps - current)


def stamp_balance(progress: CustomerProgress) -> str:
    return f"{progress.current_stamps}/{progress.max_stamps}"


def progress_text(progress: CustomerProgress) -> str:
    if progress.is_completed:
        return "🎉 Reward ready! Show this card to redeem."
    remaining = progress.remaining_stamps
    noun = "stamp" if remaining == 1 else "stamps"
    return f"{render_stamp_glyphs(progress.current_stamps, progress.max_stamps)} {remaining} more {noun} to your reward"


def reward_text(offer: Offer) -> str:
    return offer.description or offer.title


def tier_text(tier: TierStatus | None) -> str | None:
    if tier is None:
        return None
    text = f"{tier.current_tier.icon} {tier.current_tier.name}".strip()
    if tier.next_tier is not None and tier.rewards_to_next_tier:
        text += f" · {tier.rewards_to_next_tier} to {tier.next_tier.name}"
    return text


def notification_text(progress: CustomerProgress, offer: Offer) -> str:
    if progress.is_completed:
        return f"Your {offer.title} reward is ready!"
    return f"{stamp_balance(progress)} stamps collected for {offer.title}"
