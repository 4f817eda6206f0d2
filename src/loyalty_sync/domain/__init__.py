"""Loyalty domain layer.

This package contains the domain entities, value objects, pure state
transitions and repository interfaces for stamp progress and wallet passes.
"""

from loyalty_sync.domain.exceptions import (
    LoyaltyError,
    OfferNotFoundError,
    OfferOwnershipError,
    ProgressConflictError,
    ProgressNotFoundError,
    RewardNotAvailableError,
    TokenBusinessMismatchError,
    TokenDecodeError,
    WalletAdapterError,
    WalletAuthenticationError,
    WalletObjectNotFoundError,
    WalletRateLimitError,
    WalletTimeoutError,
    WalletUnavailableError,
)
from loyalty_sync.domain.offer import BarcodeFormat, Offer, OfferStatus
from loyalty_sync.domain.progress import (
    CustomerProgress,
    ProgressState,
    StampResult,
    add_stamp,
    claim_reward,
    new_progress,
)
from loyalty_sync.domain.tiers import (
    DEFAULT_TIERS,
    TierDefinition,
    TierStatus,
    TierUpgrade,
    calculate_customer_tier,
    detect_tier_upgrade,
    validate_tier_ladder,
)
from loyalty_sync.domain.wallet_pass import (
    PassStatus,
    WalletPass,
    WalletType,
    generate_apple_auth_token,
)

__all__ = [
    # Exceptions
    "LoyaltyError",
    "TokenDecodeError",
    "TokenBusinessMismatchError",
    "OfferNotFoundError",
    "OfferOwnershipError",
    "ProgressNotFoundError",
    "RewardNotAvailableError",
    "ProgressConflictError",
    "WalletAdapterError",
    "WalletObjectNotFoundError",
    "WalletRateLimitError",
    "WalletTimeoutError",
    "WalletAuthenticationError",
    "WalletUnavailableError",
    # Offers
    "Offer",
    "OfferStatus",
    "BarcodeFormat",
    # Progress
    "CustomerProgress",
    "ProgressState",
    "StampResult",
    "add_stamp",
    "claim_reward",
    "new_progress",
    # Tiers
    "DEFAULT_TIERS",
    "TierDefinition",
    "TierStatus",
    "TierUpgrade",
    "calculate_customer_tier",
    "detect_tier_upgrade",
    "validate_tier_ladder",
    # Wallet passes
    "WalletPass",
    "WalletType",
    "PassStatus",
    "generate_apple_auth_token",
]
