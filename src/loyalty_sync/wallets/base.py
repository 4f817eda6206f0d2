"""Base interface for wallet platform adapters."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loyalty_sync.domain.offer import Offer
from loyalty_sync.domain.progress import CustomerProgress
from loyalty_sync.domain.tiers import TierStatus
from loyalty_sync.domain.wallet_pass import WalletPass, WalletType


class WalletOperationStatus(str, Enum):
    """Outcome of a wallet adapter operation."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


@dataclass
class WalletOperationResult:
    """
    Structured result of a wallet adapter operation.

    Remote failures are raised as WalletAdapterError subclasses; FAILED is
    used by the dispatcher when it downgrades such an error into a report
    entry. A disabled adapter returns SERVICE_UNAVAILABLE.
    """

    wallet_type: WalletType
    status: WalletOperationStatus
    remote_object_id: str | None = None
    notified: bool = False
    pass_data: dict[str, Any] | None = None
    error: str | None = None
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate result consistency."""
        if self.status != WalletOperationStatus.SUCCESS and not self.error:
            raise ValueError(f"{self.status.value} results require an error message")

    @property
    def success(self) -> bool:
        return self.status == WalletOperationStatus.SUCCESS

    @classmethod
    def ok(cls, wallet_type: WalletType, **kwargs: Any) -> "WalletOperationResult":
        return cls(wallet_type=wallet_type, status=WalletOperationStatus.SUCCESS, **kwargs)

    @classmethod
    def unavailable(cls, wallet_type: WalletType, reason: str) -> "WalletOperationResult":
        return cls(
            wallet_type=wallet_type,
            status=WalletOperationStatus.SERVICE_UNAVAILABLE,
            error=reason,
        )

    @classmethod
    def failed(
        cls, wallet_type: WalletType, error: str, retryable: bool = False
    ) -> "WalletOperationResult":
        return cls(
            wallet_type=wallet_type,
            status=WalletOperationStatus.FAILED,
            error=error,
            retryable=retryable,
        )


@dataclass(frozen=True)
class PassHolder:
    """Customer details rendered onto a pass."""

    customer_id: str
    name: str | None = None
    phone: str | None = None
    email: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or "Valued Customer"


@dataclass(frozen=True)
class PassDesign:
    """Card design overrides; unset fields fall back to the offer."""

    background_color: str | None = None
    foreground_color: str = "#FFFFFF"
    label_color: str = "#FFFFFF"
    logo_url: str | None = None
    hero_image_url: str | None = None


class WalletAdapter(ABC):
    """
    Abstract base class for wallet platform integrations.

    Each adapter is constructed explicitly with its own credentials and is
    independently enabled. The public methods return a SERVICE_UNAVAILABLE
    result when the adapter is disabled, so callers can carry on with the
    other platform. Subclasses implement the underscored hooks.

    Raises (from the hooks):
        WalletObjectNotFoundError: Remote pass object missing (404)
        WalletRateLimitError: Provider rate limit (429)
        WalletTimeoutError: Timeouts, connection errors and 5xx responses
        WalletAuthenticationError: Credentials rejected
    """

    wallet_type: WalletType

    @property
    def platform_name(self) -> str:
        return self.wallet_type.platform_name

    @property
    @abstractmethod
    def enabled(self) -> bool:
        """Whether credentials for this platform are configured."""
        pass

    def unavailable_result(self) -> WalletOperationResult:
        return WalletOperationResult.unavailable(
            self.wallet_type, f"{self.platform_name} is not configured"
        )

    async def ensure_class_exists(
        self, offer: Offer, design: PassDesign | None = None
    ) -> WalletOperationResult:
        """
        Idempotently create the remote template for an offer.

        Safe to call concurrently for the same offer.
        """
        if not self.enabled:
            return self.unavailable_result()
        return await self._ensure_class_exists(offer, design or PassDesign())

    async def ensure_object_exists(
        self,
        holder: PassHolder,
        offer: Offer,
        progress: CustomerProgress,
    ) -> WalletOperationResult:
        """
        Idempotently create or update the customer's remote pass object.

        Object identifiers are derived from (issuer, customer, offer) so
        repeated calls always target the same object.
        """
        if not self.enabled:
            return self.unavailable_result()
        return await self._ensure_object_exists(holder, offer, progress)

    async def push_update(
        self,
        wallet_pass: WalletPass,
        offer: Offer,
        progress: CustomerProgress,
        tier: TierStatus | None,
        notify: bool = True,
    ) -> WalletOperationResult:
        """
        Push new progress to the remote pass and notify the holder's device.

        Args:
            wallet_pass: Registry row for this platform
            offer: Offer the pass belongs to
            progress: Progress reloaded after the committed mutation
            tier: Tier computed once for the whole sync cycle
            notify: False when the daily notification budget is spent; the
                    pass content is still updated
        """
        if not self.enabled:
            return self.unavailable_result()
        return await self._push_update(wallet_pass, offer, progress, tier, notify)

    async def close(self) -> None:
        """Release network resources."""
        return None

    @abstractmethod
    async def _ensure_class_exists(self, offer: Offer, design: PassDesign) -> WalletOperationResult:
        pass

    @abstractmethod
    async def _ensure_object_exists(
        self,
        holder: PassHolder,
        offer: Offer,
        progress: CustomerProgress,
    ) -> WalletOperationResult:
        pass

    @abstractmethod
    async def _push_update(
        self,
        wallet_pass: WalletPass,
        offer: Offer,
        progress: CustomerProgress,
        tier: TierStatus | None,
        notify: bool,
    ) -> WalletOperationResult:
        pass
