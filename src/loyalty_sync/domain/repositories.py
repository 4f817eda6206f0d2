"""Repository interfaces for the loyalty domain.

The domain and handler layers depend on these interfaces; the asyncpg
implementations live in loyalty_sync.infrastructure. Tests substitute
in-memory fakes.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from loyalty_sync.domain.offer import Offer
from loyalty_sync.domain.progress import CustomerProgress
from loyalty_sync.domain.wallet_pass import PassStatus, WalletPass, WalletType


class IOfferRepository(ABC):
    """Read access to offers plus the denormalized counters."""

    @abstractmethod
    async def get(self, offer_id: str) -> Optional[Offer]:
        pass

    @abstractmethod
    async def list_for_business(self, business_id: str) -> list[Offer]:
        """All offers owned by a business, any status, oldest first."""
        pass

    @abstractmethod
    async def increment_redeemed(self, offer_id: str) -> None:
        pass


class IProgressRepository(ABC):
    """Persistence for CustomerProgress rows.

    Methods ending in ``for_update`` and find_or_create() lock the row until
    the surrounding transaction ends.
    """

    @abstractmethod
    async def find_or_create(self, customer_id: str, offer: Offer) -> tuple[CustomerProgress, bool]:
        """Load the progress row under lock, creating it on first use.

        A newly created row is seeded with max_stamps from the offer, and the
        offer's customer counter is incremented exactly once.

        Returns:
            (progress, created)

        Raises:
            ProgressConflictError: On a storage-level concurrent mutation
        """
        pass

    @abstractmethod
    async def get_for_update(self, customer_id: str, offer_id: str) -> Optional[CustomerProgress]:
        pass

    @abstractmethod
    async def get(self, customer_id: str, offer_id: str) -> Optional[CustomerProgress]:
        pass

    @abstractmethod
    async def save(self, progress: CustomerProgress) -> CustomerProgress:
        """Write mutable fields back and return the stored row.

        Raises:
            ProgressNotFoundError: If the row has no id or no longer exists
            ProgressConflictError: On a storage-level concurrent mutation
        """
        pass


class IWalletPassRepository(ABC):
    """Registry of wallet passes a customer holds."""

    @abstractmethod
    async def list_active(self, customer_id: str, offer_id: str) -> list[WalletPass]:
        """Active passes for (customer, offer), ordered by creation time."""
        pass

    @abstractmethod
    async def get(
        self, customer_id: str, offer_id: str, wallet_type: WalletType
    ) -> Optional[WalletPass]:
        pass

    @abstractmethod
    async def upsert(self, wallet_pass: WalletPass) -> WalletPass:
        """Insert or update on (customer_id, offer_id, wallet_type)."""
        pass

    @abstractmethod
    async def record_push(
        self,
        wallet_pass: WalletPass,
        pushed_at: datetime,
        pass_data: dict[str, Any] | None,
        notified: bool,
        history_days: int,
    ) -> WalletPass:
        """Record a successful push.

        Updates last_updated_at (and last_updated_tag for Apple), stores the
        rendered pass data, and when ``notified`` bumps the notification
        counters, dropping history entries older than ``history_days``.
        """
        pass

    @abstractmethod
    async def update_status(self, wallet_pass: WalletPass, status: PassStatus) -> None:
        pass


class IDeviceRegistry(ABC):
    """Apple devices registered for pass updates."""

    @abstractmethod
    async def push_tokens_for_serial(self, serial_number: str) -> list[str]:
        pass

    @abstractmethod
    async def unregister_push_token(self, push_token: str) -> None:
        """Forget a push token APNs reported as no longer valid."""
        pass


class IBusinessSessionRepository(ABC):
    """Business login sessions, written by the login flow."""

    @abstractmethod
    async def is_session_active(self, business_id: str, session_token: str) -> bool:
        pass


class IUnitOfWork(ABC):
    """Transaction scope exposing the transactional repositories.

    Usage:
        async with uow_factory() as uow:
            progress, _ = await uow.progress.find_or_create(customer_id, offer)
            ...
    Commits on clean exit, rolls back on exception.
    """

    offers: IOfferRepository
    progress: IProgressRepository
    wallet_passes: IWalletPassRepository

    @abstractmethod
    async def __aenter__(self) -> "IUnitOfWork":
        pass

    @abstractmethod
    async def __aexit__(self, exc_type, exc, tb) -> None:
        pass
