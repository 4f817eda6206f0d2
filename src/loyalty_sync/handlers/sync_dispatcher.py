"""
Wallet sync dispatcher.

Fans a committed progress change out to every wallet the customer actually
holds. Pushes run concurrently, each bounded by a timeout, outside any
database transaction. Individual wallet failures are downgraded to report
entries and never raised to the caller.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

import structlog

from loyalty_sync.config import settings
from loyalty_sync.domain.exceptions import (
    WalletAdapterError,
    WalletObjectNotFoundError,
    WalletUnavailableError,
)
from loyalty_sync.domain.offer import Offer
from loyalty_sync.domain.progress import CustomerProgress
from loyalty_sync.domain.repositories import IUnitOfWork
from loyalty_sync.domain.tiers import TierStatus, calculate_customer_tier
from loyalty_sync.domain.wallet_pass import PassStatus, WalletPass, WalletType
from loyalty_sync.wallets.base import (
    PassDesign,
    PassHolder,
    WalletAdapter,
    WalletOperationResult,
    WalletOperationStatus,
)

logger = structlog.get_logger(__name__)

UnitOfWorkFactory = Callable[[], IUnitOfWork]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class WalletUpdate:
    """Per-wallet entry of a sync report."""

    wallet_type: WalletType
    status: WalletOperationStatus
    notified: bool = False
    remote_object_id: str | None = None
    error: str | None = None
    retryable: bool = False
    recreated: bool = False

    @property
    def platform(self) -> str:
        return self.wallet_type.platform_name

    @property
    def success(self) -> bool:
        return self.status == WalletOperationStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "platform": self.platform,
            "success": self.success,
            "updated": self.success,
            "notified": self.notified,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class SyncReport:
    """Aggregated outcome of one sync cycle."""

    customer_id: str
    offer_id: str
    tier: TierStatus | None = None
    updates: list[WalletUpdate] = field(default_factory=list)

    @property
    def all_succeeded(self) -> bool:
        return all(u.success for u in self.updates)

    def to_list(self) -> list[dict[str, Any]]:
        return [u.to_dict() for u in self.updates]


@dataclass(frozen=True)
class ProvisionResult:
    """A generated pass and, for Google, its save link."""

    wallet_pass: WalletPass
    save_url: str | None = None


class WalletSyncDispatcher:
    """
    Pushes progress changes to the customer's wallet passes.

    Adapters are injected per wallet type. A wallet type with no adapter, or
    a disabled adapter, yields a SERVICE_UNAVAILABLE entry while the other
    wallet still syncs.
    """

    def __init__(
        self,
        adapters: Mapping[WalletType, WalletAdapter],
        uow_factory: UnitOfWorkFactory,
        adapter_timeout_seconds: float | None = None,
        daily_notification_limit: int | None = None,
        notification_history_days: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.adapters = dict(adapters)
        self.uow_factory = uow_factory
        self.adapter_timeout_seconds = (
            adapter_timeout_seconds
            if adapter_timeout_seconds is not None
            else settings.sync.adapter_timeout_seconds
        )
        self.daily_notification_limit = (
            daily_notification_limit
            if daily_notification_limit is not None
            else settings.sync.daily_notification_limit
        )
        self.notification_history_days = (
            notification_history_days
            if notification_history_days is not None
            else settings.sync.notification_history_days
        )
        self.clock = clock

    async def sync_after_progress_change(
        self,
        customer_id: str,
        offer: Offer,
        progress: CustomerProgress,
    ) -> SyncReport:
        """
        Push a committed progress change to every active wallet pass.

        Args:
            customer_id: Customer whose progress changed
            offer: Offer the progress belongs to
            progress: Row reloaded after commit, never a pre-write snapshot

        Returns:
            SyncReport with one entry per active pass (empty when the customer
            has no passes)
        """
        async with self.uow_factory() as uow:
            passes = await uow.wallet_passes.list_active(customer_id, offer.offer_id)

        # Computed once so both wallets show the same tier
        tier = calculate_customer_tier(progress.rewards_claimed, offer.loyalty_tiers)
        report = SyncReport(customer_id=customer_id, offer_id=offer.offer_id, tier=tier)

        if not passes:
            logger.info("wallet_sync_no_passes", customer_id=customer_id, offer_id=offer.offer_id)
            return report

        results = await asyncio.gather(
            *(self._sync_one(wallet_pass, offer, progress, tier) for wallet_pass in passes)
        )

        pushed: list[tuple[WalletPass, WalletOperationResult]] = []
        for wallet_pass, (update, result) in zip(passes, results):
            report.updates.append(update)
            if result is not None and result.success:
                pushed.append((wallet_pass, result))

        if pushed:
            await self._record_pushes(pushed)

        logger.info(
            "wallet_sync_completed",
            customer_id=customer_id,
            offer_id=offer.offer_id,
            current_stamps=progress.current_stamps,
            results={u.wallet_type.value: u.status.value for u in report.updates},
        )
        return report

    def _notification_allowed(self, wallet_pass: WalletPass) -> bool:
        cutoff = self.clock() - timedelta(days=1)
        sent_today = 0
        for entry in wallet_pass.notification_history:
            try:
                if datetime.fromisoformat(entry) >= cutoff:
                    sent_today += 1
            except (TypeError, ValueError):
                continue
        return sent_today < self.daily_notification_limit

    async def _push_with_recreate(
        self,
        adapter: WalletAdapter,
        wallet_pass: WalletPass,
        offer: Offer,
        progress: CustomerProgress,
        tier: TierStatus | None,
        notify: bool,
    ) -> tuple[WalletOperationResult, bool]:
        try:
            return await adapter.push_update(wallet_pass, offer, progress, tier, notify), False
        except WalletObjectNotFoundError:
            logger.warning(
                "wallet_object_missing_recreating",
                wallet_type=wallet_pass.wallet_type.value,
                customer_id=wallet_pass.customer_id,
                offer_id=offer.offer_id,
                remote_object_id=wallet_pass.remote_object_id,
            )

        recreated = await adapter.ensure_object_exists(
            PassHolder(customer_id=wallet_pass.customer_id), offer, progress
        )
        if not recreated.success:
            return recreated, True
        return await adapter.push_update(wallet_pass, offer, progress, tier, notify), True

    async def _sync_one(
        self,
        wallet_pass: WalletPass,
        offer: Offer,
        progress: CustomerProgress,
        tier: TierStatus | None,
    ) -> tuple[WalletUpdate, WalletOperationResult | None]:
        wallet_type = wallet_pass.wallet_type
        log = logger.bind(
            wallet_type=wallet_type.value,
            customer_id=wallet_pass.customer_id,
            offer_id=offer.offer_id,
            remote_object_id=wallet_pass.remote_object_id,
        )

        adapter = self.adapters.get(wallet_type)
        if adapter is None:
            log.warning("wallet_adapter_missing")
            return (
                WalletUpdate(
                    wallet_type=wallet_type,
                    status=WalletOperationStatus.SERVICE_UNAVAILABLE,
                    error=f"{wallet_type.platform_name} is not configured",
                ),
                None,
            )

        notify = self._notification_allowed(wallet_pass)
        if not notify:
            log.info("wallet_notification_limit_reached", limit=self.daily_notification_limit)

        try:
            result, recreated = await asyncio.wait_for(
                self._push_with_recreate(adapter, wallet_pass, offer, progress, tier, notify),
                timeout=self.adapter_timeout_seconds,
            )
        except asyncio.TimeoutError:
            log.warning("wallet_push_timeout", timeout_seconds=self.adapter_timeout_seconds)
            return (
                WalletUpdate(
                    wallet_type=wallet_type,
                    status=WalletOperationStatus.FAILED,
                    error=f"{wallet_type.platform_name} push timed out",
                    retryable=True,
                ),
                None,
            )
        except WalletAdapterError as e:
            log.warning(
                "wallet_push_failed",
                error=str(e),
                error_type=type(e).__name__,
                status_code=e.status_code,
                retryable=e.retryable,
            )
            return (
                WalletUpdate(
                    wallet_type=wallet_type,
                    status=WalletOperationStatus.FAILED,
                    error=str(e),
                    retryable=e.retryable,
                ),
                None,
            )
        except Exception as e:
            # Wallet provider problems must never fail the scan
            log.exception("wallet_push_unexpected_error", error=str(e))
            return (
                WalletUpdate(
                    wallet_type=wallet_type,
                    status=WalletOperationStatus.FAILED,
                    error=f"Unexpected {wallet_type.platform_name} error",
                ),
                None,
            )

        if not result.success:
            log.info("wallet_push_not_applied", status=result.status.value, error=result.error)

        return (
            WalletUpdate(
                wallet_type=wallet_type,
                status=result.status,
                notified=result.notified,
                remote_object_id=result.remote_object_id,
                error=result.error,
                retryable=result.retryable,
                recreated=recreated,
            ),
            result,
        )

    async def _record_pushes(self, pushed: list[tuple[WalletPass, WalletOperationResult]]) -> None:
        now = self.clock()
        try:
            async with self.uow_factory() as uow:
                for wallet_pass, result in pushed:
                    await uow.wallet_passes.record_push(
                        wallet_pass,
                        pushed_at=now,
                        pass_data=result.pass_data,
                        notified=result.notified,
                        history_days=self.notification_history_days,
                    )
        except Exception as e:
            # The remote wallets are already updated; bookkeeping catches up next sync
            logger.error(
                "wallet_push_record_failed",
                customer_id=pushed[0][0].customer_id,
                offer_id=pushed[0][0].offer_id,
                error=str(e),
            )

    async def provision_pass(
        self,
        holder: PassHolder,
        offer: Offer,
        progress: CustomerProgress,
        wallet_type: WalletType,
        design: PassDesign | None = None,
    ) -> ProvisionResult:
        """
        Generate a pass on one platform and register it.

        Idempotent: the remote class and object are upserted and the registry
        row is keyed on (customer, offer, wallet_type).

        Raises:
            WalletUnavailableError: If the platform adapter is disabled
            WalletAdapterError: If the remote platform rejects the pass
        """
        adapter = self.adapters.get(wallet_type)
        if adapter is None or not adapter.enabled:
            raise WalletUnavailableError(f"{wallet_type.platform_name} is not configured")

        class_result = await adapter.ensure_class_exists(offer, design)
        if not class_result.success:
            raise WalletUnavailableError(class_result.error or "Pass class unavailable")

        object_result = await adapter.ensure_object_exists(holder, offer, progress)
        if not object_result.success:
            raise WalletUnavailableError(object_result.error or "Pass object unavailable")

        remote_id = object_result.remote_object_id
        wallet_pass = WalletPass(
            customer_id=holder.customer_id,
            offer_id=offer.offer_id,
            business_id=offer.business_id,
            wallet_type=wallet_type,
            wallet_serial=remote_id if wallet_type is WalletType.APPLE else None,
            wallet_object_id=remote_id if wallet_type is WalletType.GOOGLE else None,
            authentication_token=object_result.details.get("authentication_token"),
            progress_id=progress.id,
            pass_data=object_result.pass_data or {},
        )

        async with self.uow_factory() as uow:
            stored = await uow.wallet_passes.upsert(wallet_pass)

        logger.info(
            "wallet_pass_provisioned",
            wallet_type=wallet_type.value,
            customer_id=holder.customer_id,
            offer_id=offer.offer_id,
            remote_object_id=remote_id,
        )
        return ProvisionResult(wallet_pass=stored, save_url=object_result.details.get("save_url"))

    async def retire_pass(
        self,
        customer_id: str,
        offer_id: str,
        wallet_type: WalletType,
        status: PassStatus = PassStatus.EXPIRED,
    ) -> bool:
        """Mark a pass expired, revoked or deleted so sync stops targeting it."""
        if status == PassStatus.ACTIVE:
            raise ValueError("retire_pass needs a non-active status")

        async with self.uow_factory() as uow:
            wallet_pass = await uow.wallet_passes.get(customer_id, offer_id, wallet_type)
            if wallet_pass is None:
                return False
            await uow.wallet_passes.update_status(wallet_pass, status)
        return True
