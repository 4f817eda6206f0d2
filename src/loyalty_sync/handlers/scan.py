"""
Scan orchestration.

This module implements the single scan flow used by the scan, verify and
confirm-prize endpoints:
- QR payload normalization and token decoding
- Offer hash matching against the scanning business's offers
- Row-locked progress mutation in one transaction
- Wallet sync on the reloaded row after commit
"""

import asyncio
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Awaitable, Callable, TypeVar

import structlog

from loyalty_sync.domain.exceptions import (
    OfferNotFoundError,
    OfferOwnershipError,
    ProgressConflictError,
    ProgressNotFoundError,
    TokenBusinessMismatchError,
    TokenDecodeError,
)
from loyalty_sync.domain.identity_token import (
    decode_customer_token,
    parse_scan_payload,
    verify_offer_hash,
)
from loyalty_sync.domain.offer import Offer
from loyalty_sync.domain.progress import CustomerProgress, StampResult, add_stamp, claim_reward
from loyalty_sync.domain.repositories import IUnitOfWork
from loyalty_sync.domain.tiers import (
    TierStatus,
    TierUpgrade,
    calculate_customer_tier,
    detect_tier_upgrade,
)
from loyalty_sync.handlers.sync_dispatcher import SyncReport, WalletSyncDispatcher

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ScanOutcome:
    """Result of a stamp scan."""

    customer_id: str
    offer: Offer
    progress: CustomerProgress
    reward_earned: bool
    already_completed: bool = False
    stamps_added: int = 0
    progress_created: bool = False
    sync_report: SyncReport | None = None

    @property
    def wallet_updates(self) -> list[dict]:
        return self.sync_report.to_list() if self.sync_report else []


@dataclass
class VerifyOutcome:
    """Read-only preview of a scan."""

    customer_id: str
    offer: Offer
    progress: CustomerProgress | None

    @property
    def can_scan(self) -> bool:
        return self.progress is None or not self.progress.is_completed


@dataclass
class ClaimOutcome:
    """Result of confirming a prize."""

    customer_id: str
    offer: Offer
    progress: CustomerProgress
    tier: TierStatus | None
    tier_upgrade: TierUpgrade | None
    sync_report: SyncReport | None = None
    new_cycle_started: bool = True

    @property
    def total_completions(self) -> int:
        return self.progress.rewards_claimed

    @property
    def wallet_updates(self) -> list[dict]:
        return self.sync_report.to_list() if self.sync_report else []


class ScanOrchestrator:
    """
    Entry point for business scans.

    Progress mutations run in their own transaction wrapped in
    asyncio.shield(): a client disconnect cancels the request but not the
    write. A ProgressConflictError retries the mutation once before it
    propagates.
    """

    def __init__(
        self,
        uow_factory: Callable[[], IUnitOfWork],
        dispatcher: WalletSyncDispatcher,
        clock: Callable[[], datetime] = _utcnow,
        conflict_retries: int = 1,
    ):
        self.uow_factory = uow_factory
        self.dispatcher = dispatcher
        self.clock = clock
        self.conflict_retries = conflict_retries

    async def scan(
        self,
        business_id: str,
        first_segment: str,
        second_segment: str | None = None,
    ) -> ScanOutcome:
        """
        Add one stamp for the scanned customer and sync their wallets.

        Args:
            business_id: Authenticated scanning business
            first_segment: "token:hash" or the token alone
            second_segment: Offer hash for the split QR layout

        Returns:
            ScanOutcome; already_completed=True when the card awaits a claim

        Raises:
            TokenDecodeError: Malformed payload (400)
            TokenBusinessMismatchError: Token issued by another business (403)
            OfferNotFoundError: Hash matches none of the business's offers (404)
            ProgressConflictError: Concurrent mutation persisted after retry (500)
        """
        customer_id, offer_hash = self._resolve_customer(business_id, first_segment, second_segment)
        offer = await self._match_offer(business_id, offer_hash)

        log = logger.bind(customer_id=customer_id, offer_id=offer.offer_id, business_id=business_id)

        result, created = await self._run_mutation(
            lambda: self._apply_stamp(customer_id, offer),
            customer_id,
            offer.offer_id,
        )

        if result.already_completed:
            log.info(
                "scan_already_completed",
                current_stamps=result.progress.current_stamps,
                max_stamps=result.progress.max_stamps,
            )
            return ScanOutcome(
                customer_id=customer_id,
                offer=offer,
                progress=result.progress,
                reward_earned=False,
                already_completed=True,
                progress_created=created,
            )

        log.info(
            "stamp_added",
            current_stamps=result.progress.current_stamps,
            max_stamps=result.progress.max_stamps,
            reward_earned=result.reward_earned,
        )

        progress = await self._reload(customer_id, offer.offer_id)
        report = await self.dispatcher.sync_after_progress_change(customer_id, offer, progress)

        return ScanOutcome(
            customer_id=customer_id,
            offer=offer,
            progress=progress,
            reward_earned=result.reward_earned,
            stamps_added=result.stamps_added,
            progress_created=created,
            sync_report=report,
        )

    async def verify(
        self,
        business_id: str,
        first_segment: str,
        second_segment: str | None = None,
    ) -> VerifyOutcome:
        """Decode and validate a scan without mutating anything."""
        customer_id, offer_hash = self._resolve_customer(business_id, first_segment, second_segment)
        offer = await self._match_offer(business_id, offer_hash)

        async with self.uow_factory() as uow:
            progress = await uow.progress.get(customer_id, offer.offer_id)

        return VerifyOutcome(customer_id=customer_id, offer=offer, progress=progress)

    async def confirm_prize(
        self,
        business_id: str,
        customer_id: str,
        offer_id: str,
        notes: str | None = None,
        claimed_by: str | None = None,
    ) -> ClaimOutcome:
        """
        Redeem a completed card, start a new cycle and sync wallets.

        Raises:
            OfferNotFoundError: Unknown offer (404)
            OfferOwnershipError: Offer belongs to another business (403)
            ProgressNotFoundError: Customer never scanned this offer (404)
            RewardNotAvailableError: Card not completed (400)
            ProgressConflictError: Concurrent mutation persisted after retry (500)
        """
        async with self.uow_factory() as uow:
            offer = await uow.offers.get(offer_id)

        if offer is None:
            raise OfferNotFoundError(f"Offer {offer_id} not found")
        if offer.business_id != business_id:
            raise OfferOwnershipError(f"Offer {offer_id} does not belong to business {business_id}")

        before, _ = await self._run_mutation(
            lambda: self._apply_claim(customer_id, offer, claimed_by or business_id, notes),
            customer_id,
            offer_id,
        )

        tier_before = calculate_customer_tier(before.rewards_claimed, offer.loyalty_tiers)
        progress = await self._reload(customer_id, offer_id)
        tier_after = calculate_customer_tier(progress.rewards_claimed, offer.loyalty_tiers)
        upgrade = detect_tier_upgrade(tier_before, tier_after)

        logger.info(
            "reward_claimed",
            customer_id=customer_id,
            offer_id=offer_id,
            business_id=business_id,
            rewards_claimed=progress.rewards_claimed,
            tier=tier_after.current_tier.name if tier_after else None,
            tier_upgraded=upgrade is not None,
        )

        report = await self.dispatcher.sync_after_progress_change(customer_id, offer, progress)

        return ClaimOutcome(
            customer_id=customer_id,
            offer=offer,
            progress=progress,
            tier=tier_after,
            tier_upgrade=upgrade,
            sync_report=report,
        )

    def _resolve_customer(
        self, business_id: str, first_segment: str, second_segment: str | None
    ) -> tuple[str, str]:
        payload = parse_scan_payload(first_segment, second_segment)
        token = decode_customer_token(payload.customer_token)
        if not token.is_valid:
            raise TokenDecodeError(token.error or "Invalid or expired customer token")
        if token.business_id != business_id:
            logger.warning(
                "scan_token_business_mismatch",
                business_id=business_id,
                token_business_id=token.business_id,
            )
            raise TokenBusinessMismatchError("Token not valid for this business")
        return token.customer_id, payload.offer_hash

    async def _match_offer(self, business_id: str, offer_hash: str) -> Offer:
        async with self.uow_factory() as uow:
            offers = await uow.offers.list_for_business(business_id)

        for offer in offers:
            if verify_offer_hash(offer.offer_id, business_id, offer_hash):
                return offer

        logger.info("scan_offer_hash_unmatched", business_id=business_id, offers_checked=len(offers))
        raise OfferNotFoundError("Offer not found or hash invalid")

    async def _run_mutation(
        self,
        operation: Callable[[], Awaitable[T]],
        customer_id: str,
        offer_id: str,
    ) -> T:
        attempt = 0
        while True:
            try:
                # The write must survive a client disconnect
                return await asyncio.shield(operation())
            except ProgressConflictError:
                if attempt >= self.conflict_retries:
                    logger.error(
                        "progress_conflict_retries_exhausted",
                        customer_id=customer_id,
                        offer_id=offer_id,
                        attempts=attempt + 1,
                    )
                    raise
                attempt += 1
                logger.warning(
                    "progress_conflict_retrying",
                    customer_id=customer_id,
                    offer_id=offer_id,
                    attempt=attempt,
                )

    async def _apply_stamp(self, customer_id: str, offer: Offer) -> tuple[StampResult, bool]:
        async with self.uow_factory() as uow:
            progress, created = await uow.progress.find_or_create(customer_id, offer)
            result = add_stamp(progress, now=self.clock())
            if result.already_completed:
                return result, created
            saved = await uow.progress.save(result.progress)
        return replace(result, progress=saved), created

    async def _apply_claim(
        self,
        customer_id: str,
        offer: Offer,
        claimed_by: str,
        notes: str | None,
    ) -> tuple[CustomerProgress, CustomerProgress]:
        async with self.uow_factory() as uow:
            progress = await uow.progress.get_for_update(customer_id, offer.offer_id)
            if progress is None:
                raise ProgressNotFoundError(
                    f"No progress for customer {customer_id} on offer {offer.offer_id}"
                )
            claimed = claim_reward(progress, claimed_by=claimed_by, notes=notes, now=self.clock())
            saved = await uow.progress.save(claimed)
            await uow.offers.increment_redeemed(offer.offer_id)
        return progress, saved

    async def _reload(self, customer_id: str, offer_id: str) -> CustomerProgress:
        async with self.uow_factory() as uow:
            progress = await uow.progress.get(customer_id, offer_id)
        if progress is None:
            raise ProgressNotFoundError(f"No progress for customer {customer_id} on offer {offer_id}")
        return progress
