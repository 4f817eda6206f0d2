"""Unit tests for the scan orchestrator."""

import base64
from dataclasses import replace

import pytest

from fakes import (
    BUSINESS_ID,
    CUSTOMER_ID,
    FIXED_NOW,
    OFFER_ID,
    OTHER_BUSINESS_ID,
    make_offer,
    make_pass,
)
from loyalty_sync.domain.exceptions import (
    OfferNotFoundError,
    OfferOwnershipError,
    ProgressConflictError,
    ProgressNotFoundError,
    RewardNotAvailableError,
    TokenBusinessMismatchError,
    TokenDecodeError,
)
from loyalty_sync.domain.identity_token import encode_customer_token, generate_offer_hash
from loyalty_sync.domain.offer import OfferStatus
from loyalty_sync.domain.wallet_pass import WalletType


@pytest.fixture
def wallets(store):
    store.add_pass(make_pass(WalletType.APPLE))
    store.add_pass(make_pass(WalletType.GOOGLE))


async def _scan_times(orchestrator, token, offer_hash, times):
    outcome = None
    for _ in range(times):
        outcome = await orchestrator.scan(BUSINESS_ID, token, offer_hash)
    return outcome


class TestScan:
    """Tests for the scan flow."""

    @pytest.mark.asyncio
    async def test_first_scan_creates_progress(self, orchestrator, offer, store, customer_token, offer_hash):
        outcome = await orchestrator.scan(BUSINESS_ID, customer_token, offer_hash)

        assert outcome.customer_id == CUSTOMER_ID
        assert outcome.offer.offer_id == OFFER_ID
        assert outcome.progress_created is True
        assert outcome.progress.current_stamps == 1
        assert outcome.progress.first_scan_date == FIXED_NOW
        assert outcome.reward_earned is False
        assert store.offers[OFFER_ID].customers == 1

    @pytest.mark.asyncio
    async def test_combined_payload_layout(self, orchestrator, offer, customer_token, offer_hash):
        outcome = await orchestrator.scan(BUSINESS_ID, f"{customer_token}:{offer_hash}")

        assert outcome.progress.current_stamps == 1

    @pytest.mark.asyncio
    async def test_five_scans_complete_the_card(
        self, orchestrator, offer, wallets, store, customer_token, offer_hash, apple_adapter, google_adapter
    ):
        """Test a 5-stamp offer: four accruing scans then a completing one."""
        for expected in range(1, 5):
            outcome = await orchestrator.scan(BUSINESS_ID, customer_token, offer_hash)
            assert outcome.progress.current_stamps == expected
            assert outcome.reward_earned is False

        outcome = await orchestrator.scan(BUSINESS_ID, customer_token, offer_hash)

        assert outcome.reward_earned is True
        assert outcome.progress.is_completed is True
        assert outcome.progress.completed_at == FIXED_NOW
        assert store.offers[OFFER_ID].customers == 1
        assert len(apple_adapter.push_calls) == 5
        assert google_adapter.push_calls[-1]["progress"].current_stamps == 5
        assert [u["platform"] for u in outcome.wallet_updates] == ["Apple Wallet", "Google Wallet"]
        assert all(u["success"] for u in outcome.wallet_updates)

    @pytest.mark.asyncio
    async def test_scan_on_completed_card_is_a_noop(
        self, orchestrator, offer, wallets, store, customer_token, offer_hash, apple_adapter
    ):
        await _scan_times(orchestrator, customer_token, offer_hash, 5)
        pushes_before = len(apple_adapter.push_calls)

        outcome = await orchestrator.scan(BUSINESS_ID, customer_token, offer_hash)

        assert outcome.already_completed is True
        assert outcome.reward_earned is False
        assert outcome.progress.current_stamps == 5
        assert outcome.progress.total_scans == 5
        assert outcome.wallet_updates == []
        assert len(apple_adapter.push_calls) == pushes_before

    @pytest.mark.asyncio
    async def test_sync_receives_committed_row(
        self, orchestrator, offer, wallets, store, customer_token, offer_hash, google_adapter
    ):
        outcome = await orchestrator.scan(BUSINESS_ID, customer_token, offer_hash)

        pushed = google_adapter.push_calls[0]["progress"]
        assert pushed == store.progress[(CUSTOMER_ID, OFFER_ID)]
        assert pushed.id is not None
        assert outcome.progress == pushed

    @pytest.mark.asyncio
    async def test_wallet_failure_does_not_fail_scan(
        self, orchestrator, offer, wallets, customer_token, offer_hash, google_adapter
    ):
        google_adapter.push_outcomes = [RuntimeError("google is down")]

        outcome = await orchestrator.scan(BUSINESS_ID, customer_token, offer_hash)

        assert outcome.progress.current_stamps == 1
        google = next(u for u in outcome.wallet_updates if u["platform"] == "Google Wallet")
        assert google["success"] is False

    @pytest.mark.asyncio
    async def test_conflict_is_retried_once(self, orchestrator, offer, store, customer_token, offer_hash):
        store.conflicts_to_raise = 1

        outcome = await orchestrator.scan(BUSINESS_ID, customer_token, offer_hash)

        assert outcome.progress.current_stamps == 1
        assert store.rollbacks == 1

    @pytest.mark.asyncio
    async def test_conflict_retries_exhausted(self, orchestrator, offer, store, customer_token, offer_hash):
        store.conflicts_to_raise = 2

        with pytest.raises(ProgressConflictError):
            await orchestrator.scan(BUSINESS_ID, customer_token, offer_hash)

        assert store.progress == {}
        assert store.offers[OFFER_ID].customers == 0

    @pytest.mark.asyncio
    async def test_token_from_other_business_is_rejected(self, orchestrator, offer, store, offer_hash):
        token = encode_customer_token(CUSTOMER_ID, OTHER_BUSINESS_ID, timestamp=1767225600000)

        with pytest.raises(TokenBusinessMismatchError):
            await orchestrator.scan(BUSINESS_ID, token, offer_hash)

        assert store.progress == {}

    @pytest.mark.asyncio
    async def test_unknown_offer_hash(self, orchestrator, offer, customer_token):
        with pytest.raises(OfferNotFoundError):
            await orchestrator.scan(BUSINESS_ID, customer_token, "deadbeef")

    @pytest.mark.asyncio
    async def test_other_business_offer_hash_is_not_matched(self, orchestrator, offer, store, customer_token):
        store.add_offer(make_offer(offer_id="off_bread", business_id=OTHER_BUSINESS_ID))

        with pytest.raises(OfferNotFoundError):
            await orchestrator.scan(BUSINESS_ID, customer_token, generate_offer_hash("off_bread", OTHER_BUSINESS_ID))

    @pytest.mark.asyncio
    async def test_paused_offer_still_matches(self, orchestrator, store, customer_token, offer_hash):
        store.add_offer(make_offer(status=OfferStatus.PAUSED))

        outcome = await orchestrator.scan(BUSINESS_ID, customer_token, offer_hash)

        assert outcome.progress.current_stamps == 1

    @pytest.mark.asyncio
    async def test_hash_selects_among_several_offers(self, orchestrator, offer, store, customer_token):
        store.add_offer(make_offer(offer_id="off_muffin", title="Free Muffin", stamps_required=3))

        outcome = await orchestrator.scan(
            BUSINESS_ID, customer_token, generate_offer_hash("off_muffin", BUSINESS_ID)
        )

        assert outcome.offer.offer_id == "off_muffin"
        assert outcome.progress.max_stamps == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", ["", "%%%", base64.urlsafe_b64encode(b"no-colons").decode()])
    async def test_malformed_token(self, orchestrator, offer, offer_hash, token):
        with pytest.raises(TokenDecodeError):
            await orchestrator.scan(BUSINESS_ID, token, offer_hash)

    @pytest.mark.asyncio
    async def test_missing_offer_hash(self, orchestrator, offer, customer_token):
        with pytest.raises(TokenDecodeError):
            await orchestrator.scan(BUSINESS_ID, customer_token)


class TestVerify:
    """Tests for the read-only verify flow."""

    @pytest.mark.asyncio
    async def test_verify_before_first_scan(self, orchestrator, offer, store, customer_token, offer_hash):
        outcome = await orchestrator.verify(BUSINESS_ID, customer_token, offer_hash)

        assert outcome.customer_id == CUSTOMER_ID
        assert outcome.progress is None
        assert outcome.can_scan is True
        assert store.progress == {}

    @pytest.mark.asyncio
    async def test_verify_completed_card(self, orchestrator, offer, customer_token, offer_hash):
        await _scan_times(orchestrator, customer_token, offer_hash, 5)

        outcome = await orchestrator.verify(BUSINESS_ID, customer_token, offer_hash)

        assert outcome.progress.current_stamps == 5
        assert outcome.can_scan is False

    @pytest.mark.asyncio
    async def test_verify_rejects_other_business_token(self, orchestrator, offer, offer_hash):
        token = encode_customer_token(CUSTOMER_ID, OTHER_BUSINESS_ID, timestamp=1767225600000)

        with pytest.raises(TokenBusinessMismatchError):
            await orchestrator.verify(BUSINESS_ID, token, offer_hash)


class TestConfirmPrize:
    """Tests for the prize confirmation flow."""

    @pytest.mark.asyncio
    async def test_confirm_starts_new_cycle(
        self, orchestrator, offer, wallets, store, customer_token, offer_hash, google_adapter
    ):
        await _scan_times(orchestrator, customer_token, offer_hash, 5)

        outcome = await orchestrator.confirm_prize(BUSINESS_ID, CUSTOMER_ID, OFFER_ID, notes="Oat milk")

        assert outcome.progress.current_stamps == 0
        assert outcome.progress.is_completed is False
        assert outcome.progress.rewards_claimed == 1
        assert outcome.progress.last_claimed_by == BUSINESS_ID
        assert outcome.progress.last_claim_notes == "Oat milk"
        assert outcome.total_completions == 1
        assert outcome.new_cycle_started is True
        assert store.offers[OFFER_ID].redeemed == 1
        assert google_adapter.push_calls[-1]["progress"].current_stamps == 0
        assert google_adapter.push_calls[-1]["tier"].current_tier.name == "Bronze Member"

    @pytest.mark.asyncio
    async def test_confirm_reports_tier_upgrade(self, orchestrator, offer, store, customer_token, offer_hash):
        await _scan_times(orchestrator, customer_token, offer_hash, 5)

        outcome = await orchestrator.confirm_prize(BUSINESS_ID, CUSTOMER_ID, OFFER_ID)

        assert outcome.tier.current_tier.name == "Bronze Member"
        assert outcome.tier_upgrade.old_tier == "New Member"
        assert outcome.tier_upgrade.new_tier == "Bronze Member"

    @pytest.mark.asyncio
    async def test_confirm_within_tier_has_no_upgrade(self, orchestrator, offer, store, customer_token, offer_hash):
        key = (CUSTOMER_ID, OFFER_ID)
        await _scan_times(orchestrator, customer_token, offer_hash, 5)
        store.progress[key] = replace(store.progress[key], rewards_claimed=3)

        outcome = await orchestrator.confirm_prize(BUSINESS_ID, CUSTOMER_ID, OFFER_ID)

        assert outcome.tier.current_tier.name == "Silver Member"
        assert outcome.tier_upgrade is None

    @pytest.mark.asyncio
    async def test_scan_after_confirm_accrues_again(self, orchestrator, offer, customer_token, offer_hash):
        await _scan_times(orchestrator, customer_token, offer_hash, 5)
        await orchestrator.confirm_prize(BUSINESS_ID, CUSTOMER_ID, OFFER_ID)

        outcome = await orchestrator.scan(BUSINESS_ID, customer_token, offer_hash)

        assert outcome.progress.current_stamps == 1
        assert outcome.progress.rewards_claimed == 1
        assert outcome.progress.total_scans == 6

    @pytest.mark.asyncio
    async def test_confirm_unknown_offer(self, orchestrator, offer):
        with pytest.raises(OfferNotFoundError):
            await orchestrator.confirm_prize(BUSINESS_ID, CUSTOMER_ID, "off_missing")

    @pytest.mark.asyncio
    async def test_confirm_other_business_offer(self, orchestrator, offer, customer_token, offer_hash):
        await _scan_times(orchestrator, customer_token, offer_hash, 5)

        with pytest.raises(OfferOwnershipError):
            await orchestrator.confirm_prize(OTHER_BUSINESS_ID, CUSTOMER_ID, OFFER_ID)

    @pytest.mark.asyncio
    async def test_confirm_without_progress(self, orchestrator, offer, store):
        with pytest.raises(ProgressNotFoundError):
            await orchestrator.confirm_prize(BUSINESS_ID, CUSTOMER_ID, OFFER_ID)

        assert store.offers[OFFER_ID].redeemed == 0

    @pytest.mark.asyncio
    async def test_confirm_incomplete_card(self, orchestrator, offer, store, customer_token, offer_hash):
        await _scan_times(orchestrator, customer_token, offer_hash, 3)

        with pytest.raises(RewardNotAvailableError):
            await orchestrator.confirm_prize(BUSINESS_ID, CUSTOMER_ID, OFFER_ID)

        assert store.progress[(CUSTOMER_ID, OFFER_ID)].current_stamps == 3
        assert store.offers[OFFER_ID].redeemed == 0

    @pytest.mark.asyncio
    async def test_confirm_retries_conflict(self, orchestrator, offer, store, customer_token, offer_hash):
        await _scan_times(orchestrator, customer_token, offer_hash, 5)
        store.conflicts_to_raise = 1

        outcome = await orchestrator.confirm_prize(BUSINESS_ID, CUSTOMER_ID, OFFER_ID)

        assert outcome.progress.rewards_claimed == 1
        assert store.offers[OFFER_ID].redeemed == 1
