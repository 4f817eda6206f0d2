"""Business scan endpoints: add stamp, verify and confirm prize."""

import structlog
from fastapi import APIRouter, HTTPException, status

from loyalty_sync.api.dependencies import BusinessId, Orchestrator
from loyalty_sync.api.models import (
    ConfirmPrizeDataJSON,
    ConfirmPrizeRequestJSON,
    ConfirmPrizeResponseJSON,
    CustomerJSON,
    OfferSummaryJSON,
    ProgressJSON,
    ScanDataJSON,
    ScanResponseJSON,
    TierStatusJSON,
    TierUpgradeJSON,
    VerifyDataJSON,
    VerifyResponseJSON,
    WalletUpdateJSON,
)
from loyalty_sync.domain.exceptions import (
    LoyaltyError,
    OfferNotFoundError,
    OfferOwnershipError,
    ProgressConflictError,
    ProgressNotFoundError,
    RewardNotAvailableError,
    TokenBusinessMismatchError,
    TokenDecodeError,
)
from loyalty_sync.domain.offer import Offer
from loyalty_sync.domain.progress import new_progress

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/business/scan", tags=["scan"])

_STATUS_BY_ERROR: dict[type[LoyaltyError], int] = {
    TokenDecodeError: status.HTTP_400_BAD_REQUEST,
    RewardNotAvailableError: status.HTTP_400_BAD_REQUEST,
    TokenBusinessMismatchError: status.HTTP_403_FORBIDDEN,
    OfferOwnershipError: status.HTTP_403_FORBIDDEN,
    OfferNotFoundError: status.HTTP_404_NOT_FOUND,
    ProgressNotFoundError: status.HTTP_404_NOT_FOUND,
    ProgressConflictError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _to_http_exception(error: LoyaltyError) -> HTTPException:
    """Map a domain error to its HTTP status."""
    for error_type, status_code in _STATUS_BY_ERROR.items():
        if isinstance(error, error_type):
            break
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if status_code >= 500:
        logger.error("scan_request_failed", error=str(error), error_type=type(error).__name__)
        return HTTPException(status_code=status_code, detail="Failed to update progress")
    return HTTPException(status_code=status_code, detail=str(error))


def _offer_summary(offer: Offer) -> OfferSummaryJSON:
    return OfferSummaryJSON(id=offer.offer_id, title=offer.title, stamps_required=offer.stamps_required)


@router.post(
    "/progress/{customer_token}",
    response_model=ScanResponseJSON,
    response_model_exclude_none=True,
)
@router.post(
    "/progress/{customer_token}/{offer_hash}",
    response_model=ScanResponseJSON,
    response_model_exclude_none=True,
)
async def scan_progress(
    customer_token: str,
    business_id: BusinessId,
    orchestrator: Orchestrator,
    offer_hash: str | None = None,
) -> ScanResponseJSON:
    """Add one stamp for the scanned customer.

    The QR code carries either "token:hash" in one segment or the token
    and hash as two path segments.
    """
    try:
        outcome = await orchestrator.scan(business_id, customer_token, offer_hash)
    except LoyaltyError as e:
        raise _to_http_exception(e) from e

    if outcome.already_completed:
        message = "Reward already earned. Confirm the prize before adding stamps."
    elif outcome.reward_earned:
        message = "Congratulations! Reward earned!"
    else:
        message = "Stamp added successfully"

    return ScanResponseJSON(
        success=True,
        message=message,
        data=ScanDataJSON(
            customer_id=outcome.customer_id,
            offer=_offer_summary(outcome.offer),
            progress=ProgressJSON.from_progress(outcome.progress),
            reward_earned=outcome.reward_earned,
            already_completed=outcome.already_completed,
            wallet_updates=WalletUpdateJSON.from_report(outcome.sync_report),
        ),
    )


@router.get(
    "/verify/{customer_token}",
    response_model=VerifyResponseJSON,
    response_model_exclude_none=True,
)
@router.get(
    "/verify/{customer_token}/{offer_hash}",
    response_model=VerifyResponseJSON,
    response_model_exclude_none=True,
)
async def verify_scan(
    customer_token: str,
    business_id: BusinessId,
    orchestrator: Orchestrator,
    offer_hash: str | None = None,
) -> VerifyResponseJSON:
    """Preview a scan without adding a stamp."""
    try:
        outcome = await orchestrator.verify(business_id, customer_token, offer_hash)
    except LoyaltyError as e:
        raise _to_http_exception(e) from e

    # A first-time customer has no row yet; show an empty card
    progress = outcome.progress or new_progress(
        outcome.customer_id,
        outcome.offer.offer_id,
        outcome.offer.business_id,
        outcome.offer.stamps_required,
    )

    return VerifyResponseJSON(
        success=True,
        data=VerifyDataJSON(
            customer=CustomerJSON(id=outcome.customer_id),
            offer=_offer_summary(outcome.offer),
            progress=ProgressJSON.from_progress(progress),
            can_scan=outcome.can_scan,
        ),
    )


@router.post(
    "/confirm-prize/{customer_id}/{offer_id}",
    response_model=ConfirmPrizeResponseJSON,
    response_model_exclude_none=True,
)
async def confirm_prize(
    customer_id: str,
    offer_id: str,
    business_id: BusinessId,
    orchestrator: Orchestrator,
    request: ConfirmPrizeRequestJSON | None = None,
) -> ConfirmPrizeResponseJSON:
    """Redeem a completed card and start a new stamp cycle."""
    notes = request.notes if request else None

    try:
        outcome = await orchestrator.confirm_prize(business_id, customer_id, offer_id, notes=notes)
    except LoyaltyError as e:
        raise _to_http_exception(e) from e

    if outcome.tier_upgrade:
        message = f"Prize confirmed! Customer upgraded to {outcome.tier_upgrade.new_tier}"
    else:
        message = "Prize confirmed! New cycle started."

    return ConfirmPrizeResponseJSON(
        success=True,
        message=message,
        data=ConfirmPrizeDataJSON(
            customer_id=outcome.customer_id,
            offer_id=outcome.offer.offer_id,
            progress=ProgressJSON.from_progress(outcome.progress),
            tier=TierStatusJSON.from_status(outcome.tier),
            tier_upgrade=TierUpgradeJSON.from_upgrade(outcome.tier_upgrade),
            new_cycle_started=outcome.new_cycle_started,
            total_completions=outcome.total_completions,
            wallet_updates=WalletUpdateJSON.from_report(outcome.sync_report),
        ),
    )
