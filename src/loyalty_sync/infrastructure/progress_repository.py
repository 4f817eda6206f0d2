"""asyncpg implementations of the offer and progress repositories.

These repositories are bound to one connection that is already inside a
transaction (see unit_of_work.PostgresUnitOfWork). Progress rows are read
with SELECT ... FOR UPDATE so two concurrent scans of the same card are
serialized on the row lock.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping, Optional

import asyncpg
import structlog

from loyalty_sync.domain.exceptions import ProgressConflictError, ProgressNotFoundError
from loyalty_sync.domain.offer import BarcodeFormat, Offer, OfferStatus
from loyalty_sync.domain.progress import CustomerProgress
from loyalty_sync.domain.repositories import IOfferRepository, IProgressRepository
from loyalty_sync.domain.tiers import tiers_from_config

logger = structlog.get_logger(__name__)

_CONFLICT_ERRORS = (
    asyncpg.exceptions.UniqueViolationError,
    asyncpg.exceptions.DeadlockDetectedError,
    asyncpg.exceptions.SerializationError,
)

_PROGRESS_COLUMNS = """
    id, customer_id, offer_id, business_id, current_stamps, max_stamps,
    is_completed, completed_at, rewards_claimed, last_scan_date,
    first_scan_date, total_scans, last_claimed_at, last_claimed_by,
    last_claim_notes, scheduled_expiration_at, created_at, updated_at
"""


@asynccontextmanager
async def translate_conflicts(customer_id: str, offer_id: str) -> AsyncIterator[None]:
    """Map PostgreSQL concurrency failures to ProgressConflictError."""
    try:
        yield
    except _CONFLICT_ERRORS as e:
        logger.warning(
            "progress_conflict_detected",
            customer_id=customer_id,
            offer_id=offer_id,
            sqlstate=getattr(e, "sqlstate", None),
            error=str(e),
        )
        raise ProgressConflictError(
            f"Concurrent update of progress for customer {customer_id} on offer {offer_id}"
        ) from e


def offer_from_record(record: Mapping[str, Any]) -> Offer:
    tiers = tiers_from_config(record["loyalty_tiers"])
    return Offer(
        offer_id=record["public_id"],
        business_id=record["business_id"],
        title=record["title"],
        description=record["description"],
        business_name=record["business_name"],
        stamps_required=record["stamps_required"],
        branch=record["branch"] or "All Branches",
        status=OfferStatus(record["status"]),
        barcode_preference=BarcodeFormat(record["barcode_preference"] or BarcodeFormat.QR_CODE.value),
        loyalty_tiers=tuple(tiers) if tiers else None,
        background_color=record["background_color"] or "#3B82F6",
        customers=record["customers"],
        redeemed=record["redeemed"],
        created_at=record["created_at"],
    )


def progress_from_record(record: Mapping[str, Any]) -> CustomerProgress:
    return CustomerProgress(
        id=record["id"],
        customer_id=record["customer_id"],
        offer_id=record["offer_id"],
        business_id=record["business_id"],
        current_stamps=record["current_stamps"],
        max_stamps=record["max_stamps"],
        is_completed=record["is_completed"],
        completed_at=record["completed_at"],
        rewards_claimed=record["rewards_claimed"],
        last_scan_date=record["last_scan_date"],
        first_scan_date=record["first_scan_date"],
        total_scans=record["total_scans"],
        last_claimed_at=record["last_claimed_at"],
        last_claimed_by=record["last_claimed_by"],
        last_claim_notes=record["last_claim_notes"],
        scheduled_expiration_at=record["scheduled_expiration_at"],
        created_at=record["created_at"],
        updated_at=record["updated_at"],
    )


class PostgresOfferRepository(IOfferRepository):
    """Offer reads and counter updates."""

    _SELECT = """
        SELECT public_id, business_id, title, description, business_name,
               stamps_required, branch, status, barcode_preference,
               loyalty_tiers, background_color, customers, redeemed, created_at
        FROM offers
    """

    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    async def get(self, offer_id: str) -> Optional[Offer]:
        record = await self.conn.fetchrow(f"{self._SELECT} WHERE public_id = $1", offer_id)
        return offer_from_record(record) if record else None

    async def list_for_business(self, business_id: str) -> list[Offer]:
        records = await self.conn.fetch(
            f"{self._SELECT} WHERE business_id = $1 ORDER BY created_at ASC",
            business_id,
        )
        return [offer_from_record(r) for r in records]

    async def increment_redeemed(self, offer_id: str) -> None:
        await self.conn.execute(
            "UPDATE offers SET redeemed = redeemed + 1, updated_at = NOW() WHERE public_id = $1",
            offer_id,
        )


class PostgresProgressRepository(IProgressRepository):
    """CustomerProgress persistence with row-level locking."""

    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    async def find_or_create(self, customer_id: str, offer: Offer) -> tuple[CustomerProgress, bool]:
        async with translate_conflicts(customer_id, offer.offer_id):
            # ON CONFLICT waits for a racing insert instead of failing
            inserted_id = await self.conn.fetchval(
                """
                INSERT INTO customer_progress (
                    customer_id, offer_id, business_id, current_stamps,
                    max_stamps, is_completed, rewards_claimed, total_scans,
                    created_at, updated_at
                )
                VALUES ($1, $2, $3, 0, $4, FALSE, 0, 0, NOW(), NOW())
                ON CONFLICT (customer_id, offer_id) DO NOTHING
                RETURNING id
                """,
                customer_id,
                offer.offer_id,
                offer.business_id,
                offer.stamps_required,
            )

            created = inserted_id is not None
            if created:
                await self.conn.execute(
                    "UPDATE offers SET customers = customers + 1, updated_at = NOW() WHERE public_id = $1",
                    offer.offer_id,
                )
                logger.info(
                    "progress_created",
                    customer_id=customer_id,
                    offer_id=offer.offer_id,
                    max_stamps=offer.stamps_required,
                )

            progress = await self.get_for_update(customer_id, offer.offer_id)

        if progress is None:
            raise ProgressNotFoundError(
                f"Progress for customer {customer_id} on offer {offer.offer_id} vanished after insert"
            )
        return progress, created

    async def get_for_update(self, customer_id: str, offer_id: str) -> Optional[CustomerProgress]:
        async with translate_conflicts(customer_id, offer_id):
            record = await self.conn.fetchrow(
                f"""
                SELECT {_PROGRESS_COLUMNS}
                FROM customer_progress
                WHERE customer_id = $1 AND offer_id = $2
                FOR UPDATE
                """,
                customer_id,
                offer_id,
            )
        return progress_from_record(record) if record else None

    async def get(self, customer_id: str, offer_id: str) -> Optional[CustomerProgress]:
        record = await self.conn.fetchrow(
            f"""
            SELECT {_PROGRESS_COLUMNS}
            FROM customer_progress
            WHERE customer_id = $1 AND offer_id = $2
            """,
            customer_id,
            offer_id,
        )
        return progress_from_record(record) if record else None

    async def save(self, progress: CustomerProgress) -> CustomerProgress:
        if progress.id is None:
            raise ProgressNotFoundError("Cannot save progress without a primary key")

        async with translate_conflicts(progress.customer_id, progress.offer_id):
            record = await self.conn.fetchrow(
                f"""
                UPDATE customer_progress
                SET current_stamps = $2,
                    is_completed = $3,
                    completed_at = $4,
                    rewards_claimed = $5,
                    last_scan_date = $6,
                    first_scan_date = $7,
                    total_scans = $8,
                    last_claimed_at = $9,
                    last_claimed_by = $10,
                    last_claim_notes = $11,
                    scheduled_expiration_at = $12,
                    updated_at = NOW()
                WHERE id = $1
                RETURNING {_PROGRESS_COLUMNS}
                """,
                progress.id,
                progress.current_stamps,
                progress.is_completed,
                progress.completed_at,
                progress.rewards_claimed,
                progress.last_scan_date,
                progress.first_scan_date,
                progress.total_scans,
                progress.last_claimed_at,
                progress.last_claimed_by,
                progress.last_claim_notes,
                progress.scheduled_expiration_at,
            )

        if record is None:
            raise ProgressNotFoundError(f"Progress row {progress.id} no longer exists")

        logger.debug(
            "progress_saved",
            customer_id=progress.customer_id,
            offer_id=progress.offer_id,
            current_stamps=record["current_stamps"],
            rewards_claimed=record["rewards_claimed"],
        )
        return progress_from_record(record)
