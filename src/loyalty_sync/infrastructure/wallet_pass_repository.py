"""asyncpg implementations of the wallet pass registry and Apple device lookups."""

from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

import asyncpg
import structlog

from loyalty_sync.domain.repositories import IDeviceRegistry, IWalletPassRepository
from loyalty_sync.domain.wallet_pass import PassStatus, WalletPass, WalletType
from loyalty_sync.infrastructure.database import get_connection

logger = structlog.get_logger(__name__)

_PASS_COLUMNS = """
    id, customer_id, progress_id, business_id, offer_id, wallet_type,
    wallet_serial, wallet_object_id, authentication_token, pass_status,
    last_updated_at, last_updated_tag, notification_count,
    last_notification_date, notification_history, pass_data,
    scheduled_expiration_at, created_at
"""


def wallet_pass_from_record(record: Mapping[str, Any]) -> WalletPass:
    return WalletPass(
        id=record["id"],
        customer_id=record["customer_id"],
        progress_id=record["progress_id"],
        business_id=record["business_id"],
        offer_id=record["offer_id"],
        wallet_type=WalletType(record["wallet_type"]),
        wallet_serial=record["wallet_serial"],
        wallet_object_id=record["wallet_object_id"],
        authentication_token=record["authentication_token"],
        pass_status=PassStatus(record["pass_status"]),
        last_updated_at=record["last_updated_at"],
        last_updated_tag=record["last_updated_tag"],
        notification_count=record["notification_count"],
        last_notification_date=record["last_notification_date"],
        notification_history=tuple(record["notification_history"] or ()),
        pass_data=dict(record["pass_data"] or {}),
        scheduled_expiration_at=record["scheduled_expiration_at"],
        created_at=record["created_at"],
    )


def prune_history(history: tuple[str, ...], now: datetime, days: int) -> list[str]:
    """Keep notification timestamps newer than ``days``."""
    cutoff = now - timedelta(days=days)
    kept = []
    for entry in history:
        try:
            if datetime.fromisoformat(entry) >= cutoff:
                kept.append(entry)
        except (TypeError, ValueError):
            continue
    return kept


class PostgresWalletPassRepository(IWalletPassRepository):
    """Wallet pass rows, bound to a transaction connection."""

    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    async def list_active(self, customer_id: str, offer_id: str) -> list[WalletPass]:
        records = await self.conn.fetch(
            f"""
            SELECT {_PASS_COLUMNS}
            FROM wallet_passes
            WHERE customer_id = $1 AND offer_id = $2 AND pass_status = 'active'
            ORDER BY created_at ASC
            """,
            customer_id,
            offer_id,
        )
        return [wallet_pass_from_record(r) for r in records]

    async def get(
        self, customer_id: str, offer_id: str, wallet_type: WalletType
    ) -> Optional[WalletPass]:
        record = await self.conn.fetchrow(
            f"""
            SELECT {_PASS_COLUMNS}
            FROM wallet_passes
            WHERE customer_id = $1 AND offer_id = $2 AND wallet_type = $3
            """,
            customer_id,
            offer_id,
            wallet_type.value,
        )
        return wallet_pass_from_record(record) if record else None

    async def upsert(self, wallet_pass: WalletPass) -> WalletPass:
        record = await self.conn.fetchrow(
            f"""
            INSERT INTO wallet_passes (
                customer_id, progress_id, business_id, offer_id, wallet_type,
                wallet_serial, wallet_object_id, authentication_token,
                pass_status, pass_data, scheduled_expiration_at, created_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, 'active', $9, $10, NOW())
            ON CONFLICT (customer_id, offer_id, wallet_type) DO UPDATE
            SET progress_id = EXCLUDED.progress_id,
                wallet_serial = COALESCE(EXCLUDED.wallet_serial, wallet_passes.wallet_serial),
                wallet_object_id = COALESCE(EXCLUDED.wallet_object_id, wallet_passes.wallet_object_id),
                authentication_token = COALESCE(
                    EXCLUDED.authentication_token, wallet_passes.authentication_token
                ),
                pass_status = 'active',
                pass_data = EXCLUDED.pass_data
            RETURNING {_PASS_COLUMNS}
            """,
            wallet_pass.customer_id,
            wallet_pass.progress_id,
            wallet_pass.business_id,
            wallet_pass.offer_id,
            wallet_pass.wallet_type.value,
            wallet_pass.wallet_serial,
            wallet_pass.wallet_object_id,
            wallet_pass.authentication_token,
            wallet_pass.pass_data,
            wallet_pass.scheduled_expiration_at,
        )

        logger.info(
            "wallet_pass_upserted",
            customer_id=wallet_pass.customer_id,
            offer_id=wallet_pass.offer_id,
            wallet_type=wallet_pass.wallet_type.value,
        )
        return wallet_pass_from_record(record)

    async def record_push(
        self,
        wallet_pass: WalletPass,
        pushed_at: datetime,
        pass_data: dict[str, Any] | None,
        notified: bool,
        history_days: int,
    ) -> WalletPass:
        history = prune_history(wallet_pass.notification_history, pushed_at, history_days)
        if notified:
            history.append(pushed_at.isoformat())

        # Apple "passes updated since" compares against this tag
        updated_tag = (
            str(int(pushed_at.timestamp()))
            if wallet_pass.wallet_type is WalletType.APPLE
            else wallet_pass.last_updated_tag
        )

        record = await self.conn.fetchrow(
            f"""
            UPDATE wallet_passes
            SET last_updated_at = $2,
                last_updated_tag = $3,
                pass_data = COALESCE($4, pass_data),
                notification_count = notification_count + $5,
                last_notification_date = CASE WHEN $5 > 0 THEN $2 ELSE last_notification_date END,
                notification_history = $6
            WHERE id = $1
            RETURNING {_PASS_COLUMNS}
            """,
            wallet_pass.id,
            pushed_at,
            updated_tag,
            pass_data,
            1 if notified else 0,
            history,
        )
        return wallet_pass_from_record(record) if record else wallet_pass

    async def update_status(self, wallet_pass: WalletPass, status: PassStatus) -> None:
        await self.conn.execute(
            "UPDATE wallet_passes SET pass_status = $2 WHERE id = $1",
            wallet_pass.id,
            status.value,
        )
        logger.info(
            "wallet_pass_status_changed",
            customer_id=wallet_pass.customer_id,
            offer_id=wallet_pass.offer_id,
            wallet_type=wallet_pass.wallet_type.value,
            status=status.value,
        )


class PostgresDeviceRegistry(IDeviceRegistry):
    """Reads push tokens registered by the PassKit web service."""

    async def push_tokens_for_serial(self, serial_number: str) -> list[str]:
        async with get_connection() as conn:
            records = await conn.fetch(
                """
                SELECT DISTINCT d.push_token
                FROM apple_device_registrations r
                JOIN apple_devices d ON d.id = r.device_id
                WHERE r.serial_number = $1 AND d.push_token IS NOT NULL
                """,
                serial_number,
            )
        return [r["push_token"] for r in records]

    async def unregister_push_token(self, push_token: str) -> None:
        async with get_connection() as conn:
            result = await conn.execute(
                """
                DELETE FROM apple_device_registrations
                WHERE device_id IN (SELECT id FROM apple_devices WHERE push_token = $1)
                """,
                push_token,
            )
        logger.info(
            "apple_device_unregistered",
            push_token=push_token[:16] + "...",
            result=result,
        )
