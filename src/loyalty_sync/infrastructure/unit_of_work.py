"""Transaction scope binding the repositories to one connection."""

import asyncpg

from loyalty_sync.domain.repositories import IUnitOfWork
from loyalty_sync.infrastructure.database import get_pool
from loyalty_sync.infrastructure.progress_repository import (
    PostgresOfferRepository,
    PostgresProgressRepository,
)
from loyalty_sync.infrastructure.wallet_pass_repository import PostgresWalletPassRepository


class PostgresUnitOfWork(IUnitOfWork):
    """
    One asyncpg transaction with the offer, progress and wallet pass repositories.

    Commits when the block exits cleanly, rolls back when it raises. Row
    locks taken inside (SELECT ... FOR UPDATE) are released at commit.

    Example:
        async with PostgresUnitOfWork() as uow:
            progress, _ = await uow.progress.find_or_create(customer_id, offer)
            await uow.progress.save(updated)
    """

    def __init__(self, pool: asyncpg.Pool | None = None):
        self._pool = pool
        self._conn: asyncpg.Connection | None = None
        self._tx = None

    async def __aenter__(self) -> "PostgresUnitOfWork":
        pool = self._pool or await get_pool()
        self._conn = await pool.acquire()
        try:
            self._tx = self._conn.transaction()
            await self._tx.start()
        except BaseException:
            await pool.release(self._conn)
            self._conn = None
            raise

        self.offers = PostgresOfferRepository(self._conn)
        self.progress = PostgresProgressRepository(self._conn)
        self.wallet_passes = PostgresWalletPassRepository(self._conn)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        pool = self._pool or await get_pool()
        try:
            if exc_type is None:
                await self._tx.commit()
            else:
                await self._tx.rollback()
        finally:
            await pool.release(self._conn)
            self._conn = None
            self._tx = None
