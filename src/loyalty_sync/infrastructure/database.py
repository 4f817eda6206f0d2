"""Database connection pool management."""

import json
from contextlib import asynccontextmanager
from typing import AsyncIterator

import asyncpg
import structlog

from loyalty_sync.config import settings

logger = structlog.get_logger(__name__)

# Global connection pool
_pool: asyncpg.Pool | None = None


async def _init_connection(conn: asyncpg.Connection) -> None:
    """Decode json/jsonb columns into Python objects."""
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )


async def create_pool() -> asyncpg.Pool:
    """Create and return a connection pool.

    Returns:
        asyncpg.Pool: Database connection pool
    """
    logger.info(
        "creating_database_pool",
        database_url=settings.database.url.split("@")[-1],  # Hide credentials
        min_size=settings.database.pool_min_size,
        max_size=settings.database.pool_max_size,
    )

    pool = await asyncpg.create_pool(
        dsn=settings.database.url,
        min_size=settings.database.pool_min_size,
        max_size=settings.database.pool_max_size,
        command_timeout=settings.database.command_timeout_seconds,
        init=_init_connection,
        server_settings={
            "application_name": settings.service_name,
        },
    )

    if pool is None:
        raise RuntimeError("Failed to create database pool")

    logger.info("database_pool_created")
    return pool


async def get_pool() -> asyncpg.Pool:
    """Get the global connection pool.

    Returns:
        asyncpg.Pool: Database connection pool
    """
    global _pool
    if _pool is None:
        _pool = await create_pool()
    return _pool


async def close_pool() -> None:
    """Close the global connection pool."""
    global _pool
    if _pool is not None:
        logger.info("closing_database_pool")
        await _pool.close()
        _pool = None
        logger.info("database_pool_closed")


@asynccontextmanager
async def get_connection() -> AsyncIterator[asyncpg.Connection]:
    """Get a database connection from the pool.

    Yields:
        asyncpg.Connection: Database connection

    Example:
        async with get_connection() as conn:
            result = await conn.fetchrow("SELECT 1")
    """
    pool = await get_pool()
    async with pool.acquire() as connection:
        yield connection


@asynccontextmanager
async def transaction() -> AsyncIterator[asyncpg.Connection]:
    """Get a database connection with an active transaction.

    Yields:
        asyncpg.Connection: Database connection with transaction

    Example:
        async with transaction() as conn:
            await conn.execute("UPDATE ...")
            # Auto-commits on success, auto-rolls back on exception
    """
    async with get_connection() as conn:
        async with conn.transaction():
            yield conn
