"""FastAPI application entry point for the loyalty scan service."""

from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Response
from fastapi.responses import JSONResponse

from loyalty_sync import __version__
from loyalty_sync.api.routes import scan
from loyalty_sync.config import settings
from loyalty_sync.handlers.scan import ScanOrchestrator
from loyalty_sync.handlers.sync_dispatcher import WalletSyncDispatcher
from loyalty_sync.infrastructure.database import close_pool, get_pool
from loyalty_sync.infrastructure.session_repository import PostgresBusinessSessionRepository
from loyalty_sync.infrastructure.unit_of_work import PostgresUnitOfWork
from loyalty_sync.infrastructure.wallet_pass_repository import PostgresDeviceRegistry
from loyalty_sync.logging_config import configure_logging
from loyalty_sync.wallets.factory import WalletAdapterFactory

# Configure logging at module level
configure_logging()

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager.

    Handles startup and shutdown:
    - Initialize database pool
    - Build wallet adapters and the scan orchestrator
    - Close adapters and pool on shutdown
    """
    logger.info("starting_loyalty_sync", environment=settings.environment)

    try:
        pool = await get_pool()
        logger.info("database_pool_initialized")

        async with pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
        logger.info("database_connection_verified")

    except Exception as e:
        logger.error("failed_to_initialize_database", error=str(e))
        raise

    adapters = WalletAdapterFactory.create_adapters(device_registry=PostgresDeviceRegistry())
    dispatcher = WalletSyncDispatcher(adapters, uow_factory=PostgresUnitOfWork)

    app.state.adapters = adapters
    app.state.dispatcher = dispatcher
    app.state.orchestrator = ScanOrchestrator(PostgresUnitOfWork, dispatcher)
    app.state.session_repository = PostgresBusinessSessionRepository()

    logger.info(
        "loyalty_sync_started",
        wallets_enabled=[w.value for w, a in adapters.items() if a.enabled],
    )

    yield

    logger.info("shutting_down_loyalty_sync")

    for adapter in adapters.values():
        await adapter.close()

    await close_pool()

    logger.info("loyalty_sync_shutdown_complete")


app = FastAPI(
    title="Loyalty Sync",
    description="Stamp-card progress tracking with Apple and Google Wallet sync",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(scan.router)


@app.get("/health")
async def health_check() -> Response:
    """Health check endpoint.

    Returns:
        200 OK if service is healthy
        503 Service Unavailable if unhealthy
    """
    try:
        pool = await get_pool()
        async with pool.acquire() as conn:
            await conn.fetchval("SELECT 1")

        return JSONResponse(
            status_code=200,
            content={
                "status": "healthy",
                "service": settings.service_name,
                "environment": settings.environment,
            },
        )
    except Exception as e:
        logger.error("health_check_failed", error=str(e))
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "service": settings.service_name,
                "error": str(e),
            },
        )


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": "Loyalty Sync",
        "version": __version__,
        "status": "running",
    }
