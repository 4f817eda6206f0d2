"""PostgreSQL infrastructure: connection pool, repositories and unit of work."""

from loyalty_sync.infrastructure.progress_repository import (
    PostgresOfferRepository,
    PostgresProgressRepository,
)
from loyalty_sync.infrastructure.session_repository import PostgresBusinessSessionRepository
from loyalty_sync.infrastructure.unit_of_work import PostgresUnitOfWork
from loyalty_sync.infrastructure.wallet_pass_repository import (
    PostgresDeviceRegistry,
    PostgresWalletPassRepository,
)

__all__ = [
    "PostgresOfferRepository",
    "PostgresProgressRepository",
    "PostgresWalletPassRepository",
    "PostgresDeviceRegistry",
    "PostgresBusinessSessionRepository",
    "PostgresUnitOfWork",
]
