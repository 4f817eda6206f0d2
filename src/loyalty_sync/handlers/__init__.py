"""Request orchestration: scan flow and wallet sync dispatch."""

from loyalty_sync.handlers.scan import ClaimOutcome, ScanOrchestrator, ScanOutcome, VerifyOutcome
from loyalty_sync.handlers.sync_dispatcher import (
    ProvisionResult,
    SyncReport,
    WalletSyncDispatcher,
    WalletUpdate,
)

__all__ = [
    "ScanOrchestrator",
    "ScanOutcome",
    "VerifyOutcome",
    "ClaimOutcome",
    "WalletSyncDispatcher",
    "SyncReport",
    "WalletUpdate",
    "ProvisionResult",
]
