"""
Wallet platform adapters.

This package contains the wallet adapter interface and the Apple Wallet and
Google Wallet implementations, plus the shared pass rendering helpers.
"""

from loyalty_sync.wallets.apple_wallet import AppleWalletAdapter
from loyalty_sync.wallets.base import (
    PassDesign,
    PassHolder,
    WalletAdapter,
    WalletOperationResult,
    WalletOperationStatus,
)
from loyalty_sync.wallets.factory import WalletAdapterFactory
from loyalty_sync.wallets.google_wallet import GoogleWalletAdapter

__all__ = [
    "WalletAdapter",
    "WalletOperationResult",
    "WalletOperationStatus",
    "PassHolder",
    "PassDesign",
    "AppleWalletAdapter",
    "GoogleWalletAdapter",
    "WalletAdapterFactory",
]
