"""Loyalty stamp progress engine with Apple Wallet and Google Wallet synchronization."""

__version__ = "0.1.0"
