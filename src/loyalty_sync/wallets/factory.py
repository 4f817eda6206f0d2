"""
Wallet adapter factory.

Builds explicitly constructed adapter instances from configuration so the
API layer can inject them and tests can substitute fakes. The set of
platforms is closed: one adapter per WalletType.
"""

import structlog

from loyalty_sync.config import Settings, settings
from loyalty_sync.domain.repositories import IDeviceRegistry
from loyalty_sync.domain.wallet_pass import WalletType
from loyalty_sync.wallets.apple_wallet import AppleWalletAdapter
from loyalty_sync.wallets.base import WalletAdapter
from loyalty_sync.wallets.google_wallet import GoogleWalletAdapter

logger = structlog.get_logger(__name__)


class WalletAdapterFactory:
    """Factory for wallet adapter instances, keyed by wallet type."""

    @classmethod
    def create_adapter(
        cls,
        wallet_type: WalletType | str,
        device_registry: IDeviceRegistry | None = None,
        app_settings: Settings | None = None,
    ) -> WalletAdapter:
        """
        Create a wallet adapter by wallet type.

        Args:
            wallet_type: WalletType, or its value "apple" / "google" (any case)
            device_registry: Apple device lookups (Apple only)
            app_settings: Settings to read credentials from (defaults to global)

        Returns:
            WalletAdapter instance, possibly disabled when credentials are missing

        Raises:
            ValueError: If wallet_type is not a known platform

        Examples:
            adapter = WalletAdapterFactory.create_adapter("google")
            adapter = WalletAdapterFactory.create_adapter(WalletType.APPLE, device_registry=registry)
        """
        try:
            resolved = WalletType(str(getattr(wallet_type, "value", wallet_type)).lower())
        except ValueError:
            available = ", ".join(w.value for w in WalletType)
            raise ValueError(
                f"Unknown wallet type: {wallet_type}. Available wallet types: {available}"
            ) from None

        app_settings = app_settings or settings

        adapter: WalletAdapter
        if resolved is WalletType.APPLE:
            adapter = AppleWalletAdapter.from_settings(app_settings.apple_wallet, device_registry)
        else:
            adapter = GoogleWalletAdapter.from_settings(app_settings.google_wallet)

        logger.info(
            "wallet_adapter_created",
            wallet_type=resolved.value,
            adapter_class=type(adapter).__name__,
            enabled=adapter.enabled,
        )
        return adapter

    @classmethod
    def create_adapters(
        cls,
        device_registry: IDeviceRegistry | None = None,
        app_settings: Settings | None = None,
    ) -> dict[WalletType, WalletAdapter]:
        """Create one adapter per wallet type."""
        return {
            wallet_type: cls.create_adapter(
                wallet_type, device_registry=device_registry, app_settings=app_settings
            )
            for wallet_type in WalletType
        }
