"""Unit tests for the wallet adapter factory."""

from unittest.mock import AsyncMock

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from loyalty_sync.config import AppleWalletSettings, GoogleWalletSettings, Settings
from loyalty_sync.domain.repositories import IDeviceRegistry
from loyalty_sync.domain.wallet_pass import WalletType
from loyalty_sync.wallets import AppleWalletAdapter, GoogleWalletAdapter, WalletAdapterFactory


@pytest.fixture
def empty_settings():
    """Settings with no wallet credentials."""
    return Settings(apple_wallet=AppleWalletSettings(), google_wallet=GoogleWalletSettings())


class TestWalletAdapterFactory:
    """Tests for creating wallet adapters."""

    def test_create_apple_adapter(self, empty_settings):
        adapter = WalletAdapterFactory.create_adapter("apple", app_settings=empty_settings)

        assert isinstance(adapter, AppleWalletAdapter)
        assert adapter.enabled is False

    def test_create_google_adapter_case_insensitive(self, empty_settings):
        adapter = WalletAdapterFactory.create_adapter("GOOGLE", app_settings=empty_settings)

        assert isinstance(adapter, GoogleWalletAdapter)

    def test_create_from_enum(self, empty_settings):
        adapter = WalletAdapterFactory.create_adapter(WalletType.GOOGLE, app_settings=empty_settings)

        assert adapter.wallet_type is WalletType.GOOGLE

    def test_unknown_wallet_type(self):
        with pytest.raises(ValueError) as exc_info:
            WalletAdapterFactory.create_adapter("samsung")

        assert "Unknown wallet type: samsung" in str(exc_info.value)
        assert "Available wallet types:" in str(exc_info.value)

    def test_create_adapters_keys_every_wallet_type(self, empty_settings):
        adapters = WalletAdapterFactory.create_adapters(app_settings=empty_settings)

        assert set(adapters) == {WalletType.APPLE, WalletType.GOOGLE}
        assert not any(a.enabled for a in adapters.values())

    def test_apple_enabled_with_credentials(self):
        pem = ec.generate_private_key(ec.SECP256R1()).private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ).decode()
        app_settings = Settings(
            apple_wallet=AppleWalletSettings(
                pass_type_identifier="pass.com.example.loyalty",
                team_identifier="TEAM123456",
                apns_key_id="KEY1234567",
                apns_private_key=pem,
            ),
            google_wallet=GoogleWalletSettings(),
        )

        adapters = WalletAdapterFactory.create_adapters(
            device_registry=AsyncMock(spec=IDeviceRegistry), app_settings=app_settings
        )

        assert adapters[WalletType.APPLE].enabled is True
        assert adapters[WalletType.GOOGLE].enabled is False

    def test_separate_calls_build_independent_adapters(self, empty_settings):
        first = WalletAdapterFactory.create_adapters(app_settings=empty_settings)
        second = WalletAdapterFactory.create_adapters(app_settings=empty_settings)

        assert first[WalletType.GOOGLE] is not second[WalletType.GOOGLE]
        assert not hasattr(WalletAdapterFactory, "register_adapter")
