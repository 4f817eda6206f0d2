"""Pytest configuration and shared fixtures for all tests.

This module provides shared test fixtures including:
- An in-memory store and unit of work standing in for PostgreSQL
- Fake wallet adapters with scripted push outcomes
- Sample offers, customers and tokens
"""

from datetime import timedelta

import pytest

from fakes import (
    BUSINESS_ID,
    CUSTOMER_ID,
    FIXED_NOW,
    OFFER_ID,
    FakeUnitOfWork,
    FakeWalletAdapter,
    InMemoryStore,
    make_offer,
)
from loyalty_sync.domain.identity_token import encode_customer_token, generate_offer_hash
from loyalty_sync.domain.wallet_pass import WalletType
from loyalty_sync.handlers.scan import ScanOrchestrator
from loyalty_sync.handlers.sync_dispatcher import WalletSyncDispatcher


@pytest.fixture
def store():
    """Empty in-memory database."""
    return InMemoryStore()


@pytest.fixture
def uow_factory(store):
    """Callable returning a fresh unit of work over the shared store."""
    return lambda: FakeUnitOfWork(store)


@pytest.fixture
def offer(store):
    """Active 5-stamp offer owned by BUSINESS_ID."""
    return store.add_offer(make_offer())


@pytest.fixture
def apple_adapter():
    return FakeWalletAdapter(WalletType.APPLE)


@pytest.fixture
def google_adapter():
    return FakeWalletAdapter(WalletType.GOOGLE)


@pytest.fixture
def dispatcher(apple_adapter, google_adapter, uow_factory):
    return WalletSyncDispatcher(
        {WalletType.APPLE: apple_adapter, WalletType.GOOGLE: google_adapter},
        uow_factory,
        adapter_timeout_seconds=1.0,
        daily_notification_limit=10,
        notification_history_days=30,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def orchestrator(uow_factory, dispatcher):
    return ScanOrchestrator(uow_factory, dispatcher, clock=lambda: FIXED_NOW)


@pytest.fixture
def customer_token():
    """Token issued by BUSINESS_ID for CUSTOMER_ID."""
    return encode_customer_token(CUSTOMER_ID, BUSINESS_ID, timestamp=1767225600000)


@pytest.fixture
def offer_hash():
    return generate_offer_hash(OFFER_ID, BUSINESS_ID)


@pytest.fixture
def recent_history():
    """ISO timestamps within the last day relative to FIXED_NOW."""

    def _build(count: int) -> tuple[str, ...]:
        return tuple((FIXED_NOW - timedelta(minutes=10 * (i + 1))).isoformat() for i in range(count))

    return _build
