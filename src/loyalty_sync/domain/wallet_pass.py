"""Wallet pass registry models."""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class WalletType(str, Enum):
    """Wallet platforms a pass can live on."""

    APPLE = "apple"
    GOOGLE = "google"

    @property
    def platform_name(self) -> str:
        return "Apple Wallet" if self is WalletType.APPLE else "Google Wallet"


class PassStatus(str, Enum):
    """Lifecycle status of a wallet pass."""

    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"
    DELETED = "deleted"


@dataclass(frozen=True)
class WalletPass:
    """One pass for a (customer, offer, wallet_type).

    Attributes:
        customer_id: Customer identifier
        offer_id: Offer identifier
        business_id: Owning business identifier
        wallet_type: Apple or Google
        wallet_serial: Apple pass serial number
        wallet_object_id: Google loyalty object ID
        authentication_token: Apple web service auth token
        pass_status: Lifecycle status
        progress_id: customer_progress primary key
        last_updated_at: Last successful push
        last_updated_tag: Apple "updated since" tag (epoch seconds)
        notification_count: Device notifications sent
        last_notification_date: Time of the last device notification
        notification_history: Recent notification timestamps (ISO strings)
        pass_data: Last rendered pass content
        id: Database primary key
    """

    customer_id: str
    offer_id: str
    business_id: str
    wallet_type: WalletType
    wallet_serial: str | None = None
    wallet_object_id: str | None = None
    authentication_token: str | None = None
    pass_status: PassStatus = PassStatus.ACTIVE
    progress_id: int | None = None
    last_updated_at: datetime | None = None
    last_updated_tag: str | None = None
    notification_count: int = 0
    last_notification_date: datetime | None = None
    notification_history: tuple[str, ...] = ()
    pass_data: dict[str, Any] = field(default_factory=dict)
    scheduled_expiration_at: datetime | None = None
    id: int | None = None
    created_at: datetime | None = None

    @property
    def remote_object_id(self) -> str | None:
        """Identifier the wallet platform knows this pass by."""
        if self.wallet_type is WalletType.APPLE:
            return self.wallet_serial
        return self.wallet_object_id

    @property
    def is_active(self) -> bool:
        return self.pass_status == PassStatus.ACTIVE


def generate_apple_auth_token(customer_id: str, offer_id: str) -> str:
    """Derive the Apple web service authentication token for a pass.

    The token depends only on (customer_id, offer_id) so device registration
    checks and pass regeneration always agree.
    """
    digest = hashlib.sha256(f"{customer_id}:{offer_id}".encode("utf-8")).hexdigest()
    return digest[:32]
