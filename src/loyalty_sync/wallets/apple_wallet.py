"""Apple Wallet adapter.

Apple passes are pulled, not pushed: the device fetches the signed pass
from our PassKit web service after an APNs nudge. This adapter therefore:
- renders the pass content (stored on the wallet pass row, served by the
  web service)
- sends empty-payload APNs pushes to every device registered for the pass

There is no remote class object on Apple's side; ensure_class_exists only
checks configuration.
"""

import re
from pathlib import Path
from typing import Any

import structlog

from loyalty_sync.config import AppleWalletSettings
from loyalty_sync.domain.exceptions import WalletRateLimitError, WalletTimeoutError
from loyalty_sync.domain.identity_token import build_scan_payload
from loyalty_sync.domain.offer import Offer
from loyalty_sync.domain.progress import CustomerProgress
from loyalty_sync.domain.repositories import IDeviceRegistry
from loyalty_sync.domain.tiers import TierStatus
from loyalty_sync.domain.wallet_pass import WalletPass, WalletType, generate_apple_auth_token
from loyalty_sync.wallets import pass_content
from loyalty_sync.wallets.apns_client import ApnsClient, load_apns_key
from loyalty_sync.wallets.barcode import APPLE_BARCODE_FORMATS, select_barcode_format
from loyalty_sync.wallets.base import PassDesign, PassHolder, WalletAdapter, WalletOperationResult

logger = structlog.get_logger(__name__)

_SERIAL_SANITIZER = re.compile(r"[^A-Za-z0-9._-]")


def serial_number_for(customer_id: str, offer_id: str) -> str:
    """Deterministic pass serial number for (customer, offer)."""
    return _SERIAL_SANITIZER.sub("_", f"{customer_id}-{offer_id}")


def hex_to_rgb(color: str) -> str:
    """Convert "#RRGGBB" to the "rgb(r, g, b)" form pass.json expects."""
    value = color.lstrip("#")
    if len(value) != 6:
        return "rgb(59, 130, 246)"
    try:
        r, g, b = (int(value[i:i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        return "rgb(59, 130, 246)"
    return f"rgb({r}, {g}, {b})"


def _stored_holder_name(wallet_pass: WalletPass) -> str | None:
    """Member name rendered on the previous version of the pass."""
    for back_field in wallet_pass.pass_data.get("storeCard", {}).get("backFields", []):
        if back_field.get("key") == "customer":
            return back_field.get("value")
    return None


class AppleWalletAdapter(WalletAdapter):
    """Apple Wallet integration over the PassKit web service and APNs."""

    wallet_type = WalletType.APPLE

    def __init__(
        self,
        pass_type_identifier: str,
        team_identifier: str,
        apns_client: ApnsClient | None,
        device_registry: IDeviceRegistry | None,
        organization_name: str = "Loyalty Platform",
        web_service_url: str = "",
    ):
        self.pass_type_identifier = pass_type_identifier
        self.team_identifier = team_identifier
        self.organization_name = organization_name
        self.web_service_url = web_service_url
        self.apns_client = apns_client
        self.device_registry = device_registry

    @classmethod
    def from_settings(
        cls,
        apple_settings: AppleWalletSettings,
        device_registry: IDeviceRegistry | None,
    ) -> "AppleWalletAdapter":
        """Build the adapter; a missing or unreadable APNs key leaves it disabled."""
        private_key = None
        pem = apple_settings.apns_private_key.replace("\\n", "\n")
        if not pem and apple_settings.apns_private_key_path:
            try:
                pem = Path(apple_settings.apns_private_key_path).read_text()
            except OSError as e:
                logger.warning(
                    "apple_wallet_key_unreadable",
                    path=apple_settings.apns_private_key_path,
                    error=str(e),
                )

        if pem:
            try:
                private_key = load_apns_key(pem)
            except (ValueError, TypeError) as e:
                logger.warning("apple_wallet_key_invalid", error=str(e))

        apns_client = None
        if private_key is not None:
            apns_client = ApnsClient(
                topic=apple_settings.pass_type_identifier,
                team_id=apple_settings.team_identifier,
                key_id=apple_settings.apns_key_id,
                private_key=private_key,
                use_sandbox=apple_settings.apns_use_sandbox,
                timeout_seconds=apple_settings.timeout_seconds,
            )

        adapter = cls(
            pass_type_identifier=apple_settings.pass_type_identifier,
            team_identifier=apple_settings.team_identifier,
            apns_client=apns_client,
            device_registry=device_registry,
            organization_name=apple_settings.organization_name,
            web_service_url=apple_settings.web_service_url,
        )
        logger.info("apple_wallet_adapter_initialized", enabled=adapter.enabled)
        return adapter

    @property
    def enabled(self) -> bool:
        return bool(
            self.pass_type_identifier
            and self.team_identifier
            and self.apns_client is not None
            and self.apns_client.enabled
            and self.device_registry is not None
        )

    async def close(self) -> None:
        if self.apns_client is not None:
            await self.apns_client.close()

    def build_pass_data(
        self,
        customer_id: str,
        offer: Offer,
        progress: CustomerProgress,
        tier: TierStatus | None,
        holder_name: str | None = None,
        design: PassDesign | None = None,
    ) -> dict[str, Any]:
        """Render the storeCard pass.json content for a customer."""
        design = design or PassDesign()
        serial = serial_number_for(customer_id, offer.offer_id)
        payload = build_scan_payload(customer_id, offer.business_id, offer.offer_id)
        barcode_format = select_barcode_format(payload, offer.barcode_preference)

        secondary_fields = [
            {"key": "reward", "label": "REWARD", "value": pass_content.reward_text(offer)},
        ]
        tier_line = pass_content.tier_text(tier)
        if tier_line:
            secondary_fields.append({"key": "tier", "label": "TIER", "value": tier_line})

        data: dict[str, Any] = {
            "formatVersion": 1,
            "passTypeIdentifier": self.pass_type_identifier,
            "serialNumber": serial,
            "teamIdentifier": self.team_identifier,
            "organizationName": offer.business_name or self.organization_name,
            "description": offer.title,
            "logoText": offer.business_name or offer.title,
            "authenticationToken": generate_apple_auth_token(customer_id, offer.offer_id),
            "webServiceURL": self.web_service_url,
            "backgroundColor": hex_to_rgb(design.background_color or offer.background_color),
            "foregroundColor": hex_to_rgb(design.foreground_color),
            "labelColor": hex_to_rgb(design.label_color),
            "storeCard": {
                "headerFields": [
                    {
                        "key": "stamps",
                        "label": "STAMPS",
                        "value": pass_content.stamp_balance(progress),
                        "changeMessage": "Stamps: %@",
                    }
                ],
                "primaryFields": [
                    {
                        "key": "progress",
                        "label": offer.title,
                        "value": pass_content.render_stamp_glyphs(
                            progress.current_stamps, progress.max_stamps
                        ),
                    }
                ],
                "secondaryFields": secondary_fields,
                "auxiliaryFields": [
                    {
                        "key": "status",
                        "label": "STATUS",
                        "value": pass_content.progress_text(progress),
                        "changeMessage": "%@",
                    },
                    {
                        "key": "rewardsClaimed",
                        "label": "REWARDS",
                        "value": progress.rewards_claimed,
                    },
                ],
                "backFields": [
                    {"key": "customer", "label": "Member", "value": holder_name or "Valued Customer"},
                    {"key": "branch", "label": "Valid at", "value": offer.branch},
                ],
            },
            "barcodes": [
                {
                    "format": APPLE_BARCODE_FORMATS[barcode_format],
                    "message": payload,
                    "messageEncoding": "iso-8859-1",
                    "altText": pass_content.stamp_balance(progress),
                }
            ],
        }
        return data

    async def _ensure_class_exists(self, offer: Offer, design: PassDesign) -> WalletOperationResult:
        return WalletOperationResult.ok(
            self.wallet_type,
            remote_object_id=self.pass_type_identifier,
            details={"created": False},
        )

    async def _ensure_object_exists(
        self,
        holder: PassHolder,
        offer: Offer,
        progress: CustomerProgress,
    ) -> WalletOperationResult:
        pass_data = self.build_pass_data(
            holder.customer_id, offer, progress, tier=None, holder_name=holder.name
        )
        serial = pass_data["serialNumber"]

        logger.info(
            "apple_pass_prepared",
            customer_id=holder.customer_id,
            offer_id=offer.offer_id,
            serial_number=serial,
        )
        return WalletOperationResult.ok(
            self.wallet_type,
            remote_object_id=serial,
            pass_data=pass_data,
            details={"authentication_token": pass_data["authenticationToken"]},
        )

    async def _push_update(
        self,
        wallet_pass: WalletPass,
        offer: Offer,
        progress: CustomerProgress,
        tier: TierStatus | None,
        notify: bool,
    ) -> WalletOperationResult:
        serial = wallet_pass.wallet_serial or serial_number_for(wallet_pass.customer_id, offer.offer_id)
        pass_data = self.build_pass_data(
            wallet_pass.customer_id,
            offer,
            progress,
            tier,
            holder_name=_stored_holder_name(wallet_pass),
        )

        if not notify:
            logger.info(
                "apple_push_skipped_notification_limit",
                customer_id=wallet_pass.customer_id,
                offer_id=offer.offer_id,
                serial_number=serial,
            )
            return WalletOperationResult.ok(
                self.wallet_type, remote_object_id=serial, pass_data=pass_data
            )

        push_tokens = await self.device_registry.push_tokens_for_serial(serial)
        if not push_tokens:
            logger.info(
                "apple_pass_no_registered_devices",
                customer_id=wallet_pass.customer_id,
                offer_id=offer.offer_id,
                serial_number=serial,
            )
            return WalletOperationResult.ok(
                self.wallet_type,
                remote_object_id=serial,
                pass_data=pass_data,
                details={"sent": 0, "failed": 0},
            )

        batch = await self.apns_client.send_batch(push_tokens)

        for token in batch.unregistered_tokens:
            await self.device_registry.unregister_push_token(token)

        if batch.sent == 0 and batch.failed > 0:
            message = f"APNs delivered to 0 of {batch.failed} devices for pass {serial}"
            if any(r.rate_limited for r in batch.responses):
                raise WalletRateLimitError(message, status_code=429)
            if len(batch.unregistered_tokens) == batch.failed:
                # Every device is gone; the content update itself is fine
                return WalletOperationResult.ok(
                    self.wallet_type,
                    remote_object_id=serial,
                    pass_data=pass_data,
                    details={"sent": 0, "failed": batch.failed},
                )
            raise WalletTimeoutError(message)

        return WalletOperationResult.ok(
            self.wallet_type,
            remote_object_id=serial,
            notified=batch.sent > 0,
            pass_data=pass_data,
            details={"sent": batch.sent, "failed": batch.failed},
        )
