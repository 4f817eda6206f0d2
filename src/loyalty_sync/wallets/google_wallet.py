"""Google Wallet adapter over the Wallet Objects REST API.

Remote identifiers are always recomputed from (issuer, customer, offer)
with one sanitizer, never read back from Google:
- class:  "{issuer}.{offer}"
- object: "{issuer}.{customer}_{offer}"
"""

import asyncio
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

import google.auth.exceptions
import google.auth.transport.requests
import httpx
import structlog
from google.auth import jwt as google_jwt
from google.oauth2 import service_account

from loyalty_sync.config import GoogleWalletSettings
from loyalty_sync.domain.exceptions import (
    WalletAdapterError,
    WalletAuthenticationError,
    WalletObjectNotFoundError,
    WalletRateLimitError,
    WalletTimeoutError,
)
from loyalty_sync.domain.identity_token import build_scan_payload
from loyalty_sync.domain.offer import Offer
from loyalty_sync.domain.progress import CustomerProgress
from loyalty_sync.domain.tiers import TierStatus
from loyalty_sync.domain.wallet_pass import WalletPass, WalletType
from loyalty_sync.wallets import pass_content
from loyalty_sync.wallets.barcode import GOOGLE_BARCODE_TYPES, select_barcode_format
from loyalty_sync.wallets.base import PassDesign, PassHolder, WalletAdapter, WalletOperationResult

logger = structlog.get_logger(__name__)

WALLET_SCOPE = "https://www.googleapis.com/auth/wallet_object.issuer"
TOKEN_URI = "https://oauth2.googleapis.com/token"
SAVE_URL_PREFIX = "https://pay.google.com/gp/v/save/"

_ID_SANITIZER = re.compile(r"[^A-Za-z0-9._-]")

TokenProvider = Callable[[], Awaitable[str]]


def sanitize_id(value: str) -> str:
    """Replace characters Google rejects in resource IDs."""
    return _ID_SANITIZER.sub("_", value)


def class_id_for(issuer_id: str, offer_id: str) -> str:
    return f"{issuer_id}.{sanitize_id(offer_id)}"


def object_id_for(issuer_id: str, customer_id: str, offer_id: str) -> str:
    return f"{issuer_id}.{sanitize_id(customer_id)}_{sanitize_id(offer_id)}"


def _raise_for_status(response: httpx.Response, resource_id: str) -> None:
    """
    Map Wallet API error responses to wallet adapter exceptions.

    The response body is logged, never carried in the exception message,
    since messages are surfaced to API callers.
    """
    status = response.status_code
    if status < 400:
        return

    logger.warning(
        "google_wallet_request_failed",
        resource_id=resource_id,
        status_code=status,
        body=response.text[:500],
    )
    if status in (401, 403):
        raise WalletAuthenticationError(f"Google Wallet authentication failed ({status})", status_code=status)
    if status == 404:
        raise WalletObjectNotFoundError("Google Wallet object not found", status_code=404)
    if status == 429:
        raise WalletRateLimitError("Google Wallet rate limited", status_code=429)
    if status >= 500:
        raise WalletTimeoutError(f"Google Wallet unavailable ({status})", status_code=status)
    raise WalletAdapterError(f"Google Wallet request failed ({status})", status_code=status)


class GoogleWalletAdapter(WalletAdapter):
    """Google Wallet integration for loyaltyClass/loyaltyObject resources."""

    wallet_type = WalletType.GOOGLE

    def __init__(
        self,
        issuer_id: str,
        credentials: service_account.Credentials | None = None,
        base_url: str = "https://walletobjects.googleapis.com/walletobjects/v1",
        timeout_seconds: float = 5.0,
        http_client: httpx.AsyncClient | None = None,
        token_provider: TokenProvider | None = None,
        daily_message_limit: int = 3,
        save_url_origins: list[str] | None = None,
    ):
        """
        Initialize the Google Wallet adapter.

        Args:
            issuer_id: Wallet issuer ID, prefix of every class and object ID
            credentials: Service account credentials (signer and OAuth tokens)
            base_url: Wallet Objects API base URL
            timeout_seconds: Request timeout in seconds
            http_client: Preconfigured client (tests)
            token_provider: Async access token source, overrides credentials
            daily_message_limit: addMessage calls allowed per object per 24h
            save_url_origins: Origins allowed to render the save button
        """
        self.issuer_id = issuer_id
        self.base_url = base_url.rstrip("/")
        self.daily_message_limit = daily_message_limit
        self.save_url_origins = save_url_origins or []
        self._credentials = credentials
        self._token_provider = token_provider
        self._token_lock = asyncio.Lock()
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    @classmethod
    def from_settings(cls, google_settings: GoogleWalletSettings) -> "GoogleWalletAdapter":
        """Build the adapter; missing or invalid credentials leave it disabled."""
        credentials = None
        try:
            if google_settings.service_account_email and google_settings.private_key:
                credentials = service_account.Credentials.from_service_account_info(
                    {
                        "type": "service_account",
                        "client_email": google_settings.service_account_email,
                        "private_key": google_settings.private_key.replace("\\n", "\n"),
                        "token_uri": TOKEN_URI,
                    },
                    scopes=[WALLET_SCOPE],
                )
            elif google_settings.credentials_path:
                credentials = service_account.Credentials.from_service_account_file(
                    google_settings.credentials_path,
                    scopes=[WALLET_SCOPE],
                )
        except (ValueError, OSError) as e:
            logger.warning("google_wallet_credentials_invalid", error=str(e))
            credentials = None

        adapter = cls(
            issuer_id=google_settings.issuer_id,
            credentials=credentials,
            base_url=google_settings.base_url,
            timeout_seconds=google_settings.timeout_seconds,
            daily_message_limit=google_settings.daily_message_limit,
            save_url_origins=google_settings.save_url_origins,
        )
        logger.info("google_wallet_adapter_initialized", enabled=adapter.enabled)
        return adapter

    @property
    def enabled(self) -> bool:
        return bool(self.issuer_id) and (
            self._credentials is not None or self._token_provider is not None
        )

    async def close(self) -> None:
        """Close the HTTP client connection pool."""
        if self._owns_client:
            await self.http_client.aclose()

    def class_id(self, offer_id: str) -> str:
        return class_id_for(self.issuer_id, offer_id)

    def object_id(self, customer_id: str, offer_id: str) -> str:
        return object_id_for(self.issuer_id, customer_id, offer_id)

    async def _access_token(self) -> str:
        if self._token_provider is not None:
            return await self._token_provider()

        async with self._token_lock:
            if not self._credentials.valid:
                try:
                    # google-auth refresh is blocking
                    await asyncio.to_thread(
                        self._credentials.refresh, google.auth.transport.requests.Request()
                    )
                except google.auth.exceptions.RefreshError as e:
                    raise WalletAuthenticationError(f"Google OAuth token refresh failed: {e}") from e
                except google.auth.exceptions.TransportError as e:
                    raise WalletTimeoutError(f"Google OAuth token endpoint unreachable: {e}") from e
            return self._credentials.token

    async def _request(
        self,
        method: str,
        path: str,
        resource_id: str,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        token = await self._access_token()
        url = f"{self.base_url}{path}"
        try:
            return await self.http_client.request(
                method,
                url,
                json=json,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as e:
            logger.error("google_wallet_timeout", method=method, resource_id=resource_id, error=str(e))
            raise WalletTimeoutError(f"Google Wallet timeout on {method} {resource_id}") from e
        except httpx.RequestError as e:
            logger.error(
                "google_wallet_request_error", method=method, resource_id=resource_id, error=str(e)
            )
            raise WalletTimeoutError(f"Google Wallet request error on {resource_id}: {e}") from e

    def build_class_payload(self, offer: Offer, design: PassDesign) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.class_id(offer.offer_id),
            "issuerName": offer.business_name or offer.title,
            "programName": offer.title,
            "hexBackgroundColor": design.background_color or offer.background_color,
            "reviewStatus": "UNDER_REVIEW",
        }
        if design.logo_url:
            payload["programLogo"] = {
                "sourceUri": {"uri": design.logo_url},
                "contentDescription": {
                    "defaultValue": {"language": "en-US", "value": offer.business_name or offer.title}
                },
            }
        if design.hero_image_url:
            payload["heroImage"] = {"sourceUri": {"uri": design.hero_image_url}}
        return payload

    def _text_modules(
        self, offer: Offer, progress: CustomerProgress, tier: TierStatus | None
    ) -> list[dict[str, str]]:
        modules = [
            {"id": "progress", "header": "Progress", "body": pass_content.progress_text(progress)},
            {"id": "reward", "header": "Reward", "body": pass_content.reward_text(offer)},
        ]
        tier_line = pass_content.tier_text(tier)
        if tier_line:
            modules.append({"id": "tier", "header": "Tier", "body": tier_line})
        if progress.is_completed:
            modules.append(
                {"id": "reward_status", "header": "Reward Status", "body": "Ready to redeem"}
            )
        modules.append({"id": "location", "header": "Valid at", "body": offer.branch})
        return modules

    def _loyalty_points(self, progress: CustomerProgress) -> dict[str, Any]:
        return {
            "label": "Stamps Collected",
            "balance": {"string": pass_content.stamp_balance(progress)},
        }

    def build_object_payload(
        self,
        holder: PassHolder,
        offer: Offer,
        progress: CustomerProgress,
        tier: TierStatus | None = None,
    ) -> dict[str, Any]:
        payload = build_scan_payload(holder.customer_id, offer.business_id, offer.offer_id)
        barcode_format = select_barcode_format(payload, offer.barcode_preference)
        return {
            "id": self.object_id(holder.customer_id, offer.offer_id),
            "classId": self.class_id(offer.offer_id),
            "state": "ACTIVE",
            "accountId": holder.customer_id,
            "accountName": holder.display_name,
            "loyaltyPoints": self._loyalty_points(progress),
            "secondaryLoyaltyPoints": {
                "label": "Rewards Earned",
                "balance": {"int": progress.rewards_claimed},
            },
            "textModulesData": self._text_modules(offer, progress, tier),
            "barcode": {
                "type": GOOGLE_BARCODE_TYPES[barcode_format],
                "value": payload,
                "alternateText": pass_content.stamp_balance(progress),
            },
        }

    def create_save_url(self, object_payload: dict[str, Any]) -> str | None:
        """Signed "Add to Google Wallet" link for an object, None without a signer."""
        if self._credentials is None:
            return None
        claims = {
            "iss": self._credentials.service_account_email,
            "aud": "google",
            "typ": "savetowallet",
            "origins": self.save_url_origins,
            "payload": {"loyaltyObjects": [object_payload]},
        }
        token = google_jwt.encode(self._credentials.signer, claims)
        if isinstance(token, bytes):
            token = token.decode("ascii")
        return f"{SAVE_URL_PREFIX}{token}"

    async def _ensure_class_exists(self, offer: Offer, design: PassDesign) -> WalletOperationResult:
        class_id = self.class_id(offer.offer_id)

        response = await self._request("GET", f"/loyaltyClass/{class_id}", class_id)
        if response.status_code == 200:
            return WalletOperationResult.ok(
                self.wallet_type, remote_object_id=class_id, details={"created": False}
            )
        if response.status_code != 404:
            _raise_for_status(response, class_id)

        response = await self._request(
            "POST", "/loyaltyClass", class_id, json=self.build_class_payload(offer, design)
        )
        if response.status_code == 409:
            # Created concurrently by another request
            logger.info("google_loyalty_class_already_exists", class_id=class_id)
            return WalletOperationResult.ok(
                self.wallet_type, remote_object_id=class_id, details={"created": False}
            )
        _raise_for_status(response, class_id)

        logger.info("google_loyalty_class_created", class_id=class_id, offer_id=offer.offer_id)
        return WalletOperationResult.ok(
            self.wallet_type, remote_object_id=class_id, details={"created": True}
        )

    async def _patch_object(self, object_id: str, body: dict[str, Any]) -> None:
        response = await self._request("PATCH", f"/loyaltyObject/{object_id}", object_id, json=body)
        _raise_for_status(response, object_id)

    async def _ensure_object_exists(
        self,
        holder: PassHolder,
        offer: Offer,
        progress: CustomerProgress,
    ) -> WalletOperationResult:
        body = self.build_object_payload(holder, offer, progress)
        object_id = body["id"]
        created = False

        response = await self._request("GET", f"/loyaltyObject/{object_id}", object_id)
        if response.status_code == 200:
            await self._patch_object(object_id, body)
        elif response.status_code == 404:
            response = await self._request("POST", "/loyaltyObject", object_id, json=body)
            if response.status_code == 409:
                await self._patch_object(object_id, body)
            else:
                _raise_for_status(response, object_id)
                created = True
        else:
            _raise_for_status(response, object_id)

        logger.info(
            "google_loyalty_object_ensured",
            object_id=object_id,
            customer_id=holder.customer_id,
            offer_id=offer.offer_id,
            created=created,
        )
        return WalletOperationResult.ok(
            self.wallet_type,
            remote_object_id=object_id,
            pass_data=body,
            details={"created": created, "save_url": self.create_save_url(body)},
        )

    def _messages_sent_last_day(self, wallet_pass: WalletPass) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(hours=24)
        count = 0
        for entry in wallet_pass.notification_history:
            try:
                if datetime.fromisoformat(entry) >= cutoff:
                    count += 1
            except (TypeError, ValueError):
                continue
        return count

    async def _add_message(
        self, object_id: str, offer: Offer, progress: CustomerProgress
    ) -> bool:
        now = datetime.now(timezone.utc)
        message = {
            "message": {
                "id": f"progress_{int(now.timestamp() * 1000)}",
                "header": "Loyalty Progress Updated",
                "body": pass_content.notification_text(progress, offer),
                "messageType": "TEXT_AND_NOTIFY",
                "displayInterval": {
                    "start": {"date": now.isoformat()},
                    "end": {"date": (now + timedelta(days=1)).isoformat()},
                },
            }
        }
        response = await self._request(
            "POST", f"/loyaltyObject/{object_id}/addMessage", object_id, json=message
        )
        if response.status_code == 429:
            # The field update already notifies through notifyOnUpdate
            logger.warning("google_message_rate_limited", object_id=object_id)
            return False
        if response.status_code >= 400:
            logger.warning(
                "google_message_failed",
                object_id=object_id,
                status_code=response.status_code,
            )
            return False
        return True

    async def _push_update(
        self,
        wallet_pass: WalletPass,
        offer: Offer,
        progress: CustomerProgress,
        tier: TierStatus | None,
        notify: bool,
    ) -> WalletOperationResult:
        object_id = self.object_id(wallet_pass.customer_id, offer.offer_id)
        body = {
            "state": "ACTIVE",
            "loyaltyPoints": self._loyalty_points(progress),
            "secondaryLoyaltyPoints": {
                "label": "Rewards Earned",
                "balance": {"int": progress.rewards_claimed},
            },
            "textModulesData": self._text_modules(offer, progress, tier),
            "notifyPreference": "notifyOnUpdate" if notify else "notificationSettingsForUpdatesUnspecified",
        }

        await self._patch_object(object_id, body)

        notified = False
        if notify and self._messages_sent_last_day(wallet_pass) < self.daily_message_limit:
            notified = await self._add_message(object_id, offer, progress)

        logger.info(
            "google_loyalty_object_updated",
            object_id=object_id,
            customer_id=wallet_pass.customer_id,
            offer_id=offer.offer_id,
            current_stamps=progress.current_stamps,
            notified=notified,
        )
        return WalletOperationResult.ok(
            self.wallet_type,
            remote_object_id=object_id,
            notified=notified,
            pass_data={**wallet_pass.pass_data, **body},
        )
