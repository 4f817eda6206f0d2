"""APNs client for Apple Wallet pass update notifications."""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable

import httpx
import jwt
import structlog
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

logger = structlog.get_logger(__name__)

PRODUCTION_URL = "https://api.push.apple.com"
SANDBOX_URL = "https://api.sandbox.push.apple.com"

# APNs rejects provider tokens older than an hour
PROVIDER_TOKEN_TTL_SECONDS = 50 * 60


@dataclass(frozen=True)
class ApnsResponse:
    """Outcome of one APNs push."""

    push_token: str
    success: bool
    status_code: int | None = None
    reason: str | None = None

    @property
    def unregistered(self) -> bool:
        return self.status_code == 410 or self.reason in ("Unregistered", "BadDeviceToken")

    @property
    def rate_limited(self) -> bool:
        return self.status_code == 429


@dataclass
class ApnsBatchResult:
    """Totals for a batch of pushes."""

    responses: list[ApnsResponse] = field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for r in self.responses if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.responses if not r.success)

    @property
    def unregistered_tokens(self) -> list[str]:
        return [r.push_token for r in self.responses if r.unregistered]


def load_apns_key(pem: str) -> ec.EllipticCurvePrivateKey:
    """
    Load an APNs .p8 auth key.

    Raises:
        ValueError: If the key cannot be parsed or is not an EC key
    """
    key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise ValueError("APNs auth key must be an EC private key")
    return key


class ApnsClient:
    """
    Sends empty-payload background pushes telling Wallet to refetch a pass.

    Uses token-based authentication: an ES256 provider token signed with the
    team's .p8 key, cached and refreshed before APNs considers it stale.
    """

    def __init__(
        self,
        topic: str,
        team_id: str,
        key_id: str,
        private_key: ec.EllipticCurvePrivateKey | None,
        use_sandbox: bool = False,
        timeout_seconds: float = 5.0,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the APNs client.

        Args:
            topic: APNs topic, the pass type identifier
            team_id: Apple developer team ID (provider token issuer)
            key_id: Auth key ID (provider token kid)
            private_key: Loaded .p8 key, None disables the client
            use_sandbox: Use the development gateway
            timeout_seconds: Per-request timeout
            http_client: Preconfigured client (tests), HTTP/2 client otherwise
            clock: Time source for provider token expiry
        """
        self.topic = topic
        self.team_id = team_id
        self.key_id = key_id
        self.base_url = SANDBOX_URL if use_sandbox else PRODUCTION_URL
        self._private_key = private_key
        self._clock = clock
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(http2=True, timeout=timeout_seconds)
        self._provider_token: str | None = None
        self._provider_token_issued_at = 0.0

    @property
    def enabled(self) -> bool:
        return bool(self.topic and self.team_id and self.key_id and self._private_key is not None)

    async def close(self) -> None:
        """Close the HTTP client connection pool."""
        if self._owns_client:
            await self.http_client.aclose()

    def _get_provider_token(self) -> str:
        now = self._clock()
        if self._provider_token is None or now - self._provider_token_issued_at > PROVIDER_TOKEN_TTL_SECONDS:
            self._provider_token = jwt.encode(
                {"iss": self.team_id, "iat": int(now)},
                self._private_key,
                algorithm="ES256",
                headers={"kid": self.key_id},
            )
            self._provider_token_issued_at = now
        return self._provider_token

    async def send_pass_update(self, push_token: str) -> ApnsResponse:
        """
        Send one pass update notification.

        Never raises for delivery failures; they are returned as unsuccessful
        responses so a batch can report partial success.
        """
        if not self.enabled:
            return ApnsResponse(push_token=push_token, success=False, reason="APNs not configured")

        url = f"{self.base_url}/3/device/{push_token}"
        try:
            response = await self.http_client.post(
                url,
                headers={
                    "authorization": f"bearer {self._get_provider_token()}",
                    "apns-topic": self.topic,
                    "apns-push-type": "background",
                    "apns-priority": "5",
                },
                # Wallet requires an empty payload; the device refetches the pass
                content=b"{}",
            )
        except httpx.TimeoutException as e:
            logger.warning("apns_timeout", push_token=push_token[:16] + "...", error=str(e))
            return ApnsResponse(push_token=push_token, success=False, reason="timeout")
        except httpx.RequestError as e:
            logger.warning("apns_request_error", push_token=push_token[:16] + "...", error=str(e))
            return ApnsResponse(push_token=push_token, success=False, reason=str(e))

        if response.status_code == 200:
            return ApnsResponse(push_token=push_token, success=True, status_code=200)

        reason = None
        try:
            reason = response.json().get("reason")
        except ValueError:
            reason = response.text or None

        if reason == "ExpiredProviderToken":
            self._provider_token = None

        logger.warning(
            "apns_push_rejected",
            push_token=push_token[:16] + "...",
            status_code=response.status_code,
            reason=reason,
        )
        return ApnsResponse(
            push_token=push_token,
            success=False,
            status_code=response.status_code,
            reason=reason,
        )

    async def send_batch(self, push_tokens: list[str]) -> ApnsBatchResult:
        """Push to every token concurrently and collect the totals."""
        unique_tokens = list(dict.fromkeys(t for t in push_tokens if t))
        responses = await asyncio.gather(*(self.send_pass_update(t) for t in unique_tokens))
        result = ApnsBatchResult(responses=list(responses))

        logger.info(
            "apns_batch_sent",
            topic=self.topic,
            sent=result.sent,
            failed=result.failed,
        )
        return result
