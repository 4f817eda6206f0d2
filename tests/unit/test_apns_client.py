"""Unit tests for the APNs client."""

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from loyalty_sync.wallets.apns_client import (
    PRODUCTION_URL,
    SANDBOX_URL,
    ApnsClient,
    load_apns_key,
)


@pytest.fixture(scope="module")
def private_key():
    return ec.generate_private_key(ec.SECP256R1())


class Clock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _client(private_key, handler, clock=None, **kwargs):
    return ApnsClient(
        topic="pass.com.example.loyalty",
        team_id="TEAM123456",
        key_id="KEY1234567",
        private_key=private_key,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        clock=clock or Clock(),
        **kwargs,
    )


def test_load_apns_key_round_trip(private_key):
    pem = private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()

    assert isinstance(load_apns_key(pem), ec.EllipticCurvePrivateKey)


def test_load_apns_key_rejects_garbage():
    with pytest.raises(ValueError):
        load_apns_key("not a key")


def test_sandbox_selects_gateway(private_key):
    assert _client(private_key, lambda r: httpx.Response(200)).base_url == PRODUCTION_URL
    assert (
        _client(private_key, lambda r: httpx.Response(200), use_sandbox=True).base_url
        == SANDBOX_URL
    )


@pytest.mark.asyncio
async def test_send_pass_update_request_shape(private_key):
    """Test the push uses the Wallet topic, background type and an empty payload."""
    captured = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200)

    client = _client(private_key, handler)
    response = await client.send_pass_update("a1b2c3d4e5f6")

    assert response.success is True
    request = captured[0]
    assert str(request.url) == f"{PRODUCTION_URL}/3/device/a1b2c3d4e5f6"
    assert request.headers["apns-topic"] == "pass.com.example.loyalty"
    assert request.headers["apns-push-type"] == "background"
    assert request.headers["apns-priority"] == "5"
    assert request.content == b"{}"

    token = request.headers["authorization"].removeprefix("bearer ")
    assert jwt.get_unverified_header(token)["kid"] == "KEY1234567"
    claims = jwt.decode(token, private_key.public_key(), algorithms=["ES256"])
    assert claims["iss"] == "TEAM123456"


@pytest.mark.asyncio
async def test_provider_token_is_cached_then_refreshed(private_key):
    tokens = []

    def handler(request: httpx.Request) -> httpx.Response:
        tokens.append(request.headers["authorization"])
        return httpx.Response(200)

    clock = Clock()
    client = _client(private_key, handler, clock=clock)

    await client.send_pass_update("token-1")
    clock.now += 60
    await client.send_pass_update("token-2")
    clock.now += 51 * 60
    await client.send_pass_update("token-3")

    assert tokens[0] == tokens[1]
    assert tokens[2] != tokens[1]


@pytest.mark.asyncio
async def test_unregistered_device_reported(private_key):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(410, json={"reason": "Unregistered"})

    response = await _client(private_key, handler).send_pass_update("dead-token")

    assert response.success is False
    assert response.unregistered is True
    assert response.rate_limited is False


@pytest.mark.asyncio
async def test_timeout_is_returned_not_raised(private_key):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    response = await _client(private_key, handler).send_pass_update("slow-token")

    assert response.success is False
    assert response.reason == "timeout"


@pytest.mark.asyncio
async def test_send_batch_deduplicates_and_totals(private_key):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/bad"):
            return httpx.Response(400, json={"reason": "BadDeviceToken"})
        return httpx.Response(200)

    client = _client(private_key, handler)
    result = await client.send_batch(["good", "good", "bad", ""])

    assert len(result.responses) == 2
    assert result.sent == 1
    assert result.failed == 1
    assert result.unregistered_tokens == ["bad"]


@pytest.mark.asyncio
async def test_disabled_client_does_not_send():
    client = ApnsClient(
        topic="pass.com.example.loyalty",
        team_id="TEAM123456",
        key_id="KEY1234567",
        private_key=None,
        http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: pytest.fail("should not send"))
        ),
    )

    response = await client.send_pass_update("token")

    assert client.enabled is False
    assert response.success is False
