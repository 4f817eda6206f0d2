"""Scan-time customer identity tokens and offer hashes.

A customer QR code carries two values:
- customer token: URL-safe base64 of "customerId:businessId:issuedAtMillis"
- offer hash: 8 hex characters derived from (offerId, businessId)

The token only obscures raw identifiers in printed codes, it is not a
secret. The offer hash is never reversed: the verifier recomputes it for
every offer the scanning business owns and compares.

Two payload layouts are accepted and normalized by parse_scan_payload():
- combined: "<token>:<hash>" in a single path segment
- split: token and hash as two path segments
"""

import base64
import binascii
import hashlib
import hmac
import re
import time
from typing import NamedTuple

import structlog

from loyalty_sync.domain.exceptions import TokenDecodeError

logger = structlog.get_logger(__name__)

OFFER_HASH_LENGTH = 8
OFFER_HASH_SALT = "loyalty-platform"

_OFFER_HASH_PATTERN = re.compile(r"^[0-9a-f]{8}$")


class DecodedToken(NamedTuple):
    """Result of decoding a customer token.

    Attributes:
        customer_id: Customer identifier, None when invalid
        business_id: Issuing business identifier, None when invalid
        timestamp: Issue time in epoch milliseconds, None when invalid
        is_valid: Whether the token decoded cleanly
        error: Decode failure reason when is_valid is False
    """
    customer_id: str | None
    business_id: str | None
    timestamp: int | None
    is_valid: bool
    error: str | None = None


class ScanPayload(NamedTuple):
    """Normalized scan payload: a customer token and an offer hash."""
    customer_token: str
    offer_hash: str


def _validate_id(value: str, field_name: str) -> str:
    if not value or not str(value).strip():
        raise ValueError(f"{field_name} cannot be empty")
    value = str(value).strip()
    if ":" in value:
        raise ValueError(f"{field_name} cannot contain ':'")
    return value


def encode_customer_token(
    customer_id: str,
    business_id: str,
    timestamp: int | None = None,
) -> str:
    """Encode a customer token for embedding in a QR code.

    Args:
        customer_id: Customer identifier
        business_id: Business that issued the pass
        timestamp: Issue time in epoch milliseconds (defaults to now)

    Returns:
        URL-safe base64 string without padding

    Raises:
        ValueError: If an identifier is empty or contains ':'
    """
    customer_id = _validate_id(customer_id, "customer_id")
    business_id = _validate_id(business_id, "business_id")
    if timestamp is None:
        timestamp = int(time.time() * 1000)

    raw = f"{customer_id}:{business_id}:{int(timestamp)}"
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def _b64decode(token: str) -> bytes:
    padded = token + "=" * (-len(token) % 4)
    # Legacy tokens used the standard alphabet
    if "+" in padded or "/" in padded:
        return base64.b64decode(padded, validate=True)
    return base64.urlsafe_b64decode(padded)


def _decode_or_raise(token: str) -> DecodedToken:
    if not token or not token.strip():
        raise TokenDecodeError("Customer token is empty")

    try:
        raw = _b64decode(token.strip()).decode("utf-8")
    except (binascii.Error, ValueError) as e:
        raise TokenDecodeError(f"Customer token is not valid base64: {e}") from e

    parts = raw.split(":")
    if len(parts) != 3:
        raise TokenDecodeError("Customer token must contain customerId, businessId and timestamp")

    customer_id, business_id, timestamp_str = parts
    if not customer_id or not business_id:
        raise TokenDecodeError("Customer token has an empty identifier")

    try:
        timestamp = int(timestamp_str)
    except ValueError as e:
        raise TokenDecodeError(f"Customer token timestamp is not numeric: {timestamp_str!r}") from e

    if timestamp <= 0:
        raise TokenDecodeError("Customer token timestamp must be positive")

    return DecodedToken(
        customer_id=customer_id,
        business_id=business_id,
        timestamp=timestamp,
        is_valid=True,
    )


def decode_customer_token(token: str) -> DecodedToken:
    """Decode a customer token.

    Never raises: callers branch on ``is_valid``.

    Args:
        token: Token string as scanned

    Returns:
        DecodedToken, with ``error`` set when invalid
    """
    try:
        return _decode_or_raise(token)
    except TokenDecodeError as e:
        logger.debug("customer_token_rejected", error=str(e))
        return DecodedToken(
            customer_id=None,
            business_id=None,
            timestamp=None,
            is_valid=False,
            error=str(e),
        )


def generate_offer_hash(offer_id: str, business_id: str) -> str:
    """Compute the short offer hash embedded next to the customer token.

    MD5 over "offerId:businessId:loyalty-platform", first 8 hex chars. The
    format is fixed because printed QR codes carry it.

    Args:
        offer_id: Offer public identifier
        business_id: Owning business identifier

    Returns:
        8-character lowercase hex string
    """
    data = f"{offer_id}:{business_id}:{OFFER_HASH_SALT}"
    return hashlib.md5(data.encode("utf-8")).hexdigest()[:OFFER_HASH_LENGTH]


def verify_offer_hash(offer_id: str, business_id: str, candidate: str) -> bool:
    """Check that ``candidate`` is the offer hash of (offer_id, business_id)."""
    if not candidate or not _OFFER_HASH_PATTERN.match(candidate.lower()):
        return False
    expected = generate_offer_hash(offer_id, business_id)
    return hmac.compare_digest(expected, candidate.lower())


def parse_scan_payload(first: str, second: str | None = None) -> ScanPayload:
    """Normalize the two QR layouts into a ScanPayload.

    Args:
        first: First path segment, either "token:hash" or just the token
        second: Second path segment (the hash) for the split layout

    Returns:
        ScanPayload with token and hash

    Raises:
        TokenDecodeError: If no hash can be found

    Examples:
        parse_scan_payload("dG9r...:1a2b3c4d")
        parse_scan_payload("dG9r...", "1a2b3c4d")
    """
    first = (first or "").strip()
    second = (second or "").strip() or None

    if second:
        token, offer_hash = first, second
    elif ":" in first:
        token, _, offer_hash = first.partition(":")
    else:
        raise TokenDecodeError("Invalid QR code format")

    if not token or not offer_hash:
        raise TokenDecodeError("Invalid QR code format")

    return ScanPayload(customer_token=token, offer_hash=offer_hash)


def build_scan_payload(
    customer_id: str,
    business_id: str,
    offer_id: str,
    timestamp: int | None = None,
) -> str:
    """Build the combined "token:hash" payload rendered into wallet barcodes."""
    token = encode_customer_token(customer_id, business_id, timestamp)
    return f"{token}:{generate_offer_hash(offer_id, business_id)}"


def is_ascii_safe(token: str) -> bool:
    """Return True if ``token`` only contains printable ASCII."""
    return all(32 <= ord(ch) < 127 for ch in token)
