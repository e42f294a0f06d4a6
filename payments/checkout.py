"""
Stateless checkout tokens for out-of-band payment.

A token is base64url(iv + ciphertext-with-tag) of an AES-256-GCM encrypted
JSON payload. The expiry is inside the ciphertext, so validating a token needs
only the secret: no server-side store, any instance can check any token.
"""

import base64
import binascii
import hashlib
import json
import logging
import os
import time
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import BaseModel, ValidationError

from config import CHECKOUT_TTL_SECONDS

logger = logging.getLogger(__name__)

TOKEN_TYPE = "checkout"
IV_BYTES = 12
TAG_BYTES = 16


class CheckoutTokenError(RuntimeError):
    """Raised when tokens cannot be minted or read because no secret is configured."""


class CheckoutTokenPayload(BaseModel):
    booking_id: str
    api_key: str
    amount: int  # minor units
    currency: str
    expires_at_ms: int


def _now_ms() -> int:
    return int(time.time() * 1000)


def _derive_key(secret: Optional[str]) -> bytes:
    if not secret:
        raise CheckoutTokenError("TOKEN_SECRET or SUPPLIER_API_SECRET is required for checkout tokens")
    return hashlib.sha256(secret.encode("utf-8")).digest()


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(token: str) -> bytes:
    padded = token + "=" * (-len(token) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def generate_checkout_token(
    booking_id: str,
    api_key: str,
    amount: int,
    currency: str,
    secret: Optional[str],
    now_ms: Optional[int] = None,
) -> str:
    """Mint a URL-safe token valid for 15 minutes from now_ms."""
    key = _derive_key(secret)
    issued = _now_ms() if now_ms is None else now_ms
    body = {
        "typ": TOKEN_TYPE,
        "bookingId": booking_id,
        "apiKey": api_key,
        "amount": amount,
        "currency": currency,
        "exp": issued + CHECKOUT_TTL_SECONDS * 1000,
    }
    iv = os.urandom(IV_BYTES)
    ciphertext = AESGCM(key).encrypt(iv, json.dumps(body).encode("utf-8"), None)
    logger.info("Minted checkout token for booking %s", booking_id)
    return _b64encode(iv + ciphertext)


def validate_checkout_token(
    token: str,
    secret: Optional[str],
    now_ms: Optional[int] = None,
) -> Optional[CheckoutTokenPayload]:
    """Return the payload, or None if the token is tampered, of the wrong type or expired."""
    key = _derive_key(secret)
    try:
        combined = _b64decode(token)
        if len(combined) < IV_BYTES + TAG_BYTES:
            return None
        plaintext = AESGCM(key).decrypt(combined[:IV_BYTES], combined[IV_BYTES:], None)
        body = json.loads(plaintext.decode("utf-8"))
        if not isinstance(body, dict) or body.get("typ") != TOKEN_TYPE:
            return None
        payload = CheckoutTokenPayload(
            booking_id=body["bookingId"],
            api_key=body["apiKey"],
            amount=body["amount"],
            currency=body["currency"],
            expires_at_ms=body["exp"],
        )
    except (InvalidTag, ValueError, binascii.Error, KeyError, TypeError, ValidationError):
        logger.info("Rejected checkout token")
        return None

    current = _now_ms() if now_ms is None else now_ms
    if payload.expires_at_ms < current:
        logger.info("Rejected checkout token")
        return None
    return payload


def build_checkout_url(public_url: str, token: str) -> str:
    return f"{public_url.rstrip('/')}/checkout/{token}"
