import base64
import json
import os

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from payments.checkout import (
    CheckoutTokenError,
    _derive_key,
    build_checkout_url,
    generate_checkout_token,
    validate_checkout_token,
)

SECRET = "unit-test-secret"
ISSUED = 1_760_000_000_000
TTL_MS = 15 * 60 * 1000


def _mint(**kwargs):
    args = dict(booking_id="bk-7", api_key="partner-key", amount=4550, currency="EUR", secret=SECRET, now_ms=ISSUED)
    args.update(kwargs)
    return generate_checkout_token(**args)


def _decode(token):
    return base64.urlsafe_b64decode(token + "=" * (-len(token) % 4))


def _encode(raw):
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def test_round_trip():
    payload = validate_checkout_token(_mint(), SECRET, now_ms=ISSUED + 1000)
    assert payload.booking_id == "bk-7"
    assert payload.api_key == "partner-key"
    assert payload.amount == 4550
    assert payload.currency == "EUR"
    assert payload.expires_at_ms == ISSUED + TTL_MS


def test_token_is_url_safe():
    token = _mint()
    assert "=" not in token and "+" not in token and "/" not in token


def test_same_input_gives_different_tokens():
    assert _mint() != _mint()


def test_valid_exactly_at_expiry():
    assert validate_checkout_token(_mint(), SECRET, now_ms=ISSUED + TTL_MS) is not None


def test_expired_one_millisecond_later():
    assert validate_checkout_token(_mint(), SECRET, now_ms=ISSUED + TTL_MS + 1) is None


@pytest.mark.parametrize("position", [0, 12, -1])
def test_any_flipped_byte_is_rejected(position):
    raw = bytearray(_decode(_mint()))
    raw[position] ^= 0x01
    assert validate_checkout_token(_encode(bytes(raw)), SECRET, now_ms=ISSUED) is None


def test_wrong_secret_is_rejected():
    assert validate_checkout_token(_mint(), "other-secret", now_ms=ISSUED) is None


@pytest.mark.parametrize("token", ["", "abc", "!!!not-base64!!!"])
def test_garbage_is_rejected(token):
    assert validate_checkout_token(token, SECRET, now_ms=ISSUED) is None


def test_other_token_types_are_rejected():
    body = {"typ": "session", "bookingId": "bk-7", "apiKey": "k", "amount": 1, "currency": "EUR",
            "exp": ISSUED + TTL_MS}
    iv = os.urandom(12)
    sealed = AESGCM(_derive_key(SECRET)).encrypt(iv, json.dumps(body).encode("utf-8"), None)
    assert validate_checkout_token(_encode(iv + sealed), SECRET, now_ms=ISSUED) is None


def test_missing_secret_raises():
    with pytest.raises(CheckoutTokenError):
        _mint(secret=None)
    with pytest.raises(CheckoutTokenError):
        validate_checkout_token("anything", "")


def test_checkout_url():
    assert build_checkout_url("https://book.example.com/", "tok") == "https://book.example.com/checkout/tok"
