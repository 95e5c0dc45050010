"""HMAC-SHA512 signing and constant-time verification."""

import hashlib
import hmac

import pytest

from roompay.gateway.errors import ConfigurationError
from roompay.gateway.signing import SIGNATURE_HEX_LENGTH, sign, verify

CANONICAL = "vnp_Amount=100000&vnp_TxnRef=ORDER1"


def test_signature_is_lowercase_hex_hmac_sha512():
    signature = sign(CANONICAL, "s3cr3t")
    expected = hmac.new(b"s3cr3t", CANONICAL.encode("utf-8"), hashlib.sha512).hexdigest()

    assert signature == expected
    assert len(signature) == SIGNATURE_HEX_LENGTH == 128
    assert signature == signature.lower()
    assert all(ch in "0123456789abcdef" for ch in signature)


def test_signing_is_deterministic():
    assert {sign(CANONICAL, "s3cr3t") for _ in range(5)} == {sign(CANONICAL, "s3cr3t")}


def test_verify_accepts_right_secret_and_rejects_wrong_one():
    signature = sign(CANONICAL, "s3cr3t")

    assert verify(CANONICAL, "s3cr3t", signature)
    assert not verify(CANONICAL, "wrong", signature)


def test_verify_ignores_hex_case():
    assert verify(CANONICAL, "s3cr3t", sign(CANONICAL, "s3cr3t").upper())


@pytest.mark.parametrize("candidate", [None, "", "not-a-signature", "ü" * 128])
def test_verify_rejects_garbage_candidates(candidate):
    assert not verify(CANONICAL, "s3cr3t", candidate)


def test_any_single_character_flip_in_a_value_breaks_verification():
    signature = sign(CANONICAL, "s3cr3t")
    value_positions = [i for i, ch in enumerate(CANONICAL) if ch not in "=&"]
    for position in value_positions:
        original = CANONICAL[position]
        replacement = "X" if original != "X" else "Y"
        tampered = CANONICAL[:position] + replacement + CANONICAL[position + 1 :]
        assert not verify(tampered, "s3cr3t", signature), tampered


@pytest.mark.parametrize("secret", ["", None])
def test_missing_secret_fails_closed(secret):
    with pytest.raises(ConfigurationError):
        sign(CANONICAL, secret)
    with pytest.raises(ConfigurationError):
        verify(CANONICAL, secret, "00" * 64)


def test_empty_canonical_string_fails_closed():
    with pytest.raises(ConfigurationError):
        sign("", "s3cr3t")
