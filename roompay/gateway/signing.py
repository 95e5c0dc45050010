"""HMAC-SHA512 signing of canonical strings."""

import hashlib
import hmac

from roompay.gateway.errors import ConfigurationError

SIGNATURE_HEX_LENGTH = 128


def _require_inputs(canonical: str, secret: str) -> None:
    if not secret:
        raise ConfigurationError("refusing to sign or verify without a secret key")
    if not canonical:
        raise ConfigurationError("refusing to sign or verify an empty canonical string")


def sign(canonical: str, secret: str) -> str:
    """Lowercase hex HMAC-SHA512 of `canonical` under `secret`."""

    _require_inputs(canonical, secret)
    return hmac.new(secret.encode("utf-8"), canonical.encode("utf-8"), hashlib.sha512).hexdigest()


def verify(canonical: str, secret: str, candidate: str | None) -> bool:
    """Constant-time check of `candidate` against the expected signature.

    Hex case is ignored. A missing candidate never verifies.
    """

    expected = sign(canonical, secret)
    if not candidate:
        return False
    return hmac.compare_digest(expected.encode("ascii"), candidate.strip().lower().encode("utf-8"))
