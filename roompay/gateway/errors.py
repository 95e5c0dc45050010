"""Error taxonomy for the payment-gateway protocol.

Each class maps to a distinct operator reaction, so callers should catch the
specific class rather than `GatewayError` when they need to tell them apart.
"""


class GatewayError(Exception):
    """Base class for every error raised by the gateway protocol."""


class ConfigurationError(GatewayError):
    """Merchant code, secret or URLs missing. Fatal; never bypassed."""


class ValidationError(GatewayError):
    """Request rejected before any signing work (bad amount, missing order ref)."""


class AuthenticationError(GatewayError):
    """Callback signature missing or wrong. The payload must not be trusted."""

    def __init__(self, message: str, canonical: str = "", received_signature: str | None = None) -> None:
        super().__init__(message)
        self.canonical = canonical
        self.received_signature = received_signature


class MalformedPayloadError(GatewayError):
    """Authentic callback without the fields the gateway contract promises."""


class StoreUnavailableError(GatewayError):
    """Order store timed out or failed. Retried by the caller's transport, not here."""
