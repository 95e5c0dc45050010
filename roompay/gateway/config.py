"""Immutable gateway configuration injected into the protocol functions."""

from pydantic import BaseModel, ConfigDict, SecretStr

from roompay.gateway.errors import ConfigurationError

# Environment variable behind each required field.
REQUIRED_SETTINGS = {
    "merchant_code": "MERCHANT_CODE",
    "secret_key": "SECRET_KEY",
    "gateway_base_url": "GATEWAY_BASE_URL",
    "return_url": "RETURN_URL",
}


class GatewayConfig(BaseModel):
    """Merchant credentials and endpoints for one gateway account."""

    model_config = ConfigDict(frozen=True)

    merchant_code: str
    secret_key: SecretStr
    gateway_base_url: str
    return_url: str
    locale: str = "vn"
    currency: str = "VND"

    def ensure_complete(self) -> None:
        """Raise `ConfigurationError` naming every blank required field."""

        missing = [
            env_name
            for field, env_name in REQUIRED_SETTINGS.items()
            if not _plain(getattr(self, field)).strip()
        ]
        if missing:
            raise ConfigurationError(f"payment gateway configuration missing: {', '.join(missing)}")

    @property
    def secret(self) -> str:
        return self.secret_key.get_secret_value()

    @classmethod
    def from_settings(cls, settings) -> "GatewayConfig":
        """Build from `CommonSettings`; fails closed on any missing value."""

        missing = [env_name for field, env_name in REQUIRED_SETTINGS.items() if not getattr(settings, field)]
        if missing:
            raise ConfigurationError(f"payment gateway configuration missing: {', '.join(missing)}")
        config = cls(
            merchant_code=settings.merchant_code,
            secret_key=settings.secret_key,
            gateway_base_url=settings.gateway_base_url,
            return_url=settings.return_url,
            locale=settings.gateway_locale,
            currency=settings.gateway_currency,
        )
        config.ensure_complete()
        return config


def _plain(value) -> str:
    if isinstance(value, SecretStr):
        return value.get_secret_value()
    return value or ""
