"""Central environment-driven settings shared by the orders and payments services.

Each service process loads this once at startup. Gateway credentials are kept
optional here so that the orders service can boot without them; the payments
service turns them into a validated `GatewayConfig` and refuses to start when
any of them is missing.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "unknown-service"
    log_level: str = "INFO"
    postgres_dsn: str
    api_key: str
    kafka_bootstrap_servers: str = "kafka:9092"
    orders_url: str = "http://orders:8001"
    # Tracing is off unless an OTLP collector endpoint is configured.
    otel_exporter_otlp_endpoint: str | None = None

    merchant_code: str | None = None
    secret_key: str | None = None
    gateway_base_url: str | None = None
    return_url: str | None = None
    gateway_locale: str = "vn"
    gateway_currency: str = "VND"

    order_ttl_minutes: int = 15
    expiry_sweep_interval_seconds: float = 60.0
    order_store_timeout_seconds: float = 5.0
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CommonSettings()
